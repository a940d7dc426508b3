"""Frame Geometry Resolver: from zoom/pan to a safe extraction rectangle.

WHY: Zoom and pan are continuous values; the resampler needs integer
pixel rectangles that lie inside the working canvas. Getting the clamp
order wrong produces frames that are subtly off-centre or, worse, an
extraction that reads outside the buffer. Keeping this arithmetic in one
pure function makes it testable over every effect and progress value.

HOW: The output frame (W, H) is divided by the floored zoom to get the
extraction size, which is clamped to the canvas. The rectangle is then
centred, the pan is clamped so it cannot push the rectangle off the
canvas, and a final clamp shrinks width/height if rounding pushed an
edge past the border.

RULES:
- Rounding is half-up everywhere (2.5 → 3), never banker's rounding
- The returned rectangle always satisfies 0 <= left, 0 <= top,
  left + width <= canvas width, top + height <= canvas height
- A non-positive width/height after clamping raises InvalidGeometry
  instead of producing a corrupt frame
"""

from __future__ import annotations

import math
from typing import Optional, Tuple

from scene_engine.core.errors import InvalidGeometry
from scene_engine.core.ir import ExtractRect, FrameTransform, MotionParams


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties away from negative infinity."""
    return int(math.floor(value + 0.5))


def working_canvas_size(
    width: int,
    height: int,
    params: MotionParams,
) -> Tuple[int, int]:
    """Size of the oversized working canvas for an output frame of W×H.

    RULES:
    - Each axis is round_half_up(axis × canvas_oversize)
    - Never smaller than one pixel per axis
    """
    return (
        max(1, round_half_up(width * params.canvas_oversize)),
        max(1, round_half_up(height * params.canvas_oversize)),
    )


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def resolve_extract_rect(
    transform: FrameTransform,
    width: int,
    height: int,
    canvas_width: int,
    canvas_height: int,
    frame_index: Optional[int] = None,
) -> ExtractRect:
    """Resolve the extraction rectangle for one frame.

    Args:
        transform: Zoom and pan for the frame.
        width: Output frame width.
        height: Output frame height.
        canvas_width: Working canvas width.
        canvas_height: Working canvas height.
        frame_index: Reported in InvalidGeometry; None outside a render.

    Returns:
        An ExtractRect that lies fully inside the canvas.

    Raises:
        InvalidGeometry: If the rectangle degenerates after clamping.
    """
    canvas_size = (canvas_width, canvas_height)
    if canvas_width <= 0 or canvas_height <= 0:
        raise InvalidGeometry(
            "Empty working canvas", frame_index, transform, (0, 0, 0, 0), canvas_size
        )

    safe_zoom = max(1.0, transform.zoom)

    extract_w = int(_clamp(round_half_up(width / safe_zoom), 1, canvas_width))
    extract_h = int(_clamp(round_half_up(height / safe_zoom), 1, canvas_height))

    center_x = (canvas_width - extract_w) / 2.0
    center_y = (canvas_height - extract_h) / 2.0

    max_pan_x = (canvas_width - extract_w) / 2.0
    max_pan_y = (canvas_height - extract_h) / 2.0
    safe_pan_x = _clamp(transform.pan_x, -max_pan_x, max_pan_x)
    safe_pan_y = _clamp(transform.pan_y, -max_pan_y, max_pan_y)

    left = int(_clamp(round_half_up(center_x + safe_pan_x), 0, canvas_width - 1))
    top = int(_clamp(round_half_up(center_y + safe_pan_y), 0, canvas_height - 1))
    rect_w = min(extract_w, canvas_width - left)
    rect_h = min(extract_h, canvas_height - top)

    rect = (left, top, rect_w, rect_h)
    if rect_w <= 0 or rect_h <= 0:
        raise InvalidGeometry(
            "Degenerate extract region", frame_index, transform, rect, canvas_size
        )
    if left + rect_w > canvas_width or top + rect_h > canvas_height:
        raise InvalidGeometry(
            "Extract region exceeds bounds", frame_index, transform, rect, canvas_size
        )

    return ExtractRect(left=left, top=top, width=rect_w, height=rect_h)
