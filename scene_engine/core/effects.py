"""Transform Model: motion effects as pure functions of progress.

WHY: Every scene gets one of eight camera moves. The renderer must be
able to ask "what are zoom and pan at this instant?" without knowing
anything about the effect, and the answer must be identical every time
the same question is asked so re-renders are bit-for-bit reproducible.

HOW: Effect is a closed str-enum. frame_transform() is a single
dispatch over every member returning a FrameTransform. Zoom ramps use
the cosine ease-in-out curve 0.5·(1 − cos(π·p)) so motion starts and
ends slowly; pans are linear. Pan is expressed in output-frame pixels.

RULES:
- progress is clamped to [0, 1]; frame_progress() maps indices onto it
- zoom is floored at 1.0 for every effect
- No wall-clock time, randomness or renderer state is consulted
- Unknown identifiers resolve to Effect.NONE with a logged warning,
  not an exception
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass
from typing import Dict

from scene_engine.core.ir import FrameTransform, MotionParams

logger = logging.getLogger(__name__)

DEFAULT_MOTION = MotionParams()

ZOOM_IN_RANGE = 0.1
ZOOM_OUT_START = 1.08
PAN_ZOOM = 1.04
FLOAT_BASE_ZOOM = 1.02
FLOAT_ZOOM_AMPLITUDE = 0.02


class Effect(str, enum.Enum):
    """The closed set of motion effects.

    HOW: Inherits from str so values serialize cleanly to JSON and
    compare equal to their wire identifiers.
    """

    NONE = "none"
    FLOATING = "floating"
    ZOOM_IN = "zoom_in"
    ZOOM_OUT = "zoom_out"
    PAN_LEFT = "pan_left"
    PAN_RIGHT = "pan_right"
    ZOOM_PAN = "zoom_pan"
    ZOOM_OUT_PAN = "zoom_out_pan"


EFFECT_DESCRIPTIONS: Dict[Effect, str] = {
    Effect.NONE: "No motion effect - static image",
    Effect.FLOATING: "Gentle elliptical drift with subtle zoom",
    Effect.ZOOM_IN: "Gradual eased zoom into the image",
    Effect.ZOOM_OUT: "Start zoomed in, ease back out",
    Effect.PAN_LEFT: "Camera slides left across image",
    Effect.PAN_RIGHT: "Camera slides right across image",
    Effect.ZOOM_PAN: "Zoom in while panning right",
    Effect.ZOOM_OUT_PAN: "Zoom out while panning left",
}


@dataclass(frozen=True)
class EffectResolution:
    """Outcome of resolving a raw effect identifier.

    fell_back is True when the identifier was not recognized and
    Effect.NONE was substituted.
    """

    effect: Effect
    requested: str
    fell_back: bool = False


def resolve_effect(identifier: object) -> EffectResolution:
    """Map a raw identifier to an Effect, falling back to NONE visibly.

    RULES:
    - Matching is case-insensitive and ignores surrounding whitespace
    - None and "" resolve to NONE without a warning (no effect requested)
    - Anything else unrecognized resolves to NONE with a WARNING log and
      fell_back=True
    """
    if isinstance(identifier, Effect):
        return EffectResolution(effect=identifier, requested=identifier.value)

    requested = "" if identifier is None else str(identifier)
    key = requested.strip().lower()
    if not key:
        return EffectResolution(effect=Effect.NONE, requested=requested)

    try:
        return EffectResolution(effect=Effect(key), requested=requested)
    except ValueError:
        logger.warning(
            "Unsupported effect %r, falling back to %r", requested, Effect.NONE.value
        )
        return EffectResolution(effect=Effect.NONE, requested=requested, fell_back=True)


def frame_progress(frame_index: int, total_frames: int) -> float:
    """Normalized position of a frame in the scene, 0.0 to 1.0 inclusive."""
    return frame_index / max(1, total_frames - 1)


def ease_in_out(progress: float) -> float:
    """Cosine ease-in-out: 0 → 1 with zero slope at both ends."""
    return 0.5 * (1.0 - math.cos(math.pi * progress))


def frame_transform(
    effect: Effect,
    progress: float,
    width: int,
    height: int,
    params: MotionParams = DEFAULT_MOTION,
) -> FrameTransform:
    """Compute zoom and pan for ``effect`` at ``progress``.

    Args:
        effect: The motion effect.
        progress: Position in the scene, clamped to [0, 1].
        width: Output frame width in pixels (pan range is relative to it).
        height: Output frame height in pixels.
        params: Pan and drift fractions.

    Returns:
        FrameTransform with zoom >= 1.0 and pan in output pixels.
    """
    p = min(1.0, max(0.0, progress))
    pan_range = width * params.pan_fraction

    if effect is Effect.NONE:
        zoom, pan_x, pan_y = 1.0, 0.0, 0.0
    elif effect is Effect.FLOATING:
        phase = 2.0 * math.pi * p
        zoom = FLOAT_BASE_ZOOM + FLOAT_ZOOM_AMPLITUDE * math.sin(phase)
        pan_x = width * params.drift_fraction * math.sin(phase)
        pan_y = height * params.drift_fraction * math.cos(phase)
    elif effect is Effect.ZOOM_IN:
        zoom, pan_x, pan_y = 1.0 + ZOOM_IN_RANGE * ease_in_out(p), 0.0, 0.0
    elif effect is Effect.ZOOM_OUT:
        zoom = ZOOM_OUT_START - (ZOOM_OUT_START - 1.0) * ease_in_out(p)
        pan_x, pan_y = 0.0, 0.0
    elif effect is Effect.PAN_LEFT:
        zoom, pan_x, pan_y = PAN_ZOOM, pan_range * (1.0 - 2.0 * p), 0.0
    elif effect is Effect.PAN_RIGHT:
        zoom, pan_x, pan_y = PAN_ZOOM, -pan_range * (1.0 - 2.0 * p), 0.0
    elif effect is Effect.ZOOM_PAN:
        zoom = 1.0 + ZOOM_IN_RANGE * ease_in_out(p)
        pan_x, pan_y = pan_range * (2.0 * p - 1.0), 0.0
    elif effect is Effect.ZOOM_OUT_PAN:
        zoom = ZOOM_OUT_START - (ZOOM_OUT_START - 1.0) * ease_in_out(p)
        pan_x, pan_y = -pan_range * (2.0 * p - 1.0), 0.0
    else:
        raise ValueError("Unhandled effect: {!r}".format(effect))

    return FrameTransform(zoom=max(1.0, zoom), pan_x=pan_x, pan_y=pan_y)
