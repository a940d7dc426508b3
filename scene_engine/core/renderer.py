"""Frame Renderer: turn one still image into an ordered frame sequence.

WHY: A downstream encoder needs one raster per frame, named so a glob
returns them in order. Resampling the full-resolution source for every
frame is the expensive part, so the source is resampled exactly once
into an oversized working canvas and every frame is a cheap crop and
resize of that shared, read-only buffer.

HOW:
  1. count_frames() derives the frame count from duration × fps.
  2. build_working_canvas() loads the source, normalizes it to RGB and
     resizes it to canvas_oversize × (W, H). The pixels are stored as a
     read-only numpy array.
  3. For every index the Transform Model gives zoom/pan, the Geometry
     Resolver gives a rectangle, and the worker crops that rectangle,
     resizes it to exactly (W, H) with bicubic resampling and writes
     frame_NNNNNN.png.
  4. scheduler.run_ordered() bounds in-flight frames and returns the
     paths in index order.

RULES:
- total_frames = max(1, round_half_up(duration × fps))
- Frame files use a six-digit zero-padded index
- Stale frame files in the output directory are removed before writing
- The canvas array is never written to; per-frame buffers belong to
  the worker that created them
- A failing frame raises FrameRenderError (or InvalidGeometry) naming
  the frame index and its computed geometry; the whole render aborts
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

import numpy as np
from PIL import Image, ImageOps

from scene_engine import config
from scene_engine.core.effects import (
    DEFAULT_MOTION,
    Effect,
    frame_progress,
    frame_transform,
    resolve_effect,
)
from scene_engine.core.errors import FrameRenderError, InvalidSceneRequest, SceneEngineError
from scene_engine.core.geometry import resolve_extract_rect, round_half_up, working_canvas_size
from scene_engine.core.ir import ExtractRect, FrameTransform, MotionParams
from scene_engine.core.scheduler import run_ordered

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]


def count_frames(duration: float, fps: int) -> int:
    """Number of frames for a scene: max(1, round(duration × fps))."""
    return max(1, round_half_up(duration * fps))


def frame_filename(index: int) -> str:
    return config.FRAME_FILENAME_TEMPLATE.format(index)


def load_source_image(image_path: Union[str, Path]) -> Image.Image:
    """Open an image, apply EXIF orientation and normalize it to RGB.

    Transparent pixels are flattened onto white so the working canvas
    never carries an alpha channel into the encoder.
    """
    path = Path(image_path)
    ext = path.suffix.lower()
    if ext not in config.SUPPORTED_IMAGE_FORMATS:
        raise InvalidSceneRequest(
            "Unsupported image type '{}'. Supported formats: {}".format(
                ext, ", ".join(sorted(config.SUPPORTED_IMAGE_FORMATS))
            )
        )

    with Image.open(path) as opened:
        img = ImageOps.exif_transpose(opened)
        img.load()

    if img.mode in ("RGBA", "LA", "P"):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[3])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


@dataclass(frozen=True)
class WorkingCanvas:
    """The oversized, read-only resample of the source image."""

    pixels: np.ndarray
    width: int
    height: int

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)


def build_working_canvas(
    image: Image.Image,
    width: int,
    height: int,
    params: MotionParams = DEFAULT_MOTION,
) -> WorkingCanvas:
    """Resize ``image`` once to the working canvas for a W×H output."""
    canvas_w, canvas_h = working_canvas_size(width, height, params)
    resized = image.resize((canvas_w, canvas_h), Image.Resampling.BICUBIC)
    pixels = np.array(resized, dtype=np.uint8)
    pixels.setflags(write=False)
    return WorkingCanvas(pixels=pixels, width=canvas_w, height=canvas_h)


@dataclass(frozen=True)
class FramePlan:
    """Resolved motion and geometry for one frame."""

    index: int
    transform: FrameTransform
    rect: ExtractRect


def plan_frame(
    effect: Effect,
    index: int,
    total_frames: int,
    width: int,
    height: int,
    canvas: WorkingCanvas,
    params: MotionParams = DEFAULT_MOTION,
) -> FramePlan:
    """Run the Transform Model and Geometry Resolver for one frame index."""
    transform = frame_transform(
        effect, frame_progress(index, total_frames), width, height, params
    )
    rect = resolve_extract_rect(
        transform, width, height, canvas.width, canvas.height, frame_index=index
    )
    return FramePlan(index=index, transform=transform, rect=rect)


def extract_frame(canvas: WorkingCanvas, rect: ExtractRect, width: int, height: int) -> Image.Image:
    """Crop ``rect`` out of the canvas and resample it to exactly W×H."""
    region = np.ascontiguousarray(
        canvas.pixels[rect.top:rect.bottom, rect.left:rect.right]
    )
    return Image.fromarray(region).resize((width, height), Image.Resampling.BICUBIC)


@dataclass
class RenderedFrames:
    """Result of rendering one scene's frames.

    RULES:
    - paths are ordered by frame index, len(paths) == total_frames
    - effect is the effect actually rendered; effect_fell_back is True
      when the requested identifier was unknown
    """

    output_dir: Path
    paths: List[Path]
    fps: int
    total_frames: int
    width: int
    height: int
    effect: Effect
    effect_fell_back: bool = False

    @property
    def pattern(self) -> str:
        """printf-style frame path for the encoder."""
        return str(self.output_dir / config.FRAME_FILENAME_PATTERN)


def cleanup_frames(frames_dir: Union[str, Path]) -> None:
    """Remove a frames directory tree. Missing directories are ignored."""
    path = Path(frames_dir)
    if path.exists():
        shutil.rmtree(path)


def _remove_stale_frames(output_dir: Path) -> None:
    stale = list(output_dir.glob("frame_*.png"))
    for old in stale:
        old.unlink()
    if stale:
        logger.debug("Removed %d stale frames from %s", len(stale), output_dir)


class FrameRenderer:
    """Render a scene's frames with a bounded pool of worker threads.

    WHY: One object holds the pool sizing, motion parameters and PNG
    settings so the pipeline, CLI and server configure rendering once.

    RULES:
    - max_workers threads, at most batch_size frames in flight
    - render() is safe to call concurrently for different scenes; the
      renderer itself holds no per-render state
    """

    def __init__(
        self,
        max_workers: int = config.FRAME_WORKERS,
        batch_size: int = config.FRAME_BATCH_SIZE,
        params: MotionParams = DEFAULT_MOTION,
        compress_level: int = config.PNG_COMPRESS_LEVEL,
    ) -> None:
        self.max_workers = max(1, max_workers)
        self.batch_size = max(1, batch_size)
        self.params = params
        self.compress_level = compress_level

    def render(
        self,
        image_path: Union[str, Path],
        output_dir: Union[str, Path],
        width: int,
        height: int,
        duration: float,
        effect: object = Effect.NONE,
        fps: int = config.DEFAULT_FPS,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> RenderedFrames:
        """Render every frame of a scene into ``output_dir``.

        Args:
            image_path: Source still image.
            output_dir: Directory for frame_NNNNNN.png files (created).
            width: Output frame width.
            height: Output frame height.
            duration: Scene duration in seconds.
            effect: Effect or raw identifier (unknown → NONE, logged).
            fps: Frames per second.
            progress_callback: Optional callback(progress 0-1, message).

        Returns:
            RenderedFrames with ordered frame paths.

        Raises:
            InvalidSceneRequest: Non-positive dimensions, duration or fps.
            InvalidGeometry: A frame's rectangle could not be resolved.
            FrameRenderError: A frame's extract/resample/write failed.
        """
        if width <= 0 or height <= 0:
            raise InvalidSceneRequest(
                "Output dimensions must be positive, got {}x{}".format(width, height)
            )
        if duration <= 0:
            raise InvalidSceneRequest("Duration must be positive, got {}".format(duration))
        if fps <= 0:
            raise InvalidSceneRequest("fps must be positive, got {}".format(fps))

        def report(progress: float, message: str) -> None:
            if progress_callback:
                progress_callback(progress, message)

        resolution = resolve_effect(effect)
        total_frames = count_frames(duration, fps)
        out_dir = Path(output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        _remove_stale_frames(out_dir)

        report(0.0, "Preparing working canvas...")
        canvas = build_working_canvas(load_source_image(image_path), width, height, self.params)
        logger.info(
            "Rendering %d frames (%s, %dx%d @ %dfps) from canvas %dx%d",
            total_frames, resolution.effect.value, width, height, fps,
            canvas.width, canvas.height,
        )

        def render_one(index: int) -> Path:
            plan = plan_frame(
                resolution.effect, index, total_frames, width, height, canvas, self.params
            )
            target = out_dir / frame_filename(index)
            try:
                frame = extract_frame(canvas, plan.rect, width, height)
                frame.save(target, format="PNG", compress_level=self.compress_level)
            except SceneEngineError:
                raise
            except Exception as exc:
                raise FrameRenderError(
                    frame_index=index,
                    rect=plan.rect,
                    canvas_size=canvas.size,
                    effect=resolution.effect.value,
                    cause=exc,
                ) from exc
            return target

        def on_complete(done: int, total: int) -> None:
            report(done / total, "Rendered frame {}/{}".format(done, total))

        paths = run_ordered(
            render_one,
            list(range(total_frames)),
            max_workers=self.max_workers,
            max_in_flight=self.batch_size,
            on_complete=on_complete,
        )

        logger.info("Rendered %d frames into %s", len(paths), out_dir)
        return RenderedFrames(
            output_dir=out_dir,
            paths=paths,
            fps=fps,
            total_frames=total_frames,
            width=width,
            height=height,
            effect=resolution.effect,
            effect_fell_back=resolution.fell_back,
        )


