"""Typed error taxonomy for the engine.

WHY: A failed render must say *which* frame and *which* geometry broke,
and a failed encode must say *which* ffmpeg stage broke, so operators
can tell a zoom/pan bug from a codec problem from a caption-burn
problem without reproducing the job.

HOW: One base class and a small set of subclasses, each carrying the
structured values that identify the failure. The message string is
built from those values so logs stay readable.

RULES:
- All engine exceptions derive from SceneEngineError
- InvalidSceneRequest is also a ValueError (bad input, not a bug)
- ExternalToolFailure keeps the tool's stderr verbatim
- Unknown effects and empty captions are NOT errors (see effects.py,
  formatters/word_highlight.py)
"""

from __future__ import annotations

import enum
from typing import Any, Optional, Tuple


class AssemblyStage(str, enum.Enum):
    """The external-tool stage a clip assembly can fail in."""

    ENCODE = "encode"
    CAPTION_BURN = "caption-burn"
    AUDIO_MIX = "audio-mix"
    CONCAT = "concat"


class SceneEngineError(Exception):
    """Base class for all engine errors."""


class InvalidSceneRequest(SceneEngineError, ValueError):
    """The engine input contract was violated."""


class InvalidGeometry(SceneEngineError):
    """An extraction rectangle could not be resolved inside the canvas.

    Attributes:
        frame_index: Frame being resolved, or None outside a render.
        transform: The FrameTransform that produced the rectangle.
        rect: The computed (left, top, width, height) after clamping.
        canvas_size: Working canvas (width, height).
    """

    def __init__(
        self,
        reason: str,
        frame_index: Optional[int],
        transform: Any,
        rect: Tuple[int, int, int, int],
        canvas_size: Tuple[int, int],
    ) -> None:
        self.reason = reason
        self.frame_index = frame_index
        self.transform = transform
        self.rect = rect
        self.canvas_size = canvas_size
        left, top, width, height = rect
        super().__init__(
            "{} for frame {}: left={}, top={}, width={}, height={}, "
            "canvas={}x{}, transform={}".format(
                reason, frame_index, left, top, width, height,
                canvas_size[0], canvas_size[1], transform,
            )
        )


class FrameRenderError(SceneEngineError):
    """Extracting, resampling or writing a single frame failed."""

    def __init__(
        self,
        frame_index: int,
        rect: Any,
        canvas_size: Tuple[int, int],
        effect: str,
        cause: BaseException,
    ) -> None:
        self.frame_index = frame_index
        self.rect = rect
        self.canvas_size = canvas_size
        self.effect = effect
        super().__init__(
            "Frame {} failed ({}): {}. Params: {}, canvas={}x{}, effect={}".format(
                frame_index, type(cause).__name__, cause, rect,
                canvas_size[0], canvas_size[1], effect,
            )
        )


class ExternalToolFailure(SceneEngineError):
    """The external encode/mux tool failed in a given stage.

    Attributes:
        stage: Which assembly stage failed.
        returncode: Process exit code, or None when the process timed out,
                    was cancelled, or could not be started.
        stderr: The tool's diagnostic output, verbatim.
    """

    def __init__(
        self,
        stage: AssemblyStage,
        message: str,
        returncode: Optional[int] = None,
        stderr: str = "",
    ) -> None:
        self.stage = stage
        self.returncode = returncode
        self.stderr = stderr
        text = "[{}] {}".format(stage.value, message)
        if stderr:
            text = "{}\n{}".format(text, stderr)
        super().__init__(text)
