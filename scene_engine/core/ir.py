"""Intermediate representation dataclasses for a scene render.

WHY: The frame renderer, the caption formatters, the assembly
coordinator, the CLI and the HTTP API all need the same vocabulary for
a scene: its words, its motion, its caption style. One set of typed
dataclasses keeps those layers decoupled from each other and from the
wire format of the input contract.

HOW: Small dataclasses, leaves first:
  WordTimestamp   — one spoken word with start/end seconds
  MotionParams    — canvas oversize and pan/drift fractions
  FrameTransform  — zoom and pan for one frame
  ExtractRect     — the clamped extraction rectangle on the working canvas
  CaptionBatch    — a contiguous run of words shown together
  CaptionStyle    — caller-supplied caption look
  SceneLine       — scene-level text for the whole-line fallback
  BackgroundAudio — music file plus volume 0-100
  SceneRequest    — the complete per-scene engine input

RULES:
- All times are float seconds
- WordTimestamp, FrameTransform, ExtractRect and CaptionBatch are frozen
- Colours are web hex (#RRGGBB); conversion happens in formatters.ass
- Nothing here performs I/O
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from scene_engine import config


class TextTransform(str, enum.Enum):
    """Case transform applied uniformly to caption words."""

    NONE = "none"
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"
    CAPITALIZE = "capitalize"


@dataclass(frozen=True)
class WordTimestamp:
    """A single narrated word with its spoken time range.

    RULES:
    - start >= 0, end > start (validated by the request adapter)
    - A scene's words are ordered by start and do not overlap
    """

    word: str
    start: float
    end: float


@dataclass(frozen=True)
class MotionParams:
    """Tunable motion headroom shared by the transform model and resolver.

    WHY: The 130% working canvas and the 4% pan sweep have no derivation;
    they are a look. Passing them explicitly lets one process render
    scenes with different looks concurrently.
    """

    canvas_oversize: float = config.CANVAS_OVERSIZE
    pan_fraction: float = config.PAN_FRACTION
    drift_fraction: float = config.DRIFT_FRACTION


@dataclass(frozen=True)
class FrameTransform:
    """Zoom and pan for one frame. Pan is in output-frame pixels."""

    zoom: float
    pan_x: float
    pan_y: float


@dataclass(frozen=True)
class ExtractRect:
    """Extraction rectangle on the working canvas, in integer pixels."""

    left: int
    top: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.left + self.width

    @property
    def bottom(self) -> int:
        return self.top + self.height

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.left, self.top, self.width, self.height)


@dataclass(frozen=True)
class CaptionBatch:
    """A contiguous run of words displayed together.

    start_index is inclusive and end_index exclusive, both indices into
    the scene's full word list.
    """

    words: Tuple[WordTimestamp, ...]
    start_index: int
    end_index: int

    def __contains__(self, index: object) -> bool:
        return isinstance(index, int) and self.start_index <= index < self.end_index


@dataclass
class CaptionStyle:
    """Caption look supplied by the caller. The engine is style-agnostic.

    RULES:
    - words_per_batch == 0 shows every word of the scene at once
    - dimmed_opacity is the visible fraction (0..1) of not-yet-spoken words
    - back_opacity is the visible fraction (0..1) of back_color
    - outline and shadow are widths in script pixels; 0 turns them off
    - position_from_bottom is a percentage of the video height
    - preview_width, when set, scales font_size by video_width / preview_width
    """

    font_family: str = config.DEFAULT_FONT_FAMILY
    font_size: int = config.DEFAULT_FONT_SIZE
    font_weight: int = config.DEFAULT_FONT_WEIGHT
    active_color: str = config.DEFAULT_ACTIVE_COLOR
    inactive_color: str = config.DEFAULT_INACTIVE_COLOR
    dimmed_opacity: float = config.DEFAULT_DIMMED_OPACITY
    words_per_batch: int = config.DEFAULT_WORDS_PER_BATCH
    text_transform: TextTransform = TextTransform.NONE
    position_from_bottom: float = config.DEFAULT_POSITION_FROM_BOTTOM
    preview_width: Optional[int] = None
    outline_color: str = config.DEFAULT_OUTLINE_COLOR
    back_color: str = config.DEFAULT_BACK_COLOR
    back_opacity: float = config.DEFAULT_BACK_OPACITY
    outline: int = config.DEFAULT_OUTLINE
    shadow: int = config.DEFAULT_SHADOW


@dataclass
class SceneLine:
    """Scene-level caption text for the whole-line fallback."""

    text: str
    duration: float


@dataclass
class BackgroundAudio:
    """A music bed mixed under the clip at ``volume`` percent (0-100)."""

    file_path: Path
    volume: float = 30.0


@dataclass
class SceneRequest:
    """The complete engine input for one scene.

    HOW: Built by adapters.request_adapter from the JSON input contract,
    or directly by Python callers.

    RULES:
    - effect is the raw identifier; effects.resolve_effect() decides the
      fallback for unknown values
    - captions are produced only when captions_enabled is True
    - text is the scene's narration; it feeds sentence detection and the
      whole-line fallback when word_timestamps is empty
    """

    image_path: Path
    width: int
    height: int
    duration: float
    effect: str = "none"
    fps: int = config.DEFAULT_FPS
    word_timestamps: List[WordTimestamp] = field(default_factory=list)
    caption_style: CaptionStyle = field(default_factory=CaptionStyle)
    captions_enabled: bool = True
    text: Optional[str] = None
    background_audio: Optional[BackgroundAudio] = None
    narration_path: Optional[Path] = None
    scene_index: int = 0
