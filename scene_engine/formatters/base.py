"""Abstract base formatter, caption track input, and output container.

WHY: Every caption output consumes the same scene caption data but
produces different file content (word-highlight ASS, whole-line ASS,
scene SRT). This base class enforces a consistent interface so the
pipeline, CLI and API layers can work with any formatter generically.

HOW: CaptionTrack bundles what every formatter may need: the word
timestamps, the caption style, the video size, the narration text and
the scene-level lines. BaseFormatter is an ABC with ``name``,
``suffix``, ``media_type`` and ``format()``. FormatterOutput bundles a
file suffix with its content and MIME type.

RULES:
- Subclasses MUST implement ``name`` and ``format()``
- ``format()`` returns a list; an empty list means "nothing to emit"
  (for example, no word timestamps), never a header-only document
- ``suffix`` starts with a hyphen, e.g. ``"-captions.ass"``
- The caller is responsible for prepending the scene file stem
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from scene_engine.core.ir import CaptionStyle, SceneLine, WordTimestamp


@dataclass
class CaptionTrack:
    """Everything a caption formatter may read for one scene or story.

    Attributes:
        words: Word timestamps in order (may be empty).
        style: Caller-supplied caption style.
        video_width: Output video width; sets PlayResX and font scaling.
        video_height: Output video height; sets PlayResY and MarginV.
        reference_text: Narration text for sentence-boundary detection.
        scene_lines: Scene-level text for whole-line captions.
    """

    words: List[WordTimestamp]
    style: CaptionStyle
    video_width: int
    video_height: int
    reference_text: Optional[str] = None
    scene_lines: List[SceneLine] = field(default_factory=list)


@dataclass
class FormatterOutput:
    """One output file produced by a formatter.

    Attributes:
        suffix: File suffix appended to the scene stem,
                e.g. ``"-captions.ass"`` → ``"scene-000-captions.ass"``.
        content: The file content.
        media_type: MIME type for the content.
    """

    suffix: str
    content: str
    media_type: str


class BaseFormatter(ABC):
    """Abstract base for all caption formatters.

    To add a new output format:
    1. Create a new file in formatters/
    2. Subclass BaseFormatter
    3. Implement format() and name, set suffix and media_type
    4. Register in FORMATTERS dict in formatters/__init__.py
    """

    suffix: str = ""
    media_type: str = "text/plain"

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable format name, e.g. 'Word Highlight ASS'."""

    @abstractmethod
    def format(self, track: CaptionTrack) -> List[FormatterOutput]:
        """Convert a caption track into zero or more output files."""
