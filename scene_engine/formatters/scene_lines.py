"""Whole-line ASS formatter: scene-level captions without word timing.

WHY: Some scenes have narration text but no word alignment (alignment
failed, or the caller only wants scene-level captions). They still need
burnable captions in the same visual style as the word-level track.

HOW: Scene lines are laid end to end: each line's event starts where
the previous scene ended and lasts the scene's duration. Text is the
scene text with the style's case transform; no highlighting applies.

RULES:
- No lines, or only blank lines → ""
- Blank lines emit no event but still advance the clock
- Registered as "ass_scene_lines" in the FORMATTERS dict
"""

from __future__ import annotations

from typing import List, Sequence

from scene_engine.core.ir import CaptionStyle, SceneLine
from scene_engine.core.timeline import apply_text_transform
from scene_engine.formatters.ass import (
    build_header,
    dialogue_line,
    escape_ass_text,
    style_from_caption,
)
from scene_engine.formatters.base import BaseFormatter, CaptionTrack, FormatterOutput

TITLE = "Scene Captions"


def generate_scene_lines_ass(
    lines: Sequence[SceneLine],
    style: CaptionStyle,
    video_width: int,
    video_height: int,
) -> str:
    """Render one plain Dialogue event per scene line."""
    ass_style = style_from_caption(style, video_width, video_height)
    events: List[str] = []
    clock = 0.0
    for line in lines:
        start = clock
        clock += max(0.0, line.duration)
        text = escape_ass_text(apply_text_transform(line.text, style.text_transform))
        if text:
            events.append(dialogue_line(start, clock, ass_style.name, text))

    if not events:
        return ""
    return build_header(ass_style, video_width, video_height, TITLE) + "\n".join(events) + "\n"


class SceneLinesFormatter(BaseFormatter):
    """Formatter producing whole-line ASS captions from scene text."""

    suffix = "-scene-captions.ass"
    media_type = "text/x-ssa"

    @property
    def name(self) -> str:
        return "Scene Lines ASS"

    def format(self, track: CaptionTrack) -> List[FormatterOutput]:
        content = generate_scene_lines_ass(
            track.scene_lines, track.style, track.video_width, track.video_height
        )
        if not content:
            return []
        return [FormatterOutput(suffix=self.suffix, content=content, media_type=self.media_type)]
