"""Word-highlight ASS formatter: karaoke-style captions for social video.

WHY: Short-form story videos show narration a few words at a time with
the word being spoken popped out in a highlight colour. Viewers read
ahead, so upcoming words in the batch stay visible but dimmed instead
of appearing one by one.

HOW: The caption timeline (shared tokenization + sentence-aware
batching) decides which words are on screen for each word. One
Dialogue event is emitted per word, covering [word.start,
next_word.start); the last event ends at the final word's end. Inside
the event text the batch is rendered in three states:
  - already spoken: plain style text
  - active: bold, highlight colour, scaled to 110%
  - upcoming: alpha override at the configured dimmed opacity

RULES:
- Empty word list → "" (no header-only document)
- Event i's end equals event i+1's start; the last ends at words[-1].end
- Event end never precedes its start
- Text transform is applied before any styling
- Registered as "ass_word_highlight" in the FORMATTERS dict
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from scene_engine.core.ir import CaptionStyle, WordTimestamp
from scene_engine.core.timeline import CaptionTimeline, build_caption_timeline
from scene_engine.formatters.ass import (
    build_header,
    dialogue_line,
    escape_ass_text,
    hex_to_ass_inline,
    opacity_to_ass_alpha,
    style_from_caption,
)
from scene_engine.formatters.base import BaseFormatter, CaptionTrack, FormatterOutput

ACTIVE_SCALE = 110
TITLE = "Word-by-Word Captions"


def _event_text(
    timeline: CaptionTimeline,
    active: int,
    highlight: str,
    primary: str,
    bold: int,
    dim_alpha: str,
) -> str:
    batch = timeline.batch_for(active)
    parts: List[str] = []
    for j in range(batch.start_index, batch.end_index):
        word = escape_ass_text(timeline.tokens[j].text)
        if j < active:
            parts.append(word)
        elif j == active:
            parts.append(
                "{{\\b1\\c{hl}\\fscx{s}\\fscy{s}}}{w}{{\\b{b}\\c{pc}\\fscx100\\fscy100}}".format(
                    hl=highlight, s=ACTIVE_SCALE, w=word, b=bold, pc=primary
                )
            )
        else:
            parts.append("{{\\alpha{a}}}{w}{{\\alpha&H00&}}".format(a=dim_alpha, w=word))
    return " ".join(parts)


def generate_word_highlight_ass(
    words: Sequence[WordTimestamp],
    style: CaptionStyle,
    video_width: int,
    video_height: int,
    reference_text: Optional[str] = None,
) -> str:
    """Render word timestamps into a word-by-word highlighted ASS document.

    Args:
        words: Word timestamps ordered by start.
        style: Caption style (colours, batch size, transform, position).
        video_width: PlayResX and font scaling base.
        video_height: PlayResY and MarginV base.
        reference_text: Narration text for sentence-boundary detection.

    Returns:
        The full ASS document, or "" when there are no words.
    """
    if not words:
        return ""

    timeline = build_caption_timeline(
        words, style.words_per_batch, style.text_transform, reference_text
    )
    ass_style = style_from_caption(style, video_width, video_height)
    highlight = hex_to_ass_inline(style.active_color)
    primary = hex_to_ass_inline(style.inactive_color)
    dim_alpha = opacity_to_ass_alpha(style.dimmed_opacity)

    events: List[str] = []
    for i, word in enumerate(words):
        start = max(0.0, word.start)
        end = words[i + 1].start if i + 1 < len(words) else word.end
        end = max(start, end)
        text = _event_text(timeline, i, highlight, primary, ass_style.bold, dim_alpha)
        events.append(dialogue_line(start, end, ass_style.name, text))

    return build_header(ass_style, video_width, video_height, TITLE) + "\n".join(events) + "\n"


class WordHighlightFormatter(BaseFormatter):
    """Formatter producing the word-by-word highlighted ASS track."""

    suffix = "-captions.ass"
    media_type = "text/x-ssa"

    @property
    def name(self) -> str:
        return "Word Highlight ASS"

    def format(self, track: CaptionTrack) -> List[FormatterOutput]:
        content = generate_word_highlight_ass(
            track.words,
            track.style,
            track.video_width,
            track.video_height,
            track.reference_text,
        )
        if not content:
            return []
        return [FormatterOutput(suffix=self.suffix, content=content, media_type=self.media_type)]
