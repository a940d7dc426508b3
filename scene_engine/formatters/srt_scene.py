"""Scene-level SRT formatter: plain subtitles for players without ASS.

WHY: Some downstream players and upload targets accept only SubRip.
Scene-level SRT gives them the narration as sidecar subtitles.

HOW: Same end-to-end clock as the scene-lines ASS formatter, with SRT
``HH:MM:SS,mmm`` timestamps and 1-based cue numbers.

RULES:
- Blank lines are skipped but advance the clock; cue numbers stay dense
- No cues → "" and the formatter emits nothing
- Registered as "srt_scene_lines" in the FORMATTERS dict
"""

from __future__ import annotations

from typing import List, Sequence

from scene_engine.core.geometry import round_half_up
from scene_engine.core.ir import SceneLine
from scene_engine.formatters.base import BaseFormatter, CaptionTrack, FormatterOutput


def format_srt_time(seconds: float) -> str:
    """Format seconds as SRT ``HH:MM:SS,mmm``."""
    total_ms = max(0, round_half_up(seconds * 1000))
    hours, rem = divmod(total_ms, 3600000)
    minutes, rem = divmod(rem, 60000)
    secs, millis = divmod(rem, 1000)
    return "{:02d}:{:02d}:{:02d},{:03d}".format(hours, minutes, secs, millis)


def generate_scene_srt(lines: Sequence[SceneLine]) -> str:
    entries: List[str] = []
    clock = 0.0
    for line in lines:
        start = clock
        clock += max(0.0, line.duration)
        text = line.text.strip()
        if not text:
            continue
        entries.append("{}\n{} --> {}\n{}\n".format(
            len(entries) + 1, format_srt_time(start), format_srt_time(clock), text
        ))
    return "\n".join(entries)


class SceneSRTFormatter(BaseFormatter):
    """Formatter producing scene-level SRT subtitles."""

    suffix = "-captions.srt"
    media_type = "application/x-subrip"

    @property
    def name(self) -> str:
        return "Scene Lines SRT"

    def format(self, track: CaptionTrack) -> List[FormatterOutput]:
        content = generate_scene_srt(track.scene_lines)
        if not content:
            return []
        return [FormatterOutput(suffix=self.suffix, content=content, media_type=self.media_type)]
