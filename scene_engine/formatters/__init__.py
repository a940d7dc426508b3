"""Caption formatter registry: pluggable output hub.

WHY: The pipeline, CLI and API need a single lookup to find the right
formatter by name. A central dict makes it trivial to add new formats:
create the formatter class, import it here, add one line.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
Callers instantiate as needed: ``formatter = FORMATTERS["ass_word_highlight"]()``.

RULES:
- Keys are snake_case identifiers (used in CLI flags and API requests)
- Values are BaseFormatter subclasses (not instances)
- Every formatter listed here must be importable without side effects
- BURN_FORMATTERS lists, in preference order, the formatters whose
  output can be burned into the video
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Tuple

from scene_engine.formatters.scene_lines import SceneLinesFormatter
from scene_engine.formatters.srt_scene import SceneSRTFormatter
from scene_engine.formatters.word_highlight import WordHighlightFormatter

if TYPE_CHECKING:
    from scene_engine.formatters.base import BaseFormatter

FORMATTERS: dict[str, type[BaseFormatter]] = {
    "ass_word_highlight": WordHighlightFormatter,
    "ass_scene_lines": SceneLinesFormatter,
    "srt_scene_lines": SceneSRTFormatter,
}

BURN_FORMATTERS: Tuple[str, ...] = ("ass_word_highlight", "ass_scene_lines")
