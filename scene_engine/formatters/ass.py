"""Advanced SubStation Alpha primitives: time, colour, escaping, header.

WHY: Both ASS formatters need the same low-level encodings, and each of
them is easy to get subtly wrong: ASS times are H:MM:SS.CC with
centiseconds, ASS colours are blue-green-red with an inverted alpha
byte, and inline override colours use a different shape from style
colours. Keeping them here gives one tested implementation.

HOW: Pure string helpers plus AssStyle, a dataclass mirroring one
``Style:`` line of the [V4+ Styles] section, built from a CaptionStyle
with style_from_caption().

RULES:
- format_ass_time rounds to the nearest centisecond first, so
  3725.07 → "1:02:05.07"; negative input clamps to 0
- Style colours are "&HAABBGGRR" (alpha 00 = opaque); inline colours
  are "&HBBGGRR&"
- Callers supply "#RRGGBB" (or "RRGGBB"); anything else becomes white
  with a logged warning
- Caption text never carries override braces or raw newlines
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from scene_engine import config
from scene_engine.core.geometry import round_half_up
from scene_engine.core.ir import CaptionStyle

logger = logging.getLogger(__name__)

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{6})$")
_FALLBACK_HEX = "FFFFFF"

STYLE_NAME = "Custom"
ALIGNMENT_BOTTOM_CENTER = 2
DEFAULT_MARGIN_LR = 10

STYLE_FORMAT = (
    "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, "
    "OutlineColour, BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, "
    "ScaleY, Spacing, Angle, BorderStyle, Outline, Shadow, Alignment, "
    "MarginL, MarginR, MarginV, Encoding"
)
EVENT_FORMAT = "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text"


def format_ass_time(seconds: float) -> str:
    """Format seconds as ASS ``H:MM:SS.CC``."""
    total_cs = max(0, round_half_up(seconds * 100))
    hours, rem = divmod(total_cs, 360000)
    minutes, rem = divmod(rem, 6000)
    secs, centis = divmod(rem, 100)
    return "{}:{:02d}:{:02d}.{:02d}".format(hours, minutes, secs, centis)


def _bgr(hex_color: str) -> str:
    match = _HEX_RE.match(hex_color.strip()) if hex_color else None
    if match is None:
        logger.warning("Invalid colour %r, using white", hex_color)
        digits = _FALLBACK_HEX
    else:
        digits = match.group(1).upper()
    return digits[4:6] + digits[2:4] + digits[0:2]


def hex_to_ass_color(hex_color: str, alpha: int = 0) -> str:
    """Convert ``#RRGGBB`` to a style colour ``&HAABBGGRR``."""
    return "&H{:02X}{}".format(max(0, min(alpha, 255)), _bgr(hex_color))


def hex_to_ass_inline(hex_color: str) -> str:
    """Convert ``#RRGGBB`` to an inline override colour ``&HBBGGRR&``."""
    return "&H{}&".format(_bgr(hex_color))


def opacity_to_alpha_byte(opacity: float) -> int:
    """Visible fraction (0..1) to an ASS alpha byte.

    ASS alpha counts transparency: 0x00 is opaque, 0xFF invisible, so
    60% visible is 0x66.
    """
    clamped = max(0.0, min(float(opacity), 1.0))
    return round_half_up((1.0 - clamped) * 255)


def opacity_to_ass_alpha(opacity: float) -> str:
    """Visible fraction (0..1) to an inline alpha override ``&HXX&``."""
    return "&H{:02X}&".format(opacity_to_alpha_byte(opacity))


def escape_ass_text(text: str) -> str:
    """Make caller text safe to place between override blocks."""
    cleaned = text.replace("{", "(").replace("}", ")").replace("\\", "/")
    return " ".join(cleaned.split())


@dataclass
class AssStyle:
    """One ``Style:`` line of the [V4+ Styles] section."""

    name: str
    font_name: str
    font_size: int
    primary_colour: str
    outline_colour: str = "&H00000000"
    back_colour: str = "&H80000000"
    bold: int = 0
    italic: int = 0
    outline: int = config.DEFAULT_OUTLINE
    shadow: int = config.DEFAULT_SHADOW
    alignment: int = ALIGNMENT_BOTTOM_CENTER
    margin_l: int = DEFAULT_MARGIN_LR
    margin_r: int = DEFAULT_MARGIN_LR
    margin_v: int = 0

    def to_line(self) -> str:
        return (
            "Style: {name},{font},{size},{primary},{primary},{outline_c},{back},"
            "{bold},{italic},0,0,100,100,0,0,1,{outline},{shadow},{align},"
            "{ml},{mr},{mv},1"
        ).format(
            name=self.name,
            font=self.font_name,
            size=self.font_size,
            primary=self.primary_colour,
            outline_c=self.outline_colour,
            back=self.back_colour,
            bold=self.bold,
            italic=self.italic,
            outline=self.outline,
            shadow=self.shadow,
            align=self.alignment,
            ml=self.margin_l,
            mr=self.margin_r,
            mv=self.margin_v,
        )


def scaled_font_size(style: CaptionStyle, video_width: int) -> int:
    """Font size in video pixels, scaled from the preview width if given."""
    if style.preview_width:
        return max(1, round_half_up(style.font_size * video_width / style.preview_width))
    return max(1, int(style.font_size))


def style_from_caption(style: CaptionStyle, video_width: int, video_height: int) -> AssStyle:
    """Build the ASS style line for a caller CaptionStyle.

    RULES:
    - PrimaryColour is the inactive (spoken/plain) colour
    - BackColour carries back_opacity as its alpha byte
    - Bold when font_weight >= 600
    - MarginV is position_from_bottom percent of the video height
    """
    return AssStyle(
        name=STYLE_NAME,
        font_name=style.font_family,
        font_size=scaled_font_size(style, video_width),
        primary_colour=hex_to_ass_color(style.inactive_color),
        outline_colour=hex_to_ass_color(style.outline_color),
        back_colour=hex_to_ass_color(
            style.back_color, alpha=opacity_to_alpha_byte(style.back_opacity)
        ),
        bold=1 if style.font_weight >= config.BOLD_WEIGHT_THRESHOLD else 0,
        outline=max(0, int(style.outline)),
        shadow=max(0, int(style.shadow)),
        margin_v=round_half_up(style.position_from_bottom / 100.0 * video_height),
    )


def build_header(style: AssStyle, video_width: int, video_height: int, title: str) -> str:
    """Render [Script Info], [V4+ Styles] and the [Events] format line."""
    lines = [
        "[Script Info]",
        "Title: {}".format(title),
        "ScriptType: v4.00+",
        "WrapStyle: 0",
        "PlayResX: {}".format(video_width),
        "PlayResY: {}".format(video_height),
        "ScaledBorderAndShadow: yes",
        "",
        "[V4+ Styles]",
        STYLE_FORMAT,
        style.to_line(),
        "",
        "[Events]",
        EVENT_FORMAT,
    ]
    return "\n".join(lines) + "\n"


def dialogue_line(start: float, end: float, style_name: str, text: str) -> str:
    return "Dialogue: 0,{},{},{},,0,0,0,,{}".format(
        format_ass_time(start), format_ass_time(end), style_name, text
    )
