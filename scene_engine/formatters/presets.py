"""Caption style presets: named looks a request can start from.

WHY: Most callers want one of a handful of well-known short-form video
looks (bold white with a black outline, a yellow highlighter box, a
glowing neon line) rather than spelling out every colour, outline and
shadow. A preset id in ``captionStyle`` gives them that look in one key.

HOW: CAPTION_PRESETS maps preset ids to partial captionStyle dicts in
the same camelCase shape as the request contract. The request adapter
lays the caller's explicit keys over the preset, then converts the
merged dict exactly as it would a hand-written one.

RULES:
- Keys are lowercase identifiers (used in requests, the CLI and the API)
- Values only name the keys the look depends on; anything else falls
  through to the config defaults
- Colours are "#RRGGBB"; backOpacity is the visible fraction (0..1)
  of the back colour, like dimmedOpacity
"""

from __future__ import annotations

from typing import Any, Dict

CAPTION_PRESETS: Dict[str, Dict[str, Any]] = {
    "tiktok": {
        "fontFamily": "Montserrat",
        "fontWeight": 900,
        "inactiveColor": "#FFFFFF",
        "outlineColor": "#000000",
        "backColor": "#000000",
        "backOpacity": 0.5,
        "outline": 3,
        "shadow": 2,
        "textTransform": "uppercase",
    },
    "highlight": {
        "fontFamily": "Poppins",
        "fontWeight": 700,
        "inactiveColor": "#000000",
        "backColor": "#FFEB3B",
        "backOpacity": 1.0,
        "outline": 0,
        "shadow": 0,
        "textTransform": "none",
    },
    "mrbeast": {
        "fontFamily": "Anton",
        "fontWeight": 700,
        "inactiveColor": "#FFD700",
        "outlineColor": "#000000",
        "backColor": "#000000",
        "backOpacity": 0.5,
        "outline": 4,
        "shadow": 3,
        "textTransform": "uppercase",
    },
    "neon": {
        "fontFamily": "Montserrat",
        "fontWeight": 700,
        "inactiveColor": "#00F0FF",
        "outlineColor": "#00F0FF",
        "backColor": "#001428",
        "backOpacity": 0.3,
        "outline": 2,
        "shadow": 4,
        "textTransform": "uppercase",
    },
    "glass": {
        "fontFamily": "Poppins",
        "fontWeight": 600,
        "inactiveColor": "#FFFFFF",
        "backColor": "#FFFFFF",
        "backOpacity": 0.1,
        "outline": 0,
        "shadow": 1,
        "textTransform": "none",
    },
    "minimal": {
        "fontFamily": "Poppins",
        "fontWeight": 600,
        "inactiveColor": "#FFFFFF",
        "backColor": "#000000",
        "backOpacity": 0.6,
        "outline": 0,
        "shadow": 2,
        "textTransform": "none",
    },
    "comic": {
        "fontFamily": "Bangers",
        "fontWeight": 400,
        "inactiveColor": "#FFEB3B",
        "outlineColor": "#000000",
        "backColor": "#000000",
        "backOpacity": 1.0,
        "outline": 2,
        "shadow": 1,
        "textTransform": "uppercase",
    },
    "bubble": {
        "fontFamily": "Fredoka",
        "fontWeight": 700,
        "inactiveColor": "#FFFFFF",
        "backColor": "#FF6B9D",
        "backOpacity": 1.0,
        "outline": 0,
        "shadow": 2,
        "textTransform": "none",
    },
    "shadow": {
        "fontFamily": "Righteous",
        "fontWeight": 400,
        "inactiveColor": "#FFFFFF",
        "outlineColor": "#000000",
        "backColor": "#000000",
        "backOpacity": 1.0,
        "outline": 0,
        "shadow": 5,
        "textTransform": "uppercase",
    },
    "retro": {
        "fontFamily": "Rubik Mono One",
        "fontWeight": 400,
        "inactiveColor": "#FF00FF",
        "outlineColor": "#00FFFF",
        "backColor": "#000000",
        "backOpacity": 1.0,
        "outline": 1,
        "shadow": 3,
        "textTransform": "uppercase",
    },
    "netflix": {
        "fontFamily": "Consolas",
        "fontWeight": 400,
        "inactiveColor": "#FFFFFF",
        "backColor": "#000000",
        "backOpacity": 0.5,
        "outline": 0,
        "shadow": 1,
        "textTransform": "none",
    },
}
