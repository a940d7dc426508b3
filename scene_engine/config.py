"""Configuration constants, motion defaults, and .env loading.

WHY: Centralizes all tunable values so they are easy to find, update,
and override. The working-canvas oversize factor and the pan/drift
fractions are product decisions rather than mathematical necessities,
so they live here as plain numbers instead of being buried in the
transform code.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level values read from environment variables with defaults.

RULES:
- Every default can be overridden via a SCENE_ENGINE_* environment variable
- Motion constants here are only defaults; MotionParams carries the
  values actually used by a render so concurrent renders can differ
- Supported extensions are lowercase, with dot
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


# ---------------------------------------------------------------------------
# Frame rendering
# ---------------------------------------------------------------------------

DEFAULT_FPS = _env_int("SCENE_ENGINE_FPS", 30)

CANVAS_OVERSIZE = _env_float("SCENE_ENGINE_CANVAS_OVERSIZE", 1.3)
"""Working canvas size as a multiple of the output frame, both axes."""

PAN_FRACTION = _env_float("SCENE_ENGINE_PAN_FRACTION", 0.04)
"""Pan sweep half-range as a fraction of the output frame width."""

DRIFT_FRACTION = _env_float("SCENE_ENGINE_DRIFT_FRACTION", 0.015)
"""Floating drift amplitude as a fraction of each axis length."""

FRAME_BATCH_SIZE = _env_int("SCENE_ENGINE_FRAME_BATCH_SIZE", 50)
"""Maximum number of frames in flight at once within one scene."""

FRAME_WORKERS = _env_int("SCENE_ENGINE_FRAME_WORKERS", min(8, os.cpu_count() or 1))
SCENE_WORKERS = _env_int("SCENE_ENGINE_SCENE_WORKERS", 2)

PNG_COMPRESS_LEVEL = _env_int("SCENE_ENGINE_PNG_COMPRESS_LEVEL", 6)

FRAME_FILENAME_TEMPLATE = "frame_{:06d}.png"
FRAME_FILENAME_PATTERN = "frame_%06d.png"
"""printf-style twin of FRAME_FILENAME_TEMPLATE, as ffmpeg expects it."""

# ---------------------------------------------------------------------------
# External encoder
# ---------------------------------------------------------------------------

FFMPEG_BINARY = os.getenv("SCENE_ENGINE_FFMPEG", "ffmpeg")
FFMPEG_TIMEOUT_S = _env_float("SCENE_ENGINE_FFMPEG_TIMEOUT", 600.0)

# ---------------------------------------------------------------------------
# Supported input file extensions
# ---------------------------------------------------------------------------

SUPPORTED_IMAGE_FORMATS: set[str] = {
    ".jpg", ".jpeg", ".png", ".webp", ".bmp", ".tiff",
}

SUPPORTED_AUDIO_FORMATS: set[str] = {
    ".aac", ".flac", ".m4a", ".mp3", ".ogg", ".wav", ".webm",
}

# ---------------------------------------------------------------------------
# Caption defaults
# ---------------------------------------------------------------------------

DEFAULT_FONT_FAMILY = "Montserrat"
DEFAULT_FONT_SIZE = 48
DEFAULT_FONT_WEIGHT = 700
DEFAULT_ACTIVE_COLOR = "#FFEB3B"
DEFAULT_INACTIVE_COLOR = "#FFFFFF"
DEFAULT_DIMMED_OPACITY = 0.6
DEFAULT_WORDS_PER_BATCH = 3
DEFAULT_OUTLINE_COLOR = "#000000"
DEFAULT_BACK_COLOR = "#000000"
DEFAULT_BACK_OPACITY = 0.5
DEFAULT_OUTLINE = 3
DEFAULT_SHADOW = 2
DEFAULT_POSITION_FROM_BOTTOM = 20
"""Caption baseline distance from the bottom edge, percent of video height."""

BOLD_WEIGHT_THRESHOLD = 600
