"""Adapter: engine input contract (JSON) to SceneRequest dataclasses.

WHY: Callers describe scenes in a camelCase JSON contract (imagePath,
wordTimestamps, captionStyle, backgroundAudio). The engine works on
typed snake_case dataclasses. Validating at this single boundary means
every later stage can trust its input, and a malformed request fails
with one readable message instead of a stack trace deep in rendering.

HOW: Three steps applied in order:
  1. Structural validation — jsonschema against scene_request.schema.json
  2. Semantic validation — word timing rules jsonschema cannot express
  3. Conversion — camelCase keys to the ir dataclasses, relative paths
     resolved against ``base_dir``
A story is ``{"scenes": [...]}``; any other top-level keys are shared
defaults merged under each scene, and a scene without ``sceneIndex``
gets its position in the list.

RULES:
- Any violation raises InvalidSceneRequest (a ValueError)
- Words must have end > start and be ordered by start
- Unknown effect identifiers pass through; the renderer falls back to
  "none" and logs it
- Missing captionStyle fields take the named preset, then the config
  defaults
- Schema "integer" fields accept 2.0; they are coerced to int here
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import jsonschema

from scene_engine import config
from scene_engine.core.errors import InvalidSceneRequest
from scene_engine.core.geometry import round_half_up
from scene_engine.core.ir import (
    BackgroundAudio,
    CaptionStyle,
    SceneRequest,
    TextTransform,
    WordTimestamp,
)
from scene_engine.formatters.presets import CAPTION_PRESETS

_SCHEMA_PATH = Path(__file__).resolve().parent / "scene_request.schema.json"


def _load_schema() -> dict[str, Any]:
    """Load the scene request JSON schema from disk.

    Cached at module level after first call to avoid repeated I/O.
    """
    with open(_SCHEMA_PATH, encoding="utf-8") as f:
        return json.load(f)


_CACHED_SCHEMA: dict[str, Any] | None = None


def _get_schema() -> dict[str, Any]:
    global _CACHED_SCHEMA
    if _CACHED_SCHEMA is None:
        _CACHED_SCHEMA = _load_schema()
    return _CACHED_SCHEMA


def validate_request_dict(data: Any) -> None:
    """Check one scene dict against the schema and the word timing rules.

    Raises:
        InvalidSceneRequest: With the offending JSON path in the message.
    """
    try:
        jsonschema.validate(instance=data, schema=_get_schema())
    except jsonschema.ValidationError as exc:
        location = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        raise InvalidSceneRequest(
            "Invalid scene request at {}: {}".format(location, exc.message)
        ) from exc

    previous_start = None
    for i, word in enumerate(data.get("wordTimestamps") or []):
        if word["end"] <= word["start"]:
            raise InvalidSceneRequest(
                "wordTimestamps[{}] ('{}') must end after it starts "
                "(start={}, end={})".format(i, word["word"], word["start"], word["end"])
            )
        if previous_start is not None and word["start"] < previous_start:
            raise InvalidSceneRequest(
                "wordTimestamps must be ordered by start; index {} starts at {} "
                "before the previous word at {}".format(i, word["start"], previous_start)
            )
        previous_start = word["start"]


def _resolve_path(raw: str, base_dir: Optional[Path]) -> Path:
    path = Path(raw).expanduser()
    if base_dir is not None and not path.is_absolute():
        path = base_dir / path
    return path


def caption_style_from_dict(data: Optional[Dict[str, Any]]) -> CaptionStyle:
    """Build a CaptionStyle, filling missing fields from config defaults.

    A ``preset`` key names an entry of CAPTION_PRESETS; the preset's
    keys fill in first and the caller's explicit keys win over them.

    Raises:
        InvalidSceneRequest: If ``preset`` names no known preset.
    """
    data = data or {}
    preset = data.get("preset")
    if preset is not None:
        if preset not in CAPTION_PRESETS:
            raise InvalidSceneRequest(
                "Unknown caption preset '{}'. Available: {}".format(
                    preset, ", ".join(sorted(CAPTION_PRESETS))
                )
            )
        merged = dict(CAPTION_PRESETS[preset])
        merged.update(data)
        data = merged

    preview_width = data.get("previewWidth")
    return CaptionStyle(
        font_family=data.get("fontFamily", config.DEFAULT_FONT_FAMILY),
        font_size=round_half_up(data.get("fontSize", config.DEFAULT_FONT_SIZE)),
        font_weight=int(data.get("fontWeight", config.DEFAULT_FONT_WEIGHT)),
        active_color=data.get("activeColor", config.DEFAULT_ACTIVE_COLOR),
        inactive_color=data.get("inactiveColor", config.DEFAULT_INACTIVE_COLOR),
        dimmed_opacity=float(data.get("dimmedOpacity", config.DEFAULT_DIMMED_OPACITY)),
        words_per_batch=int(data.get("wordsPerBatch", config.DEFAULT_WORDS_PER_BATCH)),
        text_transform=TextTransform(data.get("textTransform", TextTransform.NONE.value)),
        position_from_bottom=float(
            data.get("positionFromBottom", config.DEFAULT_POSITION_FROM_BOTTOM)
        ),
        preview_width=int(preview_width) if preview_width is not None else None,
        outline_color=data.get("outlineColor", config.DEFAULT_OUTLINE_COLOR),
        back_color=data.get("backColor", config.DEFAULT_BACK_COLOR),
        back_opacity=float(data.get("backOpacity", config.DEFAULT_BACK_OPACITY)),
        outline=int(data.get("outline", config.DEFAULT_OUTLINE)),
        shadow=int(data.get("shadow", config.DEFAULT_SHADOW)),
    )


def scene_request_from_dict(
    data: Dict[str, Any],
    base_dir: Optional[Union[str, Path]] = None,
) -> SceneRequest:
    """Validate and convert one scene of the input contract.

    Args:
        data: The scene dict (camelCase keys).
        base_dir: Directory relative file paths are resolved against.

    Returns:
        A SceneRequest ready for the pipeline.

    Raises:
        InvalidSceneRequest: If the dict violates the contract.
    """
    validate_request_dict(data)
    base = Path(base_dir) if base_dir is not None else None

    background = None
    audio = data.get("backgroundAudio")
    if audio:
        background = BackgroundAudio(
            file_path=_resolve_path(audio["filePath"], base),
            volume=float(audio.get("volume", 30.0)),
        )

    narration = data.get("narrationPath")
    return SceneRequest(
        image_path=_resolve_path(data["imagePath"], base),
        width=int(data["width"]),
        height=int(data["height"]),
        duration=float(data["duration"]),
        effect=data.get("effect") or "none",
        fps=int(data.get("fps", config.DEFAULT_FPS)),
        word_timestamps=[
            WordTimestamp(word=w["word"], start=float(w["start"]), end=float(w["end"]))
            for w in data.get("wordTimestamps") or []
        ],
        caption_style=caption_style_from_dict(data.get("captionStyle")),
        captions_enabled=data.get("captionsEnabled", True),
        text=data.get("text"),
        background_audio=background,
        narration_path=_resolve_path(narration, base) if narration else None,
        scene_index=int(data.get("sceneIndex", 0)),
    )


def story_requests_from_dict(
    data: Dict[str, Any],
    base_dir: Optional[Union[str, Path]] = None,
) -> List[SceneRequest]:
    """Convert a ``{"scenes": [...]}`` story into ordered SceneRequests.

    Raises:
        InvalidSceneRequest: If the story or any scene is invalid; the
            message names the scene position.
    """
    scenes = data.get("scenes")
    if not isinstance(scenes, list) or not scenes:
        raise InvalidSceneRequest("A story needs a non-empty 'scenes' list")

    shared = {k: v for k, v in data.items() if k != "scenes"}
    requests: List[SceneRequest] = []
    for position, scene in enumerate(scenes):
        if not isinstance(scene, dict):
            raise InvalidSceneRequest("scenes[{}] must be an object".format(position))
        merged = dict(shared)
        merged.update(scene)
        merged.setdefault("sceneIndex", position)
        try:
            requests.append(scene_request_from_dict(merged, base_dir))
        except InvalidSceneRequest as exc:
            raise InvalidSceneRequest("scenes[{}]: {}".format(position, exc)) from exc

    indices = [r.scene_index for r in requests]
    if len(set(indices)) != len(indices):
        raise InvalidSceneRequest("Scene indices must be unique, got {}".format(indices))
    return requests


def load_request_file(path: Union[str, Path]) -> Tuple[List[SceneRequest], bool]:
    """Read a request JSON file.

    Relative paths inside the file are resolved against the file's
    directory.

    Returns:
        (requests, is_story): one request for a single scene, or every
        scene of a story with is_story True.

    Raises:
        InvalidSceneRequest: Unreadable JSON or an invalid request.
    """
    request_path = Path(path)
    try:
        data = json.loads(request_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise InvalidSceneRequest(
            "Cannot read request file {}: {}".format(request_path, exc)
        ) from exc

    if not isinstance(data, dict):
        raise InvalidSceneRequest("Request file must contain a JSON object")

    base_dir = request_path.resolve().parent
    if "scenes" in data:
        return story_requests_from_dict(data, base_dir), True
    return [scene_request_from_dict(data, base_dir)], False
