"""Tests for the JSON input contract adapter (scene_engine.adapters.request_adapter).

WHY: The adapter is the only place untrusted input is checked. Every
rule it misses becomes a confusing failure deep inside rendering or
ffmpeg, so each rejection path is exercised with the message it gives.

HOW:
  - TestValidation: schema violations and the word timing rules
  - TestSceneConversion: camelCase to dataclasses, defaults, paths
  - TestStory: shared defaults, implicit indices, error prefixes
  - TestLoadRequestFile: single scene vs story files on disk
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from scene_engine import config
from scene_engine.adapters.request_adapter import (
    caption_style_from_dict,
    load_request_file,
    scene_request_from_dict,
    story_requests_from_dict,
    validate_request_dict,
)
from scene_engine.core.errors import InvalidSceneRequest
from scene_engine.core.ir import TextTransform
from scene_engine.formatters.presets import CAPTION_PRESETS
from scene_engine.pipeline import render_scene, scene_stem


def _scene(**overrides):
    data = {
        "imagePath": "/images/one.png",
        "width": 1080,
        "height": 1920,
        "duration": 4.5,
        "effect": "zoom_in",
        "wordTimestamps": [
            {"word": "the", "start": 0.0, "end": 0.3},
            {"word": "cat.", "start": 0.3, "end": 0.6},
        ],
    }
    data.update(overrides)
    return data


class TestValidation:

    def test_valid_request_passes(self):
        validate_request_dict(_scene())

    @pytest.mark.parametrize("missing", ["imagePath", "width", "height", "duration"])
    def test_required_fields(self, missing):
        data = _scene()
        del data[missing]
        with pytest.raises(InvalidSceneRequest, match=missing):
            validate_request_dict(data)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"width": 0},
            {"duration": 0},
            {"fps": 0},
            {"captionStyle": {"dimmedOpacity": 1.5}},
            {"captionStyle": {"wordsPerBatch": -1}},
            {"captionStyle": {"textTransform": "shout"}},
            {"backgroundAudio": {"filePath": "m.mp3", "volume": 101}},
            {"backgroundAudio": {"volume": 20}},
        ],
    )
    def test_schema_violations(self, overrides):
        with pytest.raises(InvalidSceneRequest, match="Invalid scene request"):
            validate_request_dict(_scene(**overrides))

    def test_error_names_the_json_path(self):
        with pytest.raises(InvalidSceneRequest, match="captionStyle/dimmedOpacity"):
            validate_request_dict(_scene(captionStyle={"dimmedOpacity": 2}))

    def test_word_must_end_after_start(self):
        words = [{"word": "x", "start": 1.0, "end": 1.0}]
        with pytest.raises(InvalidSceneRequest, match="must end after it starts"):
            validate_request_dict(_scene(wordTimestamps=words))

    def test_words_must_be_ordered(self):
        words = [
            {"word": "b", "start": 1.0, "end": 1.5},
            {"word": "a", "start": 0.5, "end": 0.9},
        ]
        with pytest.raises(InvalidSceneRequest, match="ordered by start"):
            validate_request_dict(_scene(wordTimestamps=words))

    def test_invalid_request_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_request_dict({"width": 10})


class TestSceneConversion:

    def test_fields_are_converted(self):
        request = scene_request_from_dict(
            _scene(sceneIndex=3, fps=24, text="the cat.", captionsEnabled=False)
        )
        assert request.image_path == Path("/images/one.png")
        assert (request.width, request.height, request.duration) == (1080, 1920, 4.5)
        assert request.effect == "zoom_in"
        assert request.fps == 24
        assert request.scene_index == 3
        assert request.captions_enabled is False
        assert [w.word for w in request.word_timestamps] == ["the", "cat."]

    def test_defaults(self):
        request = scene_request_from_dict(
            {"imagePath": "a.png", "width": 10, "height": 10, "duration": 1}
        )
        assert request.effect == "none"
        assert request.fps == config.DEFAULT_FPS
        assert request.word_timestamps == []
        assert request.captions_enabled is True
        assert request.background_audio is None
        assert request.narration_path is None

    def test_null_effect_means_none(self):
        assert scene_request_from_dict(_scene(effect=None)).effect == "none"

    def test_unknown_effect_passes_through(self):
        assert scene_request_from_dict(_scene(effect="spin")).effect == "spin"

    def test_relative_paths_resolve_against_base_dir(self, tmp_path):
        request = scene_request_from_dict(
            _scene(
                imagePath="img/one.png",
                narrationPath="voice.wav",
                backgroundAudio={"filePath": "music.mp3", "volume": 45},
            ),
            base_dir=tmp_path,
        )
        assert request.image_path == tmp_path / "img" / "one.png"
        assert request.narration_path == tmp_path / "voice.wav"
        assert request.background_audio.file_path == tmp_path / "music.mp3"
        assert request.background_audio.volume == 45.0

    def test_integral_floats_become_ints(self):
        request = scene_request_from_dict(
            _scene(width=1080.0, height=1920.0, fps=24.0, sceneIndex=2.0)
        )
        assert (request.width, request.height, request.fps) == (1080, 1920, 24)
        assert request.scene_index == 2
        assert all(
            type(v) is int
            for v in (request.width, request.height, request.fps, request.scene_index)
        )
        assert scene_stem(request.scene_index) == "scene-002"

    def test_float_dimensions_render_frames(self, source_image, tmp_path):
        request = scene_request_from_dict(
            _scene(
                imagePath=str(source_image), width=16.0, height=12.0,
                duration=0.4, fps=5.0, sceneIndex=2.0,
            )
        )
        render_scene(request, tmp_path / "out", assemble=False)
        frames = sorted((tmp_path / "out" / "scene-002-frames").glob("frame_*.png"))
        assert len(frames) == 2

    def test_background_volume_default(self):
        request = scene_request_from_dict(_scene(backgroundAudio={"filePath": "/m.mp3"}))
        assert request.background_audio.volume == 30.0

    def test_caption_style(self):
        style = caption_style_from_dict(
            {
                "fontFamily": "Inter",
                "fontSize": 36.6,
                "activeColor": "#00FF00",
                "wordsPerBatch": 0,
                "textTransform": "uppercase",
                "previewWidth": 360,
            }
        )
        assert style.font_family == "Inter"
        assert style.font_size == 37
        assert style.active_color == "#00FF00"
        assert style.words_per_batch == 0
        assert style.text_transform is TextTransform.UPPERCASE
        assert style.preview_width == 360
        assert style.inactive_color == config.DEFAULT_INACTIVE_COLOR

    def test_caption_style_integral_floats_become_ints(self):
        style = caption_style_from_dict(
            {"fontWeight": 700.0, "wordsPerBatch": 2.0, "previewWidth": 360.0,
             "outline": 1.0, "shadow": 0.0}
        )
        assert (style.font_weight, style.words_per_batch, style.preview_width) == (700, 2, 360)
        assert type(style.words_per_batch) is int
        assert type(style.preview_width) is int
        assert (style.outline, style.shadow) == (1, 0)

    @pytest.mark.parametrize("size,expected", [(20.5, 21), (21.5, 22), (20.49, 20)])
    def test_font_size_rounds_half_up(self, size, expected):
        assert caption_style_from_dict({"fontSize": size}).font_size == expected

    def test_preset_fills_missing_fields(self):
        style = caption_style_from_dict({"preset": "mrbeast"})
        assert style.font_family == "Anton"
        assert style.inactive_color == "#FFD700"
        assert (style.outline, style.shadow) == (4, 3)
        assert style.text_transform is TextTransform.UPPERCASE
        assert style.font_size == config.DEFAULT_FONT_SIZE

    def test_explicit_fields_override_the_preset(self):
        style = caption_style_from_dict(
            {"preset": "tiktok", "textTransform": "none", "outline": 1}
        )
        assert style.text_transform is TextTransform.NONE
        assert style.outline == 1
        assert style.font_weight == 900

    def test_presets_are_not_mutated(self):
        caption_style_from_dict({"preset": "tiktok", "outline": 9})
        assert CAPTION_PRESETS["tiktok"]["outline"] == 3

    def test_unknown_preset_is_rejected(self):
        with pytest.raises(InvalidSceneRequest, match="Unknown caption preset 'vhs'"):
            scene_request_from_dict(_scene(captionStyle={"preset": "vhs"}))

    def test_style_fields_are_schema_checked(self):
        with pytest.raises(InvalidSceneRequest, match="captionStyle/backOpacity"):
            scene_request_from_dict(_scene(captionStyle={"backOpacity": 2}))

    def test_empty_caption_style_uses_defaults(self):
        style = caption_style_from_dict(None)
        assert style.font_family == config.DEFAULT_FONT_FAMILY
        assert style.words_per_batch == config.DEFAULT_WORDS_PER_BATCH
        assert style.dimmed_opacity == config.DEFAULT_DIMMED_OPACITY


class TestStory:

    def test_shared_defaults_and_implicit_indices(self):
        data = {
            "width": 720,
            "height": 1280,
            "captionStyle": {"fontFamily": "Inter"},
            "scenes": [
                {"imagePath": "/a.png", "duration": 2},
                {"imagePath": "/b.png", "duration": 3, "width": 1080},
            ],
        }
        requests = story_requests_from_dict(data)
        assert [r.scene_index for r in requests] == [0, 1]
        assert [r.width for r in requests] == [720, 1080]
        assert all(r.caption_style.font_family == "Inter" for r in requests)

    def test_scene_error_is_prefixed_with_position(self):
        data = {"width": 10, "height": 10, "scenes": [
            {"imagePath": "/a.png", "duration": 1},
            {"imagePath": "/b.png"},
        ]}
        with pytest.raises(InvalidSceneRequest, match=r"^scenes\[1\]: "):
            story_requests_from_dict(data)

    @pytest.mark.parametrize("scenes", [None, [], "nope"])
    def test_scenes_must_be_a_non_empty_list(self, scenes):
        with pytest.raises(InvalidSceneRequest, match="non-empty 'scenes'"):
            story_requests_from_dict({"scenes": scenes})

    def test_scene_must_be_an_object(self):
        with pytest.raises(InvalidSceneRequest, match=r"scenes\[0\] must be an object"):
            story_requests_from_dict({"scenes": [3]})

    def test_duplicate_indices_rejected(self):
        data = {"width": 10, "height": 10, "duration": 1, "scenes": [
            {"imagePath": "/a.png", "sceneIndex": 1},
            {"imagePath": "/b.png", "sceneIndex": 1},
        ]}
        with pytest.raises(InvalidSceneRequest, match="unique"):
            story_requests_from_dict(data)


class TestLoadRequestFile:

    def test_single_scene(self, tmp_path):
        path = tmp_path / "request.json"
        path.write_text(json.dumps(_scene(imagePath="one.png")), encoding="utf-8")
        requests, is_story = load_request_file(path)
        assert is_story is False
        assert len(requests) == 1
        assert requests[0].image_path == tmp_path.resolve() / "one.png"

    def test_story(self, tmp_path):
        path = tmp_path / "story.json"
        path.write_text(
            json.dumps({"width": 10, "height": 10, "duration": 1,
                        "scenes": [{"imagePath": "a.png"}, {"imagePath": "b.png"}]}),
            encoding="utf-8",
        )
        requests, is_story = load_request_file(path)
        assert is_story is True
        assert [r.image_path.name for r in requests] == ["a.png", "b.png"]

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(InvalidSceneRequest, match="Cannot read request file"):
            load_request_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidSceneRequest, match="Cannot read request file"):
            load_request_file(tmp_path / "nope.json")

    def test_top_level_must_be_object(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(InvalidSceneRequest, match="JSON object"):
            load_request_file(path)
