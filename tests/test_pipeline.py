"""Tests for the scene and story pipeline (scene_engine.pipeline).

WHY: The pipeline decides file names, which caption gets burned, when
frames are removed, and how failures surface. Both the CLI and the API
depend on these decisions, so they are tested once here end to end
with real frames and a fake ffmpeg.

HOW:
  - TestRenderScene: outputs on disk, stage callbacks, options
  - TestCaptionDegradation: opt-in fallback to uncaptioned clips
  - TestFrameCleanup: frames removed even when assembly fails
  - TestRenderStory: ordering, failure isolation, story captions and
    the joined story video
  - TestHelpers: stems, burn selection, story track offsets
"""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from scene_engine.assembly import SceneAssembler
from scene_engine.core.errors import AssemblyStage, ExternalToolFailure
from scene_engine.core.ir import BackgroundAudio, CaptionStyle, WordTimestamp
from scene_engine.pipeline import (
    CaptionFile,
    build_story_track,
    render_scene,
    render_story,
    scene_stem,
    select_burn_caption,
)

from conftest import FakeRunner


class StoryBurnFailsRunner(FakeRunner):
    """Fails the caption burn of the story video only."""

    def run(self, args, stage, cancel_event=None):
        if stage is AssemblyStage.CAPTION_BURN and Path(args[-1]).name.startswith("story"):
            self.calls.append((list(args), stage))
            raise ExternalToolFailure(stage, "ffmpeg exited with code 1", returncode=1)
        return super().run(args, stage, cancel_event)


class TestRenderScene:

    def test_default_outputs(self, scene_request, fake_runner, tmp_path):
        out = tmp_path / "out"
        result = render_scene(scene_request, out, assembler=SceneAssembler(runner=fake_runner))

        names = sorted(p.name for p in out.iterdir())
        assert names == [
            "scene-000-captions.ass",
            "scene-000-captions.srt",
            "scene-000-scene-captions.ass",
            "scene-000.mp4",
        ]
        assert result.burned_caption == out / "scene-000-captions.ass"
        assert result.clip.captions_burned
        assert fake_runner.stages == [AssemblyStage.ENCODE, AssemblyStage.CAPTION_BURN]
        assert result.frames.total_frames == 10
        assert not result.captions_degraded
        assert result.output_files[-1] == out / "scene-000.mp4"

    def test_stage_callbacks_in_order(self, scene_request, fake_runner, tmp_path):
        stages = []
        render_scene(
            scene_request, tmp_path, assembler=SceneAssembler(runner=fake_runner),
            on_stage=stages.append,
        )
        assert stages == ["rendering", "captioning", "assembling"]

    def test_no_assemble_keeps_frames(self, scene_request, fake_runner, tmp_path):
        result = render_scene(
            scene_request, tmp_path, assembler=SceneAssembler(runner=fake_runner), assemble=False
        )
        assert result.clip is None
        assert fake_runner.calls == []
        assert len(list(result.frames.output_dir.glob("frame_*.png"))) == 10

    def test_keep_frames(self, scene_request, fake_runner, tmp_path):
        result = render_scene(
            scene_request, tmp_path, assembler=SceneAssembler(runner=fake_runner), keep_frames=True
        )
        assert (tmp_path / "scene-000-frames").is_dir()
        assert result.frames.paths[0].exists()

    def test_captions_disabled(self, scene_request, fake_runner, tmp_path):
        request = dataclasses.replace(scene_request, captions_enabled=False)
        stages = []
        result = render_scene(
            request, tmp_path, assembler=SceneAssembler(runner=fake_runner), on_stage=stages.append
        )
        assert result.caption_files == []
        assert "captioning" not in stages
        assert fake_runner.stages == [AssemblyStage.ENCODE]

    def test_selected_formats_only(self, scene_request, fake_runner, tmp_path):
        result = render_scene(
            scene_request, tmp_path, assembler=SceneAssembler(runner=fake_runner),
            formats=["srt_scene_lines"],
        )
        assert [c.key for c in result.caption_files] == ["srt_scene_lines"]
        # SRT is never burned
        assert result.burned_caption is None
        assert fake_runner.stages == [AssemblyStage.ENCODE]

    def test_no_words_burns_scene_lines(self, scene_request, fake_runner, tmp_path):
        request = dataclasses.replace(scene_request, word_timestamps=[])
        result = render_scene(request, tmp_path, assembler=SceneAssembler(runner=fake_runner))
        assert result.burned_caption == tmp_path / "scene-000-scene-captions.ass"

    def test_scene_index_sets_file_stem(self, scene_request, fake_runner, tmp_path):
        request = dataclasses.replace(scene_request, scene_index=7)
        result = render_scene(request, tmp_path, assembler=SceneAssembler(runner=fake_runner))
        assert result.clip.output_path.name == "scene-007.mp4"


class TestCaptionDegradation:

    def test_caption_generation_error_propagates_by_default(self, scene_request, fake_runner, tmp_path):
        request = dataclasses.replace(scene_request, caption_style=CaptionStyle(words_per_batch=-1))
        with pytest.raises(ValueError):
            render_scene(
                request, tmp_path, assembler=SceneAssembler(runner=fake_runner),
                formats=["ass_word_highlight"],
            )

    def test_caption_generation_error_degrades(self, scene_request, fake_runner, tmp_path, caplog):
        request = dataclasses.replace(scene_request, caption_style=CaptionStyle(words_per_batch=-1))
        result = render_scene(
            request, tmp_path, assembler=SceneAssembler(runner=fake_runner),
            formats=["ass_word_highlight"], degrade_captions=True,
        )
        assert result.captions_degraded
        assert result.clip is not None and not result.clip.captions_burned
        assert "continuing without captions" in caplog.text

    def test_burn_failure_propagates_by_default(self, scene_request, tmp_path):
        runner = FakeRunner(fail_stage=AssemblyStage.CAPTION_BURN)
        with pytest.raises(ExternalToolFailure) as excinfo:
            render_scene(scene_request, tmp_path, assembler=SceneAssembler(runner=runner))
        assert excinfo.value.stage is AssemblyStage.CAPTION_BURN

    def test_burn_failure_degrades_to_uncaptioned_clip(self, scene_request, tmp_path):
        runner = FakeRunner(fail_stage=AssemblyStage.CAPTION_BURN)
        result = render_scene(
            scene_request, tmp_path, assembler=SceneAssembler(runner=runner), degrade_captions=True
        )
        assert runner.stages == [
            AssemblyStage.ENCODE, AssemblyStage.CAPTION_BURN, AssemblyStage.ENCODE,
        ]
        assert result.captions_degraded
        assert result.burned_caption is None
        assert not result.clip.captions_burned
        assert (tmp_path / "scene-000.mp4").exists()

    def test_encode_failure_is_never_degraded(self, scene_request, tmp_path):
        runner = FakeRunner(fail_stage=AssemblyStage.ENCODE)
        with pytest.raises(ExternalToolFailure) as excinfo:
            render_scene(
                scene_request, tmp_path, assembler=SceneAssembler(runner=runner), degrade_captions=True
            )
        assert excinfo.value.stage is AssemblyStage.ENCODE


class TestFrameCleanup:

    @pytest.mark.parametrize("stage", [AssemblyStage.ENCODE, AssemblyStage.CAPTION_BURN])
    def test_frames_removed_after_failed_assembly(self, scene_request, tmp_path, stage):
        runner = FakeRunner(fail_stage=stage)
        with pytest.raises(ExternalToolFailure):
            render_scene(scene_request, tmp_path, assembler=SceneAssembler(runner=runner))
        assert not (tmp_path / "scene-000-frames").exists()

    def test_frames_removed_after_failed_audio_mix(self, scene_request, tmp_path):
        voice = tmp_path / "voice.wav"
        voice.write_bytes(b"wav")
        request = dataclasses.replace(scene_request, narration_path=voice)
        runner = FakeRunner(fail_stage=AssemblyStage.AUDIO_MIX)
        with pytest.raises(ExternalToolFailure):
            render_scene(request, tmp_path, assembler=SceneAssembler(runner=runner))
        assert not (tmp_path / "scene-000-frames").exists()
        assert not (tmp_path / "scene-000.mp4").exists()

    def test_keep_frames_survives_failed_assembly(self, scene_request, tmp_path):
        runner = FakeRunner(fail_stage=AssemblyStage.ENCODE)
        with pytest.raises(ExternalToolFailure):
            render_scene(
                scene_request, tmp_path, assembler=SceneAssembler(runner=runner), keep_frames=True
            )
        assert len(list((tmp_path / "scene-000-frames").glob("frame_*.png"))) == 10

    def test_failed_story_scene_leaves_no_frames(self, scene_request, tmp_path):
        runner = FakeRunner(fail_stage=AssemblyStage.ENCODE)
        story = render_story(
            [scene_request], tmp_path, assembler=SceneAssembler(runner=runner)
        )
        assert [o.ok for o in story.outcomes] == [False]
        assert not list(tmp_path.glob("*-frames"))


class TestRenderStory:

    def _story(self, scene_request, tmp_path):
        return [
            dataclasses.replace(scene_request, scene_index=0),
            dataclasses.replace(scene_request, scene_index=1, image_path=tmp_path / "missing.png"),
            dataclasses.replace(scene_request, scene_index=2, effect="pan_right"),
        ]

    def _good_story(self, scene_request, **changes):
        return [
            dataclasses.replace(scene_request, scene_index=i, **changes) for i in range(3)
        ]

    def test_failing_scene_is_isolated(self, scene_request, fake_runner, tmp_path):
        out = tmp_path / "story"
        story = render_story(
            self._story(scene_request, tmp_path), out,
            assembler=SceneAssembler(runner=fake_runner), max_parallel_scenes=2,
        )
        assert [o.scene_index for o in story.outcomes] == [0, 1, 2]
        assert [o.ok for o in story.outcomes] == [True, False, True]
        assert [o.scene_index for o in story.failed] == [1]
        assert (out / "scene-000.mp4").exists()
        assert (out / "scene-002.mp4").exists()
        assert not (out / "scene-001.mp4").exists()

    def test_failed_scene_skips_story_captions_and_video(self, scene_request, fake_runner, tmp_path):
        out = tmp_path / "story"
        story = render_story(
            self._story(scene_request, tmp_path), out, assembler=SceneAssembler(runner=fake_runner),
        )
        assert story.caption_files == []
        assert story.clip is None
        assert not story.ok
        assert not list(out.glob("story*"))
        assert AssemblyStage.CONCAT not in fake_runner.stages

    def test_story_caption_files_are_offset(self, scene_request, fake_runner, tmp_path):
        out = tmp_path / "story"
        story = render_story(
            self._good_story(scene_request), out, assembler=SceneAssembler(runner=fake_runner),
        )
        names = sorted(c.path.name for c in story.caption_files)
        assert names == ["story-captions.ass", "story-captions.srt", "story-scene-captions.ass"]
        ass = (out / "story-captions.ass").read_text(encoding="utf-8")
        # Scene 1 starts 2 seconds in, scene 2 at 4 seconds
        assert "Dialogue: 0,0:00:02.00," in ass
        assert "Dialogue: 0,0:00:04.00," in ass

    def test_scene_clips_are_joined_into_story_video(self, scene_request, fake_runner, tmp_path):
        out = tmp_path / "story"
        story = render_story(
            self._good_story(scene_request), out,
            assembler=SceneAssembler(runner=fake_runner), max_parallel_scenes=1,
        )
        assert story.ok
        assert story.clip.output_path == out / "story.mp4"
        assert (out / "story.mp4").exists()
        assert story.clip.duration == pytest.approx(6.0)
        assert story.clip.captions_burned
        assert story.burned_caption == out / "story-captions.ass"
        assert fake_runner.stages[-2:] == [AssemblyStage.CONCAT, AssemblyStage.CAPTION_BURN]

        concat_args = fake_runner.calls[-2][0]
        assert concat_args[:6] == ["-f", "concat", "-safe", "0", "-i", str(out / "story.concat.txt")]
        burn_args = fake_runner.calls[-1][0]
        assert "story-captions.ass" in burn_args[burn_args.index("-vf") + 1]
        # Only final outputs remain
        assert not (out / "story.concat.txt").exists()
        assert not (out / "story.joined.mp4").exists()
        assert not list(out.glob("*-frames"))

    def test_no_assemble_writes_story_captions_only(self, scene_request, fake_runner, tmp_path):
        story = render_story(
            self._good_story(scene_request), tmp_path,
            assembler=SceneAssembler(runner=fake_runner), assemble=False,
        )
        assert story.clip is None
        assert len(story.caption_files) == 3
        assert fake_runner.calls == []

    def test_shared_music_is_mixed_once_over_the_story(self, scene_request, fake_runner, tmp_path):
        music = tmp_path / "music.mp3"
        music.write_bytes(b"mp3")
        story = render_story(
            self._good_story(scene_request, background_audio=BackgroundAudio(file_path=music, volume=20)),
            tmp_path, assembler=SceneAssembler(runner=fake_runner), max_parallel_scenes=1,
        )
        assert story.ok
        scene_stages = fake_runner.stages[:-3]
        assert AssemblyStage.AUDIO_MIX not in scene_stages
        assert fake_runner.stages[-3:] == [
            AssemblyStage.CONCAT, AssemblyStage.CAPTION_BURN, AssemblyStage.AUDIO_MIX,
        ]
        assert story.clip.audio_mixed
        mix_args = fake_runner.calls[-1][0]
        assert str(music) in mix_args
        assert mix_args[mix_args.index("-t") + 1] == "6.000"
        assert all(not o.result.clip.audio_mixed for o in story.outcomes)

    def test_per_scene_music_stays_in_scene_clips(self, scene_request, fake_runner, tmp_path):
        requests = [
            dataclasses.replace(
                scene_request, scene_index=i,
                background_audio=BackgroundAudio(file_path=tmp_path / "m{}.mp3".format(i)),
            )
            for i in range(2)
        ]
        story = render_story(
            requests, tmp_path, assembler=SceneAssembler(runner=fake_runner), max_parallel_scenes=1,
        )
        assert all(o.result.clip.audio_mixed for o in story.outcomes)
        # Scene audio is carried through the story passes
        concat_args = fake_runner.calls[-2][0]
        assert concat_args[concat_args.index("-map", 7) + 1] == "0:a:0"
        burn_args = fake_runner.calls[-1][0]
        assert burn_args[-3:-1] == ["-c:a", "copy"]
        assert not story.clip.audio_mixed

    def test_story_stage_failure_is_recorded(self, scene_request, tmp_path):
        runner = FakeRunner(fail_stage=AssemblyStage.CONCAT)
        story = render_story(
            self._good_story(scene_request), tmp_path, assembler=SceneAssembler(runner=runner),
        )
        assert story.failed == []
        assert story.clip is None
        assert isinstance(story.error, ExternalToolFailure)
        assert story.error.stage is AssemblyStage.CONCAT
        assert not story.ok
        assert not (tmp_path / "story.concat.txt").exists()

    def test_story_burn_failure_degrades(self, scene_request, tmp_path):
        runner = StoryBurnFailsRunner()
        story = render_story(
            self._good_story(scene_request), tmp_path, assembler=SceneAssembler(runner=runner),
            degrade_captions=True, max_parallel_scenes=1,
        )
        assert story.ok
        assert story.captions_degraded
        assert story.burned_caption is None
        assert not story.clip.captions_burned
        assert runner.stages[-3:] == [
            AssemblyStage.CONCAT, AssemblyStage.CAPTION_BURN, AssemblyStage.CONCAT,
        ]
        # Scene clips still carry their own captions
        assert all(o.result.clip.captions_burned for o in story.outcomes)

    def test_story_burn_failure_without_degrade_is_recorded(self, scene_request, tmp_path):
        story = render_story(
            self._good_story(scene_request), tmp_path,
            assembler=SceneAssembler(runner=StoryBurnFailsRunner()),
        )
        assert story.error.stage is AssemblyStage.CAPTION_BURN
        assert story.clip is None
        assert len(story.caption_files) == 3

    def test_story_without_captions(self, scene_request, fake_runner, tmp_path):
        requests = [dataclasses.replace(scene_request, captions_enabled=False)]
        story = render_story(requests, tmp_path, assembler=SceneAssembler(runner=fake_runner))
        assert story.caption_files == []
        assert story.failed == []
        assert story.clip is not None
        assert not story.clip.captions_burned
        assert fake_runner.stages == [AssemblyStage.ENCODE, AssemblyStage.CONCAT]


class TestHelpers:

    def test_scene_stem(self):
        assert scene_stem(0) == "scene-000"
        assert scene_stem(42) == "scene-042"

    def test_select_burn_caption_prefers_word_highlight(self, tmp_path):
        files = [
            CaptionFile("srt_scene_lines", tmp_path / "a.srt", "application/x-subrip"),
            CaptionFile("ass_scene_lines", tmp_path / "b.ass", "text/x-ssa"),
            CaptionFile("ass_word_highlight", tmp_path / "c.ass", "text/x-ssa"),
        ]
        assert select_burn_caption(files) == tmp_path / "c.ass"
        assert select_burn_caption(files[:2]) == tmp_path / "b.ass"
        assert select_burn_caption(files[:1]) is None

    def test_build_story_track_orders_by_scene_index(self, scene_request):
        later = dataclasses.replace(
            scene_request, scene_index=1, duration=3.0,
            word_timestamps=[WordTimestamp("end", 0.5, 1.0)], text="end",
        )
        track = build_story_track([later, scene_request])
        assert [w.word for w in track.words] == ["the", "cat.", "sat", "end"]
        assert track.words[-1].start == pytest.approx(2.5)
        assert [line.duration for line in track.scene_lines] == [2.0, 3.0]
        assert track.reference_text == "the cat. sat end"

    def test_build_story_track_empty(self):
        assert build_story_track([]) is None
