"""Scene Assembly Coordinator: frames, captions and audio into one clip.

WHY: A rendered scene is a directory of PNG frames, an optional ASS
caption document, and optional narration/music. The coordinator turns
them into a single MP4 while keeping each external step separately
attributable, so "the captions failed to burn" is never confused with
"the codec failed".

HOW: Up to three ffmpeg passes, each its own AssemblyStage:
  1. encode       — frame_%06d.png at the scene fps → H.264 video-only
  2. caption-burn — subtitles filter over the encoded video (optional)
  3. audio-mix    — narration padded to the clip length and/or background
                    music looped, scaled to volume/100, mixed with amix,
                    trimmed to the clip duration (optional)
The last pass writes to a temporary name that is renamed onto the
requested output path; intermediates are removed.

A story video reuses the same passes over finished scene clips:
concat (the concat demuxer, stream copy) replaces encode, then the
story caption track is burned and the music bed is mixed over the
whole story at once.

RULES:
- Clip duration is total_frames / fps, the exact frame-sequence length
- Background volume is a percentage clamped to [0, 100]
- Music shorter than the clip loops; longer music is trimmed
- Video is stream-copied in the audio-mix pass (no second re-encode)
- Failures raise ExternalToolFailure naming the stage
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from scene_engine.assembly.ffmpeg import FFmpegRunner
from scene_engine.core.errors import AssemblyStage
from scene_engine.core.ir import BackgroundAudio
from scene_engine.core.renderer import RenderedFrames

logger = logging.getLogger(__name__)


def escape_filter_path(path: Union[str, Path]) -> str:
    """Escape a file path for use inside an ffmpeg filter argument."""
    return str(path).replace("\\", "/").replace(":", "\\:").replace("'", "\\'")


def concat_list_entry(path: Union[str, Path]) -> str:
    """Quote a path for a ``file '...'`` line of a concat demuxer list."""
    return str(Path(path).resolve()).replace("'", "'\\''")


@dataclass
class AssembledClip:
    """Result of assembling one clip."""

    output_path: Path
    duration: float
    captions_burned: bool = False
    audio_mixed: bool = False
    stages: List[AssemblyStage] = field(default_factory=list)


class SceneAssembler:
    """Thin orchestrator over ffmpeg for one clip at a time.

    RULES:
    - Stateless between calls; safe to share across scene threads
    - All ffmpeg calls go through ``runner`` (replaceable in tests)
    """

    def __init__(
        self,
        runner: Optional[FFmpegRunner] = None,
        crf: int = 15,
        preset: str = "medium",
        audio_bitrate: str = "256k",
        sample_rate: int = 48000,
    ) -> None:
        self.runner = runner or FFmpegRunner()
        self.crf = crf
        self.preset = preset
        self.audio_bitrate = audio_bitrate
        self.sample_rate = sample_rate

    def _video_codec_args(self) -> List[str]:
        return [
            "-c:v", "libx264",
            "-pix_fmt", "yuv420p",
            "-preset", self.preset,
            "-crf", str(self.crf),
        ]

    def encode(
        self,
        frames: RenderedFrames,
        output_path: Path,
        cancel_event: Optional[threading.Event] = None,
    ) -> Path:
        """Encode the ordered frame sequence into a video-only file."""
        args = ["-framerate", str(frames.fps), "-i", frames.pattern]
        args += self._video_codec_args()
        args += ["-an", str(output_path)]
        self.runner.run(args, AssemblyStage.ENCODE, cancel_event)
        return output_path

    def burn_captions(
        self,
        video_path: Path,
        subtitle_path: Path,
        output_path: Path,
        cancel_event: Optional[threading.Event] = None,
        copy_audio: bool = False,
    ) -> Path:
        """Render an ASS document onto the video frames.

        With copy_audio the input's audio stream is carried over
        unchanged; otherwise the output is video-only.
        """
        args = [
            "-i", str(video_path),
            "-vf", "subtitles='{}'".format(escape_filter_path(subtitle_path)),
        ]
        args += self._video_codec_args()
        args += ["-c:a", "copy"] if copy_audio else ["-an"]
        args.append(str(output_path))
        self.runner.run(args, AssemblyStage.CAPTION_BURN, cancel_event)
        return output_path

    def mix_audio(
        self,
        video_path: Path,
        output_path: Path,
        duration: float,
        narration_path: Optional[Path] = None,
        background: Optional[BackgroundAudio] = None,
        cancel_event: Optional[threading.Event] = None,
        keep_video_audio: bool = False,
    ) -> Path:
        """Attach narration and/or looped background music to the video.

        With keep_video_audio the video's own audio track takes the
        narration's place in the mix.

        Raises:
            ValueError: If neither narration nor background is given, or
                if narration_path is combined with keep_video_audio.
        """
        if narration_path is None and background is None:
            raise ValueError("mix_audio needs narration_path or background")
        if narration_path is not None and keep_video_audio:
            raise ValueError("mix_audio takes narration_path or keep_video_audio, not both")

        args = ["-i", str(video_path)]
        chains: List[str] = []
        labels: List[str] = []
        next_input = 1

        if keep_video_audio:
            chains.append("[0:a]apad[nar]")
            labels.append("[nar]")
        elif narration_path is not None:
            args += ["-i", str(narration_path)]
            chains.append("[{}:a]apad[nar]".format(next_input))
            labels.append("[nar]")
            next_input += 1

        if background is not None:
            volume = max(0.0, min(float(background.volume), 100.0)) / 100.0
            args += ["-stream_loop", "-1", "-i", str(background.file_path)]
            chains.append("[{}:a]volume={:.4f}[bg]".format(next_input, volume))
            labels.append("[bg]")

        if len(labels) == 2:
            chains.append(
                "[nar][bg]amix=inputs=2:duration=longest:dropout_transition=2:normalize=0[mixed]"
            )
        else:
            chains.append("{}anull[mixed]".format(labels[0]))

        args += [
            "-filter_complex", ";".join(chains),
            "-map", "0:v:0",
            "-map", "[mixed]",
            "-c:v", "copy",
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            "-ar", str(self.sample_rate),
            "-t", "{:.3f}".format(duration),
            "-movflags", "+faststart",
            str(output_path),
        ]
        self.runner.run(args, AssemblyStage.AUDIO_MIX, cancel_event)
        return output_path

    def concat(
        self,
        clip_paths: Sequence[Path],
        list_path: Path,
        output_path: Path,
        with_audio: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> Path:
        """Join clips end to end with the concat demuxer, without re-encoding.

        The clips must share codec parameters, which holds for clips
        produced by the same assembler. with_audio maps each clip's
        first audio stream as well; every clip must then carry one.

        Raises:
            ValueError: If clip_paths is empty.
        """
        if not clip_paths:
            raise ValueError("concat needs at least one clip")
        list_path.write_text(
            "".join("file '{}'\n".format(concat_list_entry(p)) for p in clip_paths),
            encoding="utf-8",
        )
        args = ["-f", "concat", "-safe", "0", "-i", str(list_path), "-map", "0:v:0"]
        if with_audio:
            args += ["-map", "0:a:0"]
        else:
            args.append("-an")
        args += ["-c", "copy", "-movflags", "+faststart", str(output_path)]
        self.runner.run(args, AssemblyStage.CONCAT, cancel_event)
        return output_path

    def assemble(
        self,
        frames: RenderedFrames,
        output_path: Union[str, Path],
        subtitle_path: Optional[Path] = None,
        background_audio: Optional[BackgroundAudio] = None,
        narration_path: Optional[Path] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> AssembledClip:
        """Run encode → caption-burn → audio-mix and produce one file.

        Args:
            frames: Output of FrameRenderer.render().
            output_path: Final clip path (.mp4).
            subtitle_path: ASS document to burn, or None for no captions.
            background_audio: Music bed with volume 0-100, or None.
            narration_path: Narration track, or None.
            cancel_event: Set from another thread to kill the running stage.

        Returns:
            AssembledClip describing what was applied.

        Raises:
            ExternalToolFailure: The failing stage and ffmpeg's stderr.
        """
        final = Path(output_path)
        final.parent.mkdir(parents=True, exist_ok=True)
        duration = frames.total_frames / float(frames.fps)
        clip = AssembledClip(output_path=final, duration=duration)
        intermediates: List[Path] = []

        def stage_path(tag: str) -> Path:
            path = final.with_name("{}.{}{}".format(final.stem, tag, final.suffix or ".mp4"))
            intermediates.append(path)
            return path

        try:
            current = self.encode(frames, stage_path("encoded"), cancel_event)
            clip.stages.append(AssemblyStage.ENCODE)

            if subtitle_path is not None:
                current = self.burn_captions(
                    current, subtitle_path, stage_path("captioned"), cancel_event
                )
                clip.stages.append(AssemblyStage.CAPTION_BURN)
                clip.captions_burned = True

            if narration_path is not None or background_audio is not None:
                current = self.mix_audio(
                    current,
                    stage_path("mixed"),
                    duration,
                    narration_path=narration_path,
                    background=background_audio,
                    cancel_event=cancel_event,
                )
                clip.stages.append(AssemblyStage.AUDIO_MIX)
                clip.audio_mixed = True

            current.replace(final)
        finally:
            for path in intermediates:
                if path != final and path.exists():
                    path.unlink()

        logger.info(
            "Assembled %s (%.2fs, stages: %s)",
            final.name, duration, ", ".join(s.value for s in clip.stages),
        )
        return clip

    def assemble_story(
        self,
        clip_paths: Sequence[Path],
        output_path: Union[str, Path],
        duration: float,
        clips_have_audio: bool = False,
        subtitle_path: Optional[Path] = None,
        background_audio: Optional[BackgroundAudio] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> AssembledClip:
        """Run concat → caption-burn → audio-mix over finished scene clips.

        Args:
            clip_paths: Scene clips in story order.
            output_path: Final story video path (.mp4).
            duration: Sum of the scene clip durations.
            clips_have_audio: Every clip carries an audio track to keep.
            subtitle_path: Story-wide ASS document to burn, or None.
            background_audio: Music bed looped under the whole story.
            cancel_event: Set from another thread to kill the running stage.

        Raises:
            ExternalToolFailure: The failing stage and ffmpeg's stderr.
        """
        final = Path(output_path)
        final.parent.mkdir(parents=True, exist_ok=True)
        clip = AssembledClip(output_path=final, duration=duration)
        intermediates: List[Path] = []

        def stage_path(tag: str, suffix: Optional[str] = None) -> Path:
            path = final.with_name(
                "{}.{}{}".format(final.stem, tag, suffix or final.suffix or ".mp4")
            )
            intermediates.append(path)
            return path

        try:
            current = self.concat(
                clip_paths,
                stage_path("concat", ".txt"),
                stage_path("joined"),
                with_audio=clips_have_audio,
                cancel_event=cancel_event,
            )
            clip.stages.append(AssemblyStage.CONCAT)

            if subtitle_path is not None:
                current = self.burn_captions(
                    current,
                    subtitle_path,
                    stage_path("captioned"),
                    cancel_event,
                    copy_audio=clips_have_audio,
                )
                clip.stages.append(AssemblyStage.CAPTION_BURN)
                clip.captions_burned = True

            if background_audio is not None:
                current = self.mix_audio(
                    current,
                    stage_path("mixed"),
                    duration,
                    background=background_audio,
                    cancel_event=cancel_event,
                    keep_video_audio=clips_have_audio,
                )
                clip.stages.append(AssemblyStage.AUDIO_MIX)
                clip.audio_mixed = True

            current.replace(final)
        finally:
            for path in intermediates:
                if path != final and path.exists():
                    path.unlink()

        logger.info(
            "Assembled story %s from %d clips (%.2fs, stages: %s)",
            final.name, len(clip_paths), duration, ", ".join(s.value for s in clip.stages),
        )
        return clip
