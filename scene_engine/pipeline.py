"""Scene and story pipeline: the one place the stages are wired together.

WHY: The CLI and the HTTP API both need "render this scene" and "render
this story" with identical behaviour: same file names, same caption
selection, same failure semantics. Keeping the wiring here means the
outer surfaces only parse input and report progress.

HOW: render_scene() runs, in order:
  1. rendering  — FrameRenderer writes scene-NNN-frames/frame_*.png
  2. captioning — every requested formatter runs over the scene's
                  CaptionTrack; outputs are written as scene-NNN<suffix>
  3. assembling — SceneAssembler encodes, burns the first burnable
                  caption output, mixes audio → scene-NNN.mp4
render_story() runs render_scene() for each request on a small thread
pool. When every scene succeeded it writes story-level caption files
with every scene's words shifted by the scene's start time, then
joins the scene clips into story.mp4 (concat, caption-burn, audio-mix).

RULES:
- Scene failures are isolated in a story: one failing scene never
  cancels or corrupts another, and the failure is reported per scene
- Caption degradation is opt-in: when enabled, a caption-generation or
  caption-burn failure produces an uncaptioned clip and a WARNING
- Frames are removed once assembly ends, even when it failed, unless
  keep_frames
- A failed scene skips the story captions and the story video
- Story outcomes are returned in request order
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

from scene_engine import config
from scene_engine.assembly import AssembledClip, SceneAssembler
from scene_engine.core.errors import AssemblyStage, ExternalToolFailure
from scene_engine.core.ir import BackgroundAudio, SceneLine, SceneRequest, WordTimestamp
from scene_engine.core.renderer import FrameRenderer, RenderedFrames, cleanup_frames
from scene_engine.core.timeline import offset_words
from scene_engine.formatters import BURN_FORMATTERS, FORMATTERS
from scene_engine.formatters.base import CaptionTrack, FormatterOutput

logger = logging.getLogger(__name__)

StageCallback = Callable[[str], None]
ProgressCallback = Callable[[float, str], None]

STAGE_RENDERING = "rendering"
STAGE_CAPTIONING = "captioning"
STAGE_ASSEMBLING = "assembling"

STORY_STEM = "story"


def scene_stem(scene_index: int) -> str:
    """File stem for a scene's outputs, e.g. ``scene-003``."""
    return "scene-{:03d}".format(scene_index)


@dataclass
class CaptionFile:
    """A caption output written to disk."""

    key: str
    path: Path
    media_type: str


@dataclass
class SceneResult:
    """Everything render_scene() produced for one scene.

    RULES:
    - frames is always set; its directory may already be removed when
      the clip was assembled without keep_frames
    - clip is None when assembly was skipped
    - captions_degraded is True when captions were dropped after a failure
    """

    scene_index: int
    output_dir: Path
    frames: RenderedFrames
    caption_files: List[CaptionFile] = field(default_factory=list)
    burned_caption: Optional[Path] = None
    clip: Optional[AssembledClip] = None
    captions_degraded: bool = False

    @property
    def output_files(self) -> List[Path]:
        files = [c.path for c in self.caption_files]
        if self.clip is not None:
            files.append(self.clip.output_path)
        return files


@dataclass
class SceneOutcome:
    """Per-scene result of a story render: a result or an error."""

    scene_index: int
    result: Optional[SceneResult] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class StoryResult:
    """All scene outcomes plus the story-level caption files and video.

    RULES:
    - caption_files and clip are only set when every scene succeeded
    - clip is None when assembly was skipped or the story stage failed;
      error then holds the story-stage failure
    """

    outcomes: List[SceneOutcome]
    caption_files: List[CaptionFile] = field(default_factory=list)
    burned_caption: Optional[Path] = None
    clip: Optional[AssembledClip] = None
    captions_degraded: bool = False
    error: Optional[BaseException] = None

    @property
    def failed(self) -> List[SceneOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def ok(self) -> bool:
        return not self.failed and self.error is None


def build_caption_track(request: SceneRequest) -> CaptionTrack:
    """Bundle a scene's caption inputs for the formatters."""
    lines: List[SceneLine] = []
    if request.text and request.text.strip():
        lines.append(SceneLine(text=request.text, duration=request.duration))
    return CaptionTrack(
        words=list(request.word_timestamps),
        style=request.caption_style,
        video_width=request.width,
        video_height=request.height,
        reference_text=request.text,
        scene_lines=lines,
    )


def build_story_track(requests: Sequence[SceneRequest]) -> Optional[CaptionTrack]:
    """One caption track covering every scene laid end to end.

    Scene words are shifted by the cumulative duration of the scenes
    before them. Returns None for an empty story.
    """
    if not requests:
        return None

    ordered = sorted(requests, key=lambda r: r.scene_index)
    words: List[WordTimestamp] = []
    lines: List[SceneLine] = []
    texts: List[str] = []
    offset = 0.0
    for request in ordered:
        words.extend(offset_words(request.word_timestamps, offset))
        lines.append(SceneLine(text=request.text or "", duration=request.duration))
        if request.text:
            texts.append(request.text)
        offset += request.duration

    first = ordered[0]
    return CaptionTrack(
        words=words,
        style=first.caption_style,
        video_width=first.width,
        video_height=first.height,
        reference_text=" ".join(texts) if texts else None,
        scene_lines=lines,
    )


def write_caption_files(
    track: CaptionTrack,
    output_dir: Path,
    stem: str,
    format_keys: Sequence[str],
) -> List[CaptionFile]:
    """Run the selected formatters and write their outputs as ``stem<suffix>``.

    Raises:
        KeyError: If a format key is not registered.
    """
    written: List[CaptionFile] = []
    for key in format_keys:
        formatter = FORMATTERS[key]()
        outputs: List[FormatterOutput] = formatter.format(track)
        for output in outputs:
            path = output_dir / "{}{}".format(stem, output.suffix)
            path.write_text(output.content, encoding="utf-8")
            written.append(CaptionFile(key=key, path=path, media_type=output.media_type))
            logger.info("Wrote %s (%s)", path.name, formatter.name)
    return written


def select_burn_caption(caption_files: Sequence[CaptionFile]) -> Optional[Path]:
    """The caption file to burn in: the first BURN_FORMATTERS key that produced output."""
    by_key: Dict[str, Path] = {}
    for caption in caption_files:
        by_key.setdefault(caption.key, caption.path)
    for key in BURN_FORMATTERS:
        if key in by_key:
            return by_key[key]
    return None


def render_scene(
    request: SceneRequest,
    output_dir: Union[str, Path],
    renderer: Optional[FrameRenderer] = None,
    assembler: Optional[SceneAssembler] = None,
    formats: Optional[Sequence[str]] = None,
    assemble: bool = True,
    keep_frames: bool = False,
    degrade_captions: bool = False,
    on_stage: Optional[StageCallback] = None,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> SceneResult:
    """Render, caption and assemble one scene.

    Args:
        request: The scene to render.
        output_dir: Directory for frames, caption files and the clip.
        renderer: Frame renderer (default: configured from config).
        assembler: Clip assembler (default: ffmpeg from config).
        formats: Formatter keys to run (default: all registered).
        assemble: False stops after frames and captions.
        keep_frames: Keep the frame directory after assembly.
        degrade_captions: Drop captions instead of failing on caption errors.
        on_stage: Called with "rendering", "captioning", "assembling".
        progress_callback: Frame progress callback(0-1, message).
        cancel_event: Set to kill a running ffmpeg stage.

    Returns:
        SceneResult describing what was written.

    Raises:
        InvalidSceneRequest, InvalidGeometry, FrameRenderError,
        ExternalToolFailure: Propagated from the failing stage.
    """
    renderer = renderer or FrameRenderer()
    format_keys = list(formats) if formats is not None else list(FORMATTERS.keys())
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    stem = scene_stem(request.scene_index)

    def stage(name: str) -> None:
        logger.debug("Scene %d: %s", request.scene_index, name)
        if on_stage:
            on_stage(name)

    stage(STAGE_RENDERING)
    frames = renderer.render(
        request.image_path,
        out_dir / "{}-frames".format(stem),
        request.width,
        request.height,
        request.duration,
        effect=request.effect,
        fps=request.fps,
        progress_callback=progress_callback,
    )
    result = SceneResult(scene_index=request.scene_index, output_dir=out_dir, frames=frames)

    if request.captions_enabled and format_keys:
        stage(STAGE_CAPTIONING)
        try:
            result.caption_files = write_caption_files(
                build_caption_track(request), out_dir, stem, format_keys
            )
        except ValueError as exc:
            if not degrade_captions:
                raise
            logger.warning(
                "Scene %d: caption generation failed (%s); continuing without captions",
                request.scene_index, exc,
            )
            result.captions_degraded = True
        result.burned_caption = select_burn_caption(result.caption_files)

    if not assemble:
        return result

    stage(STAGE_ASSEMBLING)
    assembler = assembler or SceneAssembler()
    clip_path = out_dir / "{}.mp4".format(stem)

    def run_assembly(subtitle_path: Optional[Path]) -> AssembledClip:
        return assembler.assemble(
            frames,
            clip_path,
            subtitle_path=subtitle_path,
            background_audio=request.background_audio,
            narration_path=request.narration_path,
            cancel_event=cancel_event,
        )

    try:
        try:
            result.clip = run_assembly(result.burned_caption)
        except ExternalToolFailure as exc:
            if not (
                degrade_captions
                and exc.stage is AssemblyStage.CAPTION_BURN
                and result.burned_caption is not None
            ):
                raise
            logger.warning(
                "Scene %d: caption burn failed; assembling without captions",
                request.scene_index,
            )
            result.captions_degraded = True
            result.burned_caption = None
            result.clip = run_assembly(None)
    finally:
        if not keep_frames:
            cleanup_frames(frames.output_dir)
    return result


def shared_background(requests: Sequence[SceneRequest]) -> Optional[BackgroundAudio]:
    """The music bed every scene of a story names, or None if they differ."""
    if not requests:
        return None
    first = requests[0].background_audio
    if first is None or any(r.background_audio != first for r in requests[1:]):
        return None
    return first


def assemble_story_clip(
    story: StoryResult,
    requests: Sequence[SceneRequest],
    out_root: Path,
    assembler: SceneAssembler,
    background_audio: Optional[BackgroundAudio] = None,
    degrade_captions: bool = False,
    cancel_event: Optional[threading.Event] = None,
) -> AssembledClip:
    """Join the scene clips of a fully successful story into story.mp4.

    The story caption file chosen by select_burn_caption() is burned
    over the joined video and the shared music bed is mixed once over
    the whole story. Scene audio is kept only when every clip has it.

    Raises:
        ExternalToolFailure: From the failing story stage.
    """
    by_index = {o.scene_index: o.result for o in story.outcomes}
    clips = [by_index[r.scene_index].clip for r in sorted(requests, key=lambda r: r.scene_index)]
    with_audio = [c.audio_mixed for c in clips]
    clips_have_audio = all(with_audio)
    if any(with_audio) and not clips_have_audio:
        logger.warning(
            "Only %d of %d scene clips have audio; the story video drops scene audio",
            sum(with_audio), len(clips),
        )

    def run(subtitle_path: Optional[Path]) -> AssembledClip:
        return assembler.assemble_story(
            [c.output_path for c in clips],
            out_root / "{}.mp4".format(STORY_STEM),
            duration=sum(c.duration for c in clips),
            clips_have_audio=clips_have_audio,
            subtitle_path=subtitle_path,
            background_audio=background_audio,
            cancel_event=cancel_event,
        )

    try:
        return run(story.burned_caption)
    except ExternalToolFailure as exc:
        if not (
            degrade_captions
            and exc.stage is AssemblyStage.CAPTION_BURN
            and story.burned_caption is not None
        ):
            raise
        logger.warning("Story caption burn failed; assembling without captions")
        story.captions_degraded = True
        story.burned_caption = None
        return run(None)


def render_story(
    requests: Sequence[SceneRequest],
    output_root: Union[str, Path],
    renderer: Optional[FrameRenderer] = None,
    assembler: Optional[SceneAssembler] = None,
    formats: Optional[Sequence[str]] = None,
    assemble: bool = True,
    keep_frames: bool = False,
    degrade_captions: bool = False,
    max_parallel_scenes: int = config.SCENE_WORKERS,
) -> StoryResult:
    """Render every scene of a story with per-scene failure isolation.

    Each scene writes into output_root; file stems carry the scene
    index so scenes never collide. When every scene succeeded, a
    story-level caption track (``story<suffix>``) is written alongside
    and, with assemble, the scene clips are joined into ``story.mp4``.
    A music bed shared by every scene is mixed once over the story
    video instead of into each scene clip.
    """
    out_root = Path(output_root)
    out_root.mkdir(parents=True, exist_ok=True)
    renderer = renderer or FrameRenderer()
    assembler = assembler or SceneAssembler()

    story_music = shared_background(requests) if assemble else None
    if story_music is not None:
        scene_requests = [replace(r, background_audio=None) for r in requests]
    else:
        scene_requests = list(requests)

    def run(request: SceneRequest) -> SceneOutcome:
        try:
            result = render_scene(
                request,
                out_root,
                renderer=renderer,
                assembler=assembler,
                formats=formats,
                assemble=assemble,
                keep_frames=keep_frames,
                degrade_captions=degrade_captions,
            )
        except Exception as exc:
            logger.exception("Scene %d failed", request.scene_index)
            return SceneOutcome(scene_index=request.scene_index, error=exc)
        return SceneOutcome(scene_index=request.scene_index, result=result)

    logger.info(
        "Rendering story of %d scenes (%d in parallel)",
        len(requests), max(1, max_parallel_scenes),
    )
    with ThreadPoolExecutor(max_workers=max(1, max_parallel_scenes)) as executor:
        outcomes = list(executor.map(run, scene_requests))

    story = StoryResult(outcomes=outcomes)
    if story.failed:
        logger.warning(
            "%d of %d scenes failed: %s; skipping story captions and video",
            len(story.failed), len(outcomes),
            ", ".join(str(o.scene_index) for o in story.failed),
        )
        return story

    try:
        track = build_story_track(requests)
        if track is not None and requests[0].captions_enabled:
            format_keys = list(formats) if formats is not None else list(FORMATTERS.keys())
            story.caption_files = write_caption_files(track, out_root, STORY_STEM, format_keys)
            story.burned_caption = select_burn_caption(story.caption_files)
        if assemble and outcomes:
            story.clip = assemble_story_clip(
                story,
                requests,
                out_root,
                assembler,
                background_audio=story_music,
                degrade_captions=degrade_captions,
            )
    except Exception as exc:
        logger.exception("Story assembly failed")
        story.error = exc
    return story
