"""Clip assembly on top of the external ffmpeg encoder.

WHY: Frames, captions and audio only become a video once an encoder
muxes them. That work is delegated to ffmpeg; this package decides the
command lines, bounds their runtime, and reports failures by stage.

HOW: ffmpeg.py runs one ffmpeg process with timeout and cancellation.
coordinator.py sequences the encode, caption-burn and audio-mix stages,
and the concat stage that joins scene clips into a story video.
"""

from scene_engine.assembly.coordinator import AssembledClip, SceneAssembler
from scene_engine.assembly.ffmpeg import FFmpegRunner

__all__ = ["AssembledClip", "FFmpegRunner", "SceneAssembler"]
