"""Scene Animation & Caption Synthesis Engine.

WHY: A story video is a sequence of still scene images narrated by a
voice track. Each still needs simulated camera motion and each narration
needs word-synchronised captions before an encoder can stitch the scene
into a finished clip. This package does that work and nothing else: no
storage, no generative calls, no accounts.

HOW: Three-stage pipeline per scene: render (effect transform →
extraction geometry → frames), caption (word batching → ASS/SRT markup),
assemble (ffmpeg encode, caption burn, audio mix). Each stage is
independently testable and consumes plain dataclasses from core.ir.

RULES:
- No entity survives a render request; the engine holds no global state
- Frame output is ordered by index regardless of worker completion order
- Caption generation never depends on frame rendering and vice versa
- ffmpeg is the only external process and always runs under a timeout
"""

__version__ = "0.1.0"
