"""Core rendering and timeline modules.

WHY: The core package holds the pure heart of the engine: the IR
dataclasses, the effect transforms, extraction geometry, the frame
renderer, and caption batching. Formatters, assembly, CLI and server
all build on these.

HOW: ir.py defines the data structures, effects.py and geometry.py are
pure math, renderer.py and scheduler.py do the per-frame work,
timeline.py groups words into caption batches.

RULES:
- effects.py and geometry.py never touch the filesystem
- Only renderer.py reads images and writes frames
- errors.py is the single source of the engine's exception types
"""
