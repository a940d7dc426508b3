"""Adapters from external input formats to the engine's dataclasses."""
