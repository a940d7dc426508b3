"""Shared test fixtures for the scene_engine test suite.

WHY: Renderer, pipeline, CLI and API tests all need a real decodable
image, the same word timing scenario and a caption style. Centralizing
them here keeps every module testing against identical inputs.

HOW: Pytest fixtures write small synthetic Pillow images into tmp_path,
provide the three-word sentence-boundary scenario ("the", "cat.",
"sat"), and a FakeRunner that records ffmpeg argument lists and
creates the output file instead of launching a process.

RULES:
- ffmpeg is never executed; assembly goes through FakeRunner
- Images are tiny so rendering tests stay fast
- Every fixture returns fresh objects (no shared mutable state)
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

import pytest
from PIL import Image

from scene_engine.core.errors import AssemblyStage, ExternalToolFailure
from scene_engine.core.ir import CaptionStyle, SceneRequest, WordTimestamp


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------

THREE_WORDS: List[WordTimestamp] = [
    WordTimestamp(word="the", start=0.0, end=0.3),
    WordTimestamp(word="cat.", start=0.3, end=0.6),
    WordTimestamp(word="sat", start=0.6, end=0.9),
]


def make_gradient_image(path: Path, size: Tuple[int, int] = (64, 48), mode: str = "RGB") -> Path:
    """Write a horizontal gradient image so crops differ by position."""
    width, height = size
    img = Image.new("RGB", size)
    for x in range(width):
        shade = int(255 * x / max(1, width - 1))
        for y in range(height):
            img.putpixel((x, y), (shade, 128, 255 - shade))
    if mode != "RGB":
        img = img.convert(mode)
    img.save(path)
    return path


class FakeRunner:
    """Stands in for FFmpegRunner: records calls, touches the output file.

    ``fail_stage`` makes the call for that stage raise ExternalToolFailure
    the way the real runner does on a non-zero exit.
    """

    def __init__(self, fail_stage: Optional[AssemblyStage] = None, fail_times: int = 1) -> None:
        self.calls: List[Tuple[List[str], AssemblyStage]] = []
        self.fail_stage = fail_stage
        self.fail_times = fail_times

    def run(self, args, stage, cancel_event=None):
        self.calls.append((list(args), stage))
        if stage is self.fail_stage and self.fail_times > 0:
            self.fail_times -= 1
            raise ExternalToolFailure(
                stage, "ffmpeg exited with code 1", returncode=1, stderr="boom: bad filter"
            )
        Path(args[-1]).write_bytes(b"fake-mp4")
        return ""

    @property
    def stages(self) -> List[AssemblyStage]:
        return [stage for _, stage in self.calls]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def three_words() -> List[WordTimestamp]:
    """The sentence-boundary scenario: "the cat. sat"."""
    return list(THREE_WORDS)


@pytest.fixture
def caption_style() -> CaptionStyle:
    """Default caption style with a batch size of 3."""
    return CaptionStyle()


@pytest.fixture
def source_image(tmp_path) -> Path:
    """A 64x48 RGB gradient PNG."""
    return make_gradient_image(tmp_path / "source.png")


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def scene_request(source_image, three_words) -> SceneRequest:
    """A small 2-second scene at 5fps (10 frames) with three caption words."""
    return SceneRequest(
        image_path=source_image,
        width=32,
        height=24,
        duration=2.0,
        effect="zoom_in",
        fps=5,
        word_timestamps=three_words,
        text="the cat. sat",
    )
