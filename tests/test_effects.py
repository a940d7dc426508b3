"""Tests for the Transform Model (scene_engine.core.effects).

WHY: Every rendered frame's motion comes from frame_transform(). A
wrong endpoint, a zoom below 1.0 or an unseen fallback would show up
as a visibly broken clip, so the curves are pinned at their endpoints
and midpoints here.

HOW: Tests are organized by concern:
  - TestResolveEffect: identifier parsing and the visible fallback
  - TestProgress: frame index → progress mapping and easing
  - TestZoomEffects / TestPanEffects / TestFloating: curve values
  - TestInvariants: properties that hold for every effect

RULES:
- Pure functions only; no images, no I/O
- Float comparisons use pytest.approx
"""

from __future__ import annotations

import logging
import math

import pytest

from scene_engine.core.effects import (
    EFFECT_DESCRIPTIONS,
    Effect,
    ease_in_out,
    frame_progress,
    frame_transform,
    resolve_effect,
)
from scene_engine.core.ir import MotionParams

W, H = 1080, 1920


class TestResolveEffect:
    """resolve_effect() never raises and never hides a fallback."""

    @pytest.mark.parametrize("identifier", [e.value for e in Effect])
    def test_known_identifiers(self, identifier):
        resolution = resolve_effect(identifier)
        assert resolution.effect.value == identifier
        assert resolution.fell_back is False

    def test_case_and_whitespace_insensitive(self):
        assert resolve_effect("  Zoom_In ").effect is Effect.ZOOM_IN

    def test_effect_member_passes_through(self):
        resolution = resolve_effect(Effect.PAN_LEFT)
        assert resolution.effect is Effect.PAN_LEFT
        assert resolution.requested == "pan_left"

    def test_unknown_falls_back_to_none_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="scene_engine.core.effects"):
            resolution = resolve_effect("spin_360")
        assert resolution.effect is Effect.NONE
        assert resolution.fell_back is True
        assert resolution.requested == "spin_360"
        assert "spin_360" in caplog.text

    @pytest.mark.parametrize("identifier", [None, ""])
    def test_missing_effect_is_none_without_fallback(self, identifier, caplog):
        with caplog.at_level(logging.WARNING):
            resolution = resolve_effect(identifier)
        assert resolution.effect is Effect.NONE
        assert resolution.fell_back is False
        assert caplog.text == ""

    def test_every_effect_has_a_description(self):
        assert set(EFFECT_DESCRIPTIONS) == set(Effect)


class TestProgress:

    def test_first_and_last_frame(self):
        assert frame_progress(0, 60) == 0.0
        assert frame_progress(59, 60) == 1.0

    def test_single_frame_scene(self):
        assert frame_progress(0, 1) == 0.0

    def test_ease_endpoints_and_midpoint(self):
        assert ease_in_out(0.0) == pytest.approx(0.0)
        assert ease_in_out(0.5) == pytest.approx(0.5)
        assert ease_in_out(1.0) == pytest.approx(1.0)

    def test_ease_is_slow_at_the_ends(self):
        # Cosine ease covers less ground than linear in the first quarter
        assert ease_in_out(0.25) < 0.25
        assert ease_in_out(0.75) > 0.75


class TestZoomEffects:

    def test_zoom_in_ramps_from_1_to_1_1(self):
        assert frame_transform(Effect.ZOOM_IN, 0.0, W, H).zoom == pytest.approx(1.0)
        assert frame_transform(Effect.ZOOM_IN, 0.5, W, H).zoom == pytest.approx(1.05)
        assert frame_transform(Effect.ZOOM_IN, 1.0, W, H).zoom == pytest.approx(1.1)

    def test_zoom_out_ramps_from_1_08_to_1(self):
        assert frame_transform(Effect.ZOOM_OUT, 0.0, W, H).zoom == pytest.approx(1.08)
        assert frame_transform(Effect.ZOOM_OUT, 1.0, W, H).zoom == pytest.approx(1.0)

    def test_zoom_in_is_monotonic(self):
        zooms = [frame_transform(Effect.ZOOM_IN, i / 20, W, H).zoom for i in range(21)]
        assert zooms == sorted(zooms)

    def test_zoom_out_is_monotonic_decreasing(self):
        zooms = [frame_transform(Effect.ZOOM_OUT, i / 20, W, H).zoom for i in range(21)]
        assert zooms == sorted(zooms, reverse=True)

    def test_zoom_effects_do_not_pan(self):
        for effect in (Effect.ZOOM_IN, Effect.ZOOM_OUT):
            t = frame_transform(effect, 0.3, W, H)
            assert (t.pan_x, t.pan_y) == (0.0, 0.0)

    def test_zoom_pan_combines_ramp_and_sweep(self):
        start = frame_transform(Effect.ZOOM_PAN, 0.0, W, H)
        end = frame_transform(Effect.ZOOM_PAN, 1.0, W, H)
        assert start.zoom == pytest.approx(1.0)
        assert end.zoom == pytest.approx(1.1)
        assert start.pan_x == pytest.approx(-W * 0.04)
        assert end.pan_x == pytest.approx(W * 0.04)

    @pytest.mark.parametrize("combined,plain", [
        (Effect.ZOOM_PAN, Effect.ZOOM_IN),
        (Effect.ZOOM_OUT_PAN, Effect.ZOOM_OUT),
    ])
    def test_combined_effects_reuse_the_plain_zoom_ramp(self, combined, plain):
        for i in range(11):
            p = i / 10
            assert frame_transform(combined, p, W, H).zoom == pytest.approx(
                frame_transform(plain, p, W, H).zoom
            )

    def test_zoom_out_pan_mirrors_direction(self):
        start = frame_transform(Effect.ZOOM_OUT_PAN, 0.0, W, H)
        end = frame_transform(Effect.ZOOM_OUT_PAN, 1.0, W, H)
        assert start.zoom == pytest.approx(1.08)
        assert end.zoom == pytest.approx(1.0)
        assert start.pan_x == pytest.approx(W * 0.04)
        assert end.pan_x == pytest.approx(-W * 0.04)


class TestPanEffects:

    def test_pan_left_sweeps_linearly(self):
        assert frame_transform(Effect.PAN_LEFT, 0.0, W, H).pan_x == pytest.approx(W * 0.04)
        assert frame_transform(Effect.PAN_LEFT, 0.5, W, H).pan_x == pytest.approx(0.0)
        assert frame_transform(Effect.PAN_LEFT, 1.0, W, H).pan_x == pytest.approx(-W * 0.04)

    def test_pan_right_is_the_mirror_of_pan_left(self):
        for i in range(11):
            p = i / 10
            left = frame_transform(Effect.PAN_LEFT, p, W, H)
            right = frame_transform(Effect.PAN_RIGHT, p, W, H)
            assert right.pan_x == pytest.approx(-left.pan_x)
            assert right.zoom == left.zoom

    def test_pan_zoom_is_constant(self):
        zooms = {frame_transform(Effect.PAN_LEFT, i / 10, W, H).zoom for i in range(11)}
        assert zooms == {1.04}

    def test_pan_fraction_is_configurable(self):
        params = MotionParams(pan_fraction=0.1)
        t = frame_transform(Effect.PAN_LEFT, 0.0, W, H, params)
        assert t.pan_x == pytest.approx(W * 0.1)


class TestFloating:

    def test_zoom_oscillates_around_1_02(self):
        assert frame_transform(Effect.FLOATING, 0.25, W, H).zoom == pytest.approx(1.04)
        assert frame_transform(Effect.FLOATING, 0.0, W, H).zoom == pytest.approx(1.02)

    def test_drift_describes_an_ellipse(self):
        for i in range(17):
            t = frame_transform(Effect.FLOATING, i / 16, W, H)
            ax, ay = W * 0.015, H * 0.015
            assert (t.pan_x / ax) ** 2 + (t.pan_y / ay) ** 2 == pytest.approx(1.0)

    def test_starts_at_top_of_ellipse(self):
        t = frame_transform(Effect.FLOATING, 0.0, W, H)
        assert t.pan_x == pytest.approx(0.0)
        assert t.pan_y == pytest.approx(H * 0.015)


class TestInvariants:

    @pytest.mark.parametrize("effect", list(Effect))
    def test_zoom_never_below_one(self, effect):
        for i in range(101):
            assert frame_transform(effect, i / 100, W, H).zoom >= 1.0

    @pytest.mark.parametrize("effect", list(Effect))
    def test_deterministic(self, effect):
        assert frame_transform(effect, 0.37, W, H) == frame_transform(effect, 0.37, W, H)

    def test_progress_is_clamped(self):
        assert frame_transform(Effect.ZOOM_IN, 2.0, W, H) == frame_transform(Effect.ZOOM_IN, 1.0, W, H)
        assert frame_transform(Effect.ZOOM_IN, -1.0, W, H) == frame_transform(Effect.ZOOM_IN, 0.0, W, H)

    def test_none_is_identity(self):
        t = frame_transform(Effect.NONE, 0.6, W, H)
        assert (t.zoom, t.pan_x, t.pan_y) == (1.0, 0.0, 0.0)

    def test_floating_is_periodic(self):
        a = frame_transform(Effect.FLOATING, 0.0, W, H)
        b = frame_transform(Effect.FLOATING, 1.0, W, H)
        assert a.zoom == pytest.approx(b.zoom)
        assert a.pan_y == pytest.approx(b.pan_y)
        assert math.isclose(a.pan_x, b.pan_x, abs_tol=1e-9)
