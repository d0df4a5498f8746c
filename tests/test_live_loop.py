"""
Live auto-detect loop: tick semantics, stale-state policy and the
disable-while-detecting race, driven with synthetic frame sources.
"""
from __future__ import annotations
import threading
import time

import cv2
import numpy as np
import pytest

from docscan.core.contracts import CropRectangle, Failure, Raster
from docscan.live.loop import AutoDetectController, DetectionLoop, DetectionState

from conftest import make_document_frame


class _Source:
    """Frame source returning a scripted sequence of rasters (last one repeats)."""

    def __init__(self, *rasters, before=None):
        self.rasters = list(rasters)
        self.calls = 0
        self.before = before

    def __call__(self):
        self.calls += 1
        if self.before is not None:
            self.before()
        i = min(self.calls - 1, len(self.rasters) - 1)
        return self.rasters[i]


def _wait_for(pred, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if pred():
            return True
        time.sleep(0.01)
    return False


def test_tick_is_noop_when_disabled(document_raster):
    src = _Source(document_raster)
    loop = DetectionLoop(DetectionState(enabled=False), src)
    assert loop.tick() is None
    assert src.calls == 0
    assert loop.state.quad is None


def test_tick_stores_quad(document_raster):
    state = DetectionState(enabled=True)
    res = DetectionLoop(state, _Source(document_raster)).tick()
    assert res.strategy == "quadrants"
    assert state.quad == res.quad
    assert state.snapshot() == (res.quad, (640, 480))


def test_failed_pass_leaves_previous_boundary(document_raster, uniform_raster):
    state = DetectionState(enabled=True)
    loop = DetectionLoop(state, _Source(document_raster, uniform_raster))
    loop.tick()
    first = state.quad
    assert first is not None

    res = loop.tick()
    assert res.quad is None
    assert state.quad is first


def _two_small_blocks() -> Raster:
    """
    Two small blocks on the TL/BR diagonal: 52 edge points, empty TR/BL
    quadrants, and a 120x90 bounding box (under 20% of 640x480).
    """
    frame = np.zeros((480, 640, 3), np.uint8)
    cv2.rectangle(frame, (260, 195), (295, 225), (255, 255, 255), -1)
    cv2.rectangle(frame, (345, 255), (380, 285), (255, 255, 255), -1)
    return Raster.from_bgr(frame)


def test_too_small_boundary_leaves_previous_boundary(document_raster):
    state = DetectionState(enabled=True)
    loop = DetectionLoop(state, _Source(document_raster, _two_small_blocks()))
    loop.tick()
    first = state.quad
    assert first is not None

    res = loop.tick()
    assert res.failure is Failure.BOUNDARY_TOO_SMALL
    assert res.num_points > 50
    assert state.quad is first


def test_quad_is_replaced_wholesale(document_raster):
    other = Raster.from_bgr(make_document_frame(tl=(200, 150), br=(450, 350)))
    state = DetectionState(enabled=True)
    loop = DetectionLoop(state, _Source(document_raster, other))
    loop.tick()
    loop.tick()
    assert (state.quad.top_left.x, state.quad.top_left.y) == (200, 150)


def test_disable_mid_tick_discards_result(document_raster):
    state = DetectionState(enabled=True)
    loop = DetectionLoop(state, _Source(document_raster))
    loop.tick()
    assert state.quad is not None

    # the frame source runs inside the pass; disabling there simulates a
    # disable arriving while detection is in flight
    loop.frame_source = _Source(document_raster, before=state.disable)
    res = loop.tick()
    assert res.quad is not None  # the pass itself completed
    assert state.quad is None
    assert loop.tick() is None   # and the next tick is a no-op


def test_frame_source_errors_are_absorbed():
    def broken():
        raise RuntimeError("camera unplugged")

    loop = DetectionLoop(DetectionState(enabled=True), broken)
    assert loop.tick() is None


def test_no_frame_is_noop():
    loop = DetectionLoop(DetectionState(enabled=True), lambda: None)
    assert loop.tick() is None


def test_unknown_strategy_fails_fast():
    with pytest.raises(ValueError):
        DetectionLoop(DetectionState(), lambda: None, {"strategy": "magic"})


def test_controller_start_stop(document_raster):
    changes = []
    ctl = AutoDetectController(_Source(document_raster), {"tick_period_ms": 20},
                               on_change=changes.append)
    ctl.enable()
    try:
        assert ctl.loop.running
        assert _wait_for(lambda: ctl.boundary is not None)
        assert ctl.crop_area(640, 480) == CropRectangle(100, 80, 440, 320)
    finally:
        ctl.disable()

    assert ctl.boundary is None
    assert ctl.crop_area(640, 480) is None
    assert not ctl.loop.running
    assert changes == [True, False]


def test_controller_toggle_and_restart(document_raster):
    ctl = AutoDetectController(_Source(document_raster), {"tick_period_ms": 20})
    ctl.toggle(True)
    assert _wait_for(lambda: ctl.boundary is not None)
    ctl.toggle(False)
    assert ctl.boundary is None and not ctl.enabled

    ctl.toggle(True)
    try:
        assert _wait_for(lambda: ctl.boundary is not None)
    finally:
        ctl.toggle(False)


def test_controller_crop_rescales_to_video():
    small = Raster.from_bgr(make_document_frame(w=320, h=240, tl=(50, 40), br=(270, 200)))
    ctl = AutoDetectController(_Source(small))
    ctl.state.enable()
    ctl.loop.tick()
    assert ctl.crop_area(640, 480, rescale=True) == CropRectangle(100, 80, 440, 320)
    # without rescale the raster coordinates are used as-is
    assert ctl.crop_area(640, 480) == CropRectangle(50, 40, 220, 160)


def test_on_change_errors_do_not_break_toggle(document_raster):
    def boom(_):
        raise RuntimeError("settings store down")

    ctl = AutoDetectController(_Source(document_raster), {"tick_period_ms": 20}, on_change=boom)
    ctl.enable()
    ctl.disable()
    assert not ctl.enabled


class _SlowSource:
    """Frame source that blocks like a stalled camera read and counts overlapping calls."""

    def __init__(self, raster, delay):
        self.raster = raster
        self.delay = delay
        self.calls = 0
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(self.delay)
            return self.raster
        finally:
            with self._lock:
                self.active -= 1


def _detect_threads(exclude):
    return [t for t in threading.enumerate()
            if t.name == "docscan-detect" and t.is_alive() and t not in exclude]


def test_restart_after_slow_stop_runs_one_thread(document_raster):
    before = set(threading.enumerate())
    # slower than stop()'s default join timeout of 1 s at this period
    src = _SlowSource(document_raster, delay=1.3)
    ctl = AutoDetectController(src, {"tick_period_ms": 20})

    ctl.enable()
    assert _wait_for(lambda: src.active == 1)
    ctl.disable()   # join times out while the pass is still in the source
    ctl.enable()
    try:
        assert _wait_for(lambda: src.calls >= 3, timeout=8.0)
        assert src.peak == 1
        assert _wait_for(lambda: len(_detect_threads(before)) == 1)
    finally:
        ctl.disable()

    assert _wait_for(lambda: not _detect_threads(before), timeout=5.0)
    assert src.peak == 1
    assert ctl.boundary is None
