# docscan/live/loop.py
"""
Live auto-detection: an explicit state object, a periodic tick task and the
controller that owns both.

Only the loop thread writes a detected boundary; disable() clears it under
the same lock, and a pass that started before the disable is discarded.
"""
from __future__ import annotations
import threading
from typing import Callable, Dict, Optional

from docscan.core.config import STRATEGIES, merge_cfg
from docscan.core.contracts import CropRectangle, DetectionResult, Quadrilateral, Raster
from docscan.geometry.crop import compute_crop_area, scale_quadrilateral
from docscan.geometry.detect import detect

FrameSource = Callable[[], Optional[Raster]]


class DetectionState:
    def __init__(self, enabled: bool = False):
        self._lock = threading.Lock()
        self._enabled = bool(enabled)
        self._quad: Optional[Quadrilateral] = None
        self._generation = 0
        self._raster_size: Optional[tuple] = None  # (w, h) the quad was found in

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def quad(self) -> Optional[Quadrilateral]:
        return self._quad

    def snapshot(self):
        """(quad, raster_size) read together."""
        with self._lock:
            return self._quad, self._raster_size

    def begin_pass(self) -> Optional[int]:
        """Generation token for a new pass, or None when detection is off."""
        with self._lock:
            return self._generation if self._enabled else None

    def publish(self, token: int, quad: Quadrilateral, raster_size: tuple) -> bool:
        """Store quad unless detection was disabled since begin_pass()."""
        with self._lock:
            if not self._enabled or token != self._generation:
                return False
            self._quad = quad
            self._raster_size = raster_size
            return True

    def enable(self):
        with self._lock:
            self._enabled = True

    def disable(self):
        with self._lock:
            self._enabled = False
            self._generation += 1
            self._quad = None
            self._raster_size = None


class DetectionLoop:
    """Runs one detection pass per tick on a background thread."""

    def __init__(self, state: DetectionState, frame_source: FrameSource, cfg: Optional[Dict] = None):
        self.state = state
        self.frame_source = frame_source
        self.cfg = merge_cfg(cfg)
        if self.cfg.get("strategy", "gradient") not in STRATEGIES:
            raise ValueError(f"Unknown detection strategy: {self.cfg.get('strategy')!r}")
        self.period_s = float(self.cfg["tick_period_ms"]) / 1000.0
        self.last_result: Optional[DetectionResult] = None
        self._stop: Optional[threading.Event] = None
        self._pass_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> Optional[DetectionResult]:
        """
        One full pipeline pass against the current frame. No-op (None) when
        detection is disabled or no frame is available. Never raises.
        """
        with self._pass_lock:
            return self._tick()

    def _tick(self) -> Optional[DetectionResult]:
        token = self.state.begin_pass()
        if token is None:
            return None
        try:
            raster = self.frame_source()
        except Exception as e:
            print(f"[WARN] frame source failed: {e}")
            return None
        if raster is None:
            return None

        result = detect(raster, self.cfg)
        self.last_result = result
        if result.quad is not None:
            stored = self.state.publish(token, result.quad, (raster.width, raster.height))
            if self.cfg.get("debug"):
                print(f"[loop] {result.strategy} quad={result.quad.as_tuple()} stored={stored}")
        elif self.cfg.get("debug"):
            # state left as-is on failure
            print(f"[loop] no boundary ({result.failure.value if result.failure else 'none'})")
        return result

    def _run(self, stop: threading.Event):
        while not stop.is_set():
            self.tick()
            if stop.wait(self.period_s):
                break

    def start(self):
        if self.running and not self._stop.is_set():
            return
        # each thread owns its stop flag; a thread still finishing a pass
        # after a timed-out stop() exits on its own
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, args=(self._stop,),
                                        name="docscan-detect", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        """Stop ticking; an in-flight pass may finish but its result is discarded by the state."""
        if self._stop is not None:
            self._stop.set()
        t = self._thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout if timeout is not None else max(1.0, 5 * self.period_s))
        self._thread = None


class AutoDetectController:
    """
    Owns one DetectionState and its DetectionLoop.

    on_change(enabled) is called after every toggle so a settings layer can
    persist the preference.
    """

    def __init__(self, frame_source: FrameSource, cfg: Optional[Dict] = None,
                 on_change: Optional[Callable[[bool], None]] = None):
        self.cfg = merge_cfg(cfg)
        self.state = DetectionState()
        self.loop = DetectionLoop(self.state, frame_source, self.cfg)
        self.on_change = on_change

    @property
    def enabled(self) -> bool:
        return self.state.enabled

    @property
    def boundary(self) -> Optional[Quadrilateral]:
        return self.state.quad

    def enable(self):
        self.state.enable()
        self.loop.start()
        self._notify()

    def disable(self):
        # clear first so a read racing with stop() already sees None
        self.state.disable()
        self.loop.stop()
        self._notify()

    def toggle(self, value: bool):
        if value:
            self.enable()
        else:
            self.disable()

    def crop_area(self, video_width: int, video_height: int,
                  rescale: bool = False) -> Optional[CropRectangle]:
        """
        Crop for the stored boundary. With rescale=True the quad is mapped
        from the detection raster's size into the video's size first.
        """
        quad, size = self.state.snapshot()
        if quad is None:
            return None
        if rescale and size is not None and size != (video_width, video_height):
            quad = scale_quadrilateral(quad, size, (video_width, video_height))
        return compute_crop_area(quad, video_width, video_height, debug=bool(self.cfg.get("debug")))

    def _notify(self):
        if self.on_change is not None:
            try:
                self.on_change(self.state.enabled)
            except Exception as e:
                print(f"[WARN] on_change callback failed: {e}")
