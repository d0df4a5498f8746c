"""
Simple I/O helpers: read images from disk and sample fixed-size RGBA rasters
from a live video source (OpenCV VideoCapture or anything with .read()).
"""

from __future__ import annotations
from typing import Optional, Tuple, Union
import cv2
import numpy as np

from docscan.core.contracts import Raster


def load_image(path: str) -> np.ndarray:
    """
    Load an image from disk (BGR).
    Raises FileNotFoundError if not found.
    """
    img = cv2.imread(path, cv2.IMREAD_COLOR)
    if img is None:
        raise FileNotFoundError(f"Could not read image at: {path}")
    return img


def load_raster(path: str, size: Optional[Tuple[int, int]] = None) -> Raster:
    """Load an image as an RGBA raster, optionally resized to size=(width, height)."""
    img = load_image(path)
    if size is not None:
        img = _resize(img, size)
    return Raster.from_bgr(img)


def _resize(frame: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    w, h = int(size[0]), int(size[1])
    if frame.shape[1] == w and frame.shape[0] == h:
        return frame
    return cv2.resize(frame, (w, h), interpolation=cv2.INTER_AREA)


class FrameSampler:
    """
    Grab the current frame from a video source and hand it out as a
    fixed-size RGBA raster.

    `source` is a device index / URL (opened with cv2.VideoCapture) or an
    already-open capture object exposing read() -> (ok, bgr_frame).
    The full-resolution frame of the latest sample is kept in `last_frame`
    so a capture can be cropped at device resolution.
    """

    def __init__(self, source: Union[int, str, object], width: int = 640, height: int = 480):
        self._owns_capture = isinstance(source, (int, str))
        self._cap = cv2.VideoCapture(source) if self._owns_capture else source
        self.size = (int(width), int(height))
        self.last_frame: Optional[np.ndarray] = None

    def sample(self) -> Optional[Raster]:
        """One raster of self.size, or None when the source has no frame."""
        if self._cap is None:
            return None
        ok, frame = self._cap.read()
        if not ok or frame is None or frame.size == 0:
            return None
        self.last_frame = frame
        return Raster.from_bgr(_resize(frame, self.size))

    __call__ = sample

    def device_size(self) -> Tuple[int, int]:
        """True (width, height) of the source; falls back to the last frame's shape."""
        get = getattr(self._cap, "get", None)
        if callable(get):
            w, h = int(get(cv2.CAP_PROP_FRAME_WIDTH) or 0), int(get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
            if w > 0 and h > 0:
                return w, h
        if self.last_frame is not None:
            return int(self.last_frame.shape[1]), int(self.last_frame.shape[0])
        return self.size

    def close(self):
        """Release the capture if we opened it."""
        if self._cap is not None and self._owns_capture:
            self._cap.release()
        self._cap = None

    def __enter__(self) -> "FrameSampler":
        return self

    def __exit__(self, *exc):
        self.close()
