"""
Core contracts and simple data types shared across stages.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple
import cv2
import numpy as np


@dataclass(frozen=True)
class Raster:
    """
    One decoded video frame as an RGBA pixel buffer.

    pixels: np.ndarray with shape (H, W, 4), dtype uint8, read-only.
    """
    pixels: np.ndarray

    def __post_init__(self):
        px = np.ascontiguousarray(self.pixels, dtype=np.uint8)
        if px.ndim != 3 or px.shape[2] != 4:
            raise ValueError(f"Raster needs (H, W, 4) RGBA pixels, got shape {px.shape}")
        px.setflags(write=False)
        object.__setattr__(self, "pixels", px)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @classmethod
    def from_bytes(cls, data: bytes, width: int, height: int) -> "Raster":
        """Wrap a contiguous RGBA buffer of length 4*width*height."""
        expected = 4 * int(width) * int(height)
        if len(data) != expected:
            raise ValueError(f"RGBA buffer for {width}x{height} must be {expected} bytes, got {len(data)}")
        arr = np.frombuffer(bytes(data), dtype=np.uint8).reshape(int(height), int(width), 4)
        return cls(pixels=arr)

    @classmethod
    def from_bgr(cls, frame: np.ndarray) -> "Raster":
        """Build from an OpenCV frame (BGR, BGRA or grayscale)."""
        if frame.ndim == 2:
            rgba = cv2.cvtColor(frame, cv2.COLOR_GRAY2RGBA)
        elif frame.shape[2] == 4:
            rgba = cv2.cvtColor(frame, cv2.COLOR_BGRA2RGBA)
        else:
            rgba = cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA)
        return cls(pixels=rgba)

    def to_bytes(self) -> bytes:
        return self.pixels.tobytes()


@dataclass(frozen=True)
class Point:
    x: int
    y: int
    gradient_magnitude: Optional[float] = None
    angle: Optional[float] = None  # radians


@dataclass(frozen=True)
class Quadrilateral:
    """
    The four document corners in raster coordinates (pixels).

    Labels are assigned positionally by whichever strategy produced the quad;
    they are not re-sorted by true geometric position.
    """
    top_left: Point
    top_right: Point
    bottom_left: Point
    bottom_right: Point

    def as_array(self) -> np.ndarray:
        """(4, 2) float32 in clockwise order [top-left, top-right, bottom-right, bottom-left]."""
        return np.array([
            [self.top_left.x, self.top_left.y],
            [self.top_right.x, self.top_right.y],
            [self.bottom_right.x, self.bottom_right.y],
            [self.bottom_left.x, self.bottom_left.y],
        ], dtype=np.float32)

    @classmethod
    def from_array(cls, pts: np.ndarray) -> "Quadrilateral":
        """Inverse of as_array(); expects TL, TR, BR, BL rows."""
        p = np.asarray(pts, dtype=np.float32).reshape(4, 2)
        tl, tr, br, bl = [Point(int(round(float(x))), int(round(float(y)))) for x, y in p]
        return cls(top_left=tl, top_right=tr, bottom_left=bl, bottom_right=br)

    def as_tuple(self) -> Tuple[Tuple[int, int], Tuple[int, int], Tuple[int, int], Tuple[int, int]]:
        return tuple((p.x, p.y) for p in (self.top_left, self.top_right,
                                          self.bottom_right, self.bottom_left))  # type: ignore[return-value]


@dataclass(frozen=True)
class CropRectangle:
    x: int
    y: int
    width: int
    height: int

    def as_xyxy(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.x + self.width, self.y + self.height


class Failure(str, Enum):
    INPUT_DEGENERATE = "input_degenerate"
    INSUFFICIENT_EDGE_SIGNAL = "insufficient_edge_signal"
    QUADRANT_IMBALANCE = "quadrant_imbalance"
    BOUNDARY_TOO_SMALL = "boundary_too_small"
    CROP_UNAVAILABLE = "crop_unavailable"


@dataclass
class DetectionResult:
    quad: Optional[Quadrilateral] = None
    strategy: Optional[str] = None  # "quadrants" | "bbox" | "contours"
    failure: Optional[Failure] = None
    num_points: int = 0
    fallback_reason: Optional[Failure] = None  # why the quadrant search was skipped

    @property
    def ok(self) -> bool:
        return self.quad is not None
