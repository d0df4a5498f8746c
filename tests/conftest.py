"""
Shared synthetic scenes. Everything is drawn on the fly with OpenCV,
so no test assets are required.
"""
from __future__ import annotations
import cv2
import numpy as np
import pytest

from docscan.core.contracts import Raster


def make_document_frame(w: int = 640, h: int = 480, tl=(100, 80), br=(540, 400),
                        bg: int = 0, fg: int = 255) -> np.ndarray:
    """BGR frame with a filled axis-aligned 'document' (corners inclusive)."""
    frame = np.full((h, w, 3), bg, np.uint8)
    cv2.rectangle(frame, tl, br, (fg, fg, fg), -1)
    return frame


def make_polygon_frame(corners, w: int = 640, h: int = 480, bg: int = 0, fg: int = 255) -> np.ndarray:
    frame = np.full((h, w, 3), bg, np.uint8)
    cv2.fillConvexPoly(frame, np.asarray(corners, np.int32), (fg, fg, fg))
    return frame


@pytest.fixture
def document_raster() -> Raster:
    """The 640x480 white-on-black scene with corners (100,80),(540,80),(540,400),(100,400)."""
    return Raster.from_bgr(make_document_frame())


@pytest.fixture
def uniform_raster() -> Raster:
    return Raster.from_bgr(np.full((480, 640, 3), 128, np.uint8))
