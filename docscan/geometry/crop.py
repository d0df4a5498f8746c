# docscan/geometry/crop.py
from __future__ import annotations
from typing import Optional, Tuple
import numpy as np

from docscan.core.contracts import CropRectangle, Point, Quadrilateral


def compute_crop_area(quad: Optional[Quadrilateral], video_width: int, video_height: int,
                      debug: bool = False) -> Optional[CropRectangle]:
    """
    Axis-aligned crop derived from the top-left, top-right and bottom-left
    corners, clipped to the video frame.

    Returns None ("unavailable") when the clipped width or height is not
    positive, which includes inverted quads (TL.x >= TR.x or TL.y >= BL.y).
    The caller should then keep the full frame.
    """
    if quad is None:
        return None
    tl, tr, bl = quad.top_left, quad.top_right, quad.bottom_left

    x = max(0, int(tl.x))
    y = max(0, int(tl.y))
    width = min(int(video_width) - x, int(tr.x) - int(tl.x))
    height = min(int(video_height) - y, int(bl.y) - int(tl.y))

    if width <= 0 or height <= 0:
        if debug:
            print(f"[crop] unavailable: x={x} y={y} w={width} h={height} "
                  f"video={video_width}x{video_height}")
        return None
    return CropRectangle(x=x, y=y, width=width, height=height)


def scale_quadrilateral(quad: Quadrilateral, from_size: Tuple[int, int],
                        to_size: Tuple[int, int]) -> Quadrilateral:
    """Map corners from one (width, height) coordinate space to another."""
    fw, fh = from_size
    tw, th = to_size
    sx = float(tw) / max(1, int(fw))
    sy = float(th) / max(1, int(fh))

    def _s(p: Point) -> Point:
        return Point(int(round(p.x * sx)), int(round(p.y * sy)))

    return Quadrilateral(
        top_left=_s(quad.top_left),
        top_right=_s(quad.top_right),
        bottom_left=_s(quad.bottom_left),
        bottom_right=_s(quad.bottom_right),
    )


def crop_frame(frame: np.ndarray, rect: Optional[CropRectangle]) -> np.ndarray:
    """Cut `rect` out of `frame`; a copy of the whole frame when rect is None."""
    if rect is None:
        return frame.copy()
    x0, y0, x1, y1 = rect.as_xyxy()
    return frame[y0:y1, x0:x1].copy()
