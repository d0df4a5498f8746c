# docscan/geometry/gradient.py
from __future__ import annotations
from typing import Dict, List, Optional
import cv2
import numpy as np

from docscan.core.config import merge_cfg, step_size_for
from docscan.core.contracts import Point, Raster

# ITU-R BT.601 weights, alpha ignored
_LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)


def luminance(raster: Raster) -> np.ndarray:
    """(H, W) float32 brightness of an RGBA raster."""
    rgb = raster.pixels[:, :, :3].astype(np.float32)
    return rgb @ _LUMA_WEIGHTS


def sample_grid(width: int, height: int, step: int):
    """Sample coordinates, `step` apart and never within `step` of a border."""
    xs = np.arange(step, width - step, step, dtype=np.int64)
    ys = np.arange(step, height - step, step, dtype=np.int64)
    return xs, ys


def extract_edge_points(raster: Optional[Raster], cfg: Optional[Dict] = None) -> List[Point]:
    """
    Return the sampled pixels whose Sobel gradient magnitude exceeds
    cfg["gradient_threshold"], in raster scan order (row by row).

    Degenerate rasters (smaller than 2*step+1 on either side) yield [].
    """
    cfg = merge_cfg(cfg)
    if raster is None or raster.pixels.size == 0:
        return []

    W, H = raster.width, raster.height
    step = step_size_for(W, H, cfg)
    if W < 2 * step + 1 or H < 2 * step + 1:
        if cfg.get("debug"):
            print(f"[gradient] degenerate raster {W}x{H} for step={step}")
        return []

    luma = luminance(raster)
    # 3x3 Sobel; borders are never sampled so the border mode is irrelevant
    gx_full = cv2.Sobel(luma, cv2.CV_32F, 1, 0, ksize=3)
    gy_full = cv2.Sobel(luma, cv2.CV_32F, 0, 1, ksize=3)

    xs, ys = sample_grid(W, H, step)
    gx = gx_full[np.ix_(ys, xs)]
    gy = gy_full[np.ix_(ys, xs)]
    grad = np.hypot(gx, gy)

    thr = float(cfg["gradient_threshold"])
    rows, cols = np.nonzero(grad > thr)  # row-major → scan order
    if cfg.get("debug"):
        print(f"[gradient] step={step} samples={grad.size} edges={rows.size} thr={thr}")

    angles = np.arctan2(gy[rows, cols], gx[rows, cols])
    mags = grad[rows, cols]
    return [
        Point(int(xs[c]), int(ys[r]), float(m), float(a))
        for r, c, m, a in zip(rows, cols, mags, angles)
    ]
