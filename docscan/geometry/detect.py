# docscan/geometry/detect.py
from __future__ import annotations
from typing import Dict, List, Optional, Sequence, Tuple
import cv2
import numpy as np

from docscan.core.config import STRATEGIES, merge_cfg, step_size_for
from docscan.core.contracts import DetectionResult, Failure, Point, Quadrilateral, Raster
from docscan.geometry.gradient import extract_edge_points

# (xDir, yDir) per corner: the extremal point maximizes xDir*x + yDir*y
_CORNER_DIRS: Dict[str, Tuple[int, int]] = {
    "top_left": (-1, -1),
    "top_right": (1, -1),
    "bottom_left": (-1, 1),
    "bottom_right": (1, 1),
}


# ----------------------------------------------------------------------------- #
# Utilities                                                                     #
# ----------------------------------------------------------------------------- #

def _points_to_arrays(points: Sequence[Point]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    xs = np.fromiter((p.x for p in points), dtype=np.int64, count=len(points))
    ys = np.fromiter((p.y for p in points), dtype=np.int64, count=len(points))
    mags = np.fromiter(
        (p.gradient_magnitude if p.gradient_magnitude is not None else 0.0 for p in points),
        dtype=np.float64, count=len(points),
    )
    return xs, ys, mags


def order_corners_clockwise(pts: np.ndarray) -> np.ndarray:
    """Return TL, TR, BR, BL given 4 unordered points: sort by y, then x within top/bottom pair."""
    pts = np.asarray(pts, np.float32)
    if pts.shape != (4, 2):
        pts = pts.reshape(4, 2)
    sorted_y = pts[np.argsort(pts[:, 1], kind="stable")]
    top2 = sorted_y[:2]
    bottom2 = sorted_y[2:]
    tl, tr = top2[np.argsort(top2[:, 0], kind="stable")]
    bl, br = bottom2[np.argsort(bottom2[:, 0], kind="stable")]
    return np.array([tl, tr, br, bl], dtype=np.float32)


def is_valid_quadrilateral(quad: Quadrilateral, cfg: Optional[Dict] = None) -> bool:
    """
    Strict-mode check: corners must be labelled consistently (TL left of TR,
    BL left of BR, TL above BL, TR above BR) and TL→TR→BR→BL must be a
    convex, non-self-intersecting polygon.
    """
    cfg = merge_cfg(cfg)
    tl, tr, bl, br = quad.top_left, quad.top_right, quad.bottom_left, quad.bottom_right

    if not (tl.x < tr.x and bl.x < br.x and tl.y < bl.y and tr.y < br.y):
        if cfg.get("debug"):
            print(f"[strict] corner labels out of order: {quad.as_tuple()}")
        return False

    pts = quad.as_array()
    if abs(cv2.contourArea(pts)) < 1.0:
        if cfg.get("debug"): print("[strict] degenerate area")
        return False

    # A crossed (bow-tie) quad is never convex; isContourConvex covers both.
    convex = bool(cv2.isContourConvex(pts.reshape(-1, 1, 2)))
    if cfg.get("debug") and not convex:
        print(f"[strict] non-convex quad: {quad.as_tuple()}")
    return convex


# ----------------------------------------------------------------------------- #
# Four-quadrant corner search                                                   #
# ----------------------------------------------------------------------------- #

def estimate_quadrilateral(points: Sequence[Point], cfg: Optional[Dict] = None) -> Optional[Quadrilateral]:
    """
    Pick one extremal corner per quadrant around the centroid of the
    strongest edge points.

    Returns None ("insufficient data") when there are not more than
    cfg["min_edge_points"] points or any quadrant holds fewer than
    cfg["min_quadrant_points"].
    """
    cfg = merge_cfg(cfg)
    n = len(points)
    if n <= int(cfg["min_edge_points"]):
        if cfg.get("debug"): print(f"[quad] only {n} edge points")
        return None

    xs, ys, mags = _points_to_arrays(points)

    # strongest first; stable so equal magnitudes keep scan order
    order = np.argsort(-mags, kind="stable")[: int(cfg["top_k_points"])]
    xs, ys = xs[order], ys[order]

    cx, cy = float(xs.mean()), float(ys.mean())
    left, top = xs < cx, ys < cy
    quadrants = {
        "top_left": left & top,
        "top_right": ~left & top,
        "bottom_left": left & ~top,
        "bottom_right": ~left & ~top,
    }

    min_q = int(cfg["min_quadrant_points"])
    counts = {name: int(mask.sum()) for name, mask in quadrants.items()}
    if cfg.get("debug"):
        print(f"[quad] kept={xs.size} centroid=({cx:.1f},{cy:.1f}) counts={counts}")
    if min(counts.values()) < min_q:
        return None

    corners: Dict[str, Point] = {}
    for name, mask in quadrants.items():
        qx, qy = xs[mask], ys[mask]
        xd, yd = _CORNER_DIRS[name]
        i = int(np.argmax(xd * qx + yd * qy))  # first max wins ties
        corners[name] = Point(int(qx[i]), int(qy[i]))

    return Quadrilateral(**corners)


# ----------------------------------------------------------------------------- #
# Bounding-box fallback                                                         #
# ----------------------------------------------------------------------------- #

def bounding_box_fallback(points: Sequence[Point], width: int, height: int,
                          cfg: Optional[Dict] = None) -> Optional[Quadrilateral]:
    """Axis-aligned box of all edge points, or None if it spans too little of the raster."""
    cfg = merge_cfg(cfg)
    if not points:
        return None
    xs, ys, _ = _points_to_arrays(points)
    min_x, max_x = int(xs.min()), int(xs.max())
    min_y, max_y = int(ys.min()), int(ys.max())

    frac = float(cfg["min_bbox_fraction"])
    span_w, span_h = max_x - min_x, max_y - min_y
    if span_w < frac * width or span_h < frac * height:
        if cfg.get("debug"):
            print(f"[bbox] too small: {span_w}x{span_h} in {width}x{height} (need {frac:.0%})")
        return None

    return Quadrilateral(
        top_left=Point(min_x, min_y),
        top_right=Point(max_x, min_y),
        bottom_left=Point(min_x, max_y),
        bottom_right=Point(max_x, max_y),
    )


# ----------------------------------------------------------------------------- #
# Contour-approximation strategy                                                #
# ----------------------------------------------------------------------------- #

def detect_by_contours(raster: Raster, cfg: Optional[Dict] = None) -> Optional[Quadrilateral]:
    """Largest 4-vertex polygon approximation among the biggest edge contours."""
    cfg = merge_cfg(cfg)
    c_cfg = cfg["contours"]
    gray = cv2.cvtColor(raster.pixels.copy(), cv2.COLOR_RGBA2GRAY)

    b = int(c_cfg.get("blur", 5))
    if b > 1:
        if b % 2 == 0: b += 1
        gray = cv2.GaussianBlur(gray, (b, b), 0)
    edges = cv2.Canny(gray, int(c_cfg.get("canny_low", 75)), int(c_cfg.get("canny_high", 200)))
    k = int(c_cfg.get("dilate", 3))
    if k > 1:
        edges = cv2.dilate(edges, cv2.getStructuringElement(cv2.MORPH_RECT, (k, k)))

    cnts, _ = cv2.findContours(edges, cv2.RETR_LIST, cv2.CHAIN_APPROX_SIMPLE)
    if not cnts:
        if cfg.get("debug"): print("[contours] no contours")
        return None

    cnts = sorted(cnts, key=cv2.contourArea, reverse=True)
    eps = float(c_cfg.get("epsilon", 0.02))
    for c in cnts[: int(c_cfg.get("max_candidates", 5))]:
        peri = cv2.arcLength(c, True)
        approx = cv2.approxPolyDP(c, eps * peri, True)
        if len(approx) == 4:
            pts = order_corners_clockwise(approx.reshape(4, 2))
            if cfg.get("debug"):
                print(f"[contours] quad area={cv2.contourArea(c):.0f} pts={pts.tolist()}")
            return Quadrilateral.from_array(pts)

    if cfg.get("debug"): print("[contours] no 4-vertex approximation among candidates")
    return None


# ----------------------------------------------------------------------------- #
# Public entrypoint                                                              #
# ----------------------------------------------------------------------------- #

def detect_from_points(points: List[Point], width: int, height: int,
                       cfg: Optional[Dict] = None) -> DetectionResult:
    """Quadrant search with bounding-box fallback over an existing edge point set."""
    cfg = merge_cfg(cfg)
    n = len(points)
    if n <= int(cfg["min_edge_points"]):
        return DetectionResult(failure=Failure.INSUFFICIENT_EDGE_SIGNAL, num_points=n)

    quad = estimate_quadrilateral(points, cfg)
    if quad is not None and cfg.get("strict") and not is_valid_quadrilateral(quad, cfg):
        quad = None
    if quad is not None:
        return DetectionResult(quad=quad, strategy="quadrants", num_points=n)

    box = bounding_box_fallback(points, width, height, cfg)
    if box is not None:
        return DetectionResult(quad=box, strategy="bbox", num_points=n,
                               fallback_reason=Failure.QUADRANT_IMBALANCE)
    return DetectionResult(failure=Failure.BOUNDARY_TOO_SMALL, num_points=n)


def detect(raster: Optional[Raster], cfg: Optional[Dict] = None) -> DetectionResult:
    """
    One full pipeline pass: raster → edge points → quadrilateral (or fallback).

    Never raises for image content; the failure branch taken is reported
    on the result instead.
    """
    cfg = merge_cfg(cfg)
    strategy = cfg.get("strategy", "gradient")
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown detection strategy: {strategy!r}")

    if raster is None or raster.pixels.size == 0:
        return DetectionResult(failure=Failure.INPUT_DEGENERATE)

    if strategy == "contours":
        quad = detect_by_contours(raster, cfg)
        if quad is not None:
            return DetectionResult(quad=quad, strategy="contours")
        if cfg.get("debug"):
            print("[detect] contours found nothing → gradient")

    points = extract_edge_points(raster, cfg)
    if not points:
        return DetectionResult(failure=Failure.INPUT_DEGENERATE
                               if _is_degenerate(raster, cfg) else Failure.INSUFFICIENT_EDGE_SIGNAL)

    result = detect_from_points(points, raster.width, raster.height, cfg)
    if cfg.get("debug"):
        print(f"[detect] points={result.num_points} strategy={result.strategy} failure={result.failure}")
    return result


def _is_degenerate(raster: Raster, cfg: Dict) -> bool:
    step = step_size_for(raster.width, raster.height, cfg)
    return raster.width < 2 * step + 1 or raster.height < 2 * step + 1
