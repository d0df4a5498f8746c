#!/usr/bin/env python3
from __future__ import annotations
import argparse, json, os
import sys
from datetime import datetime
import cv2
import numpy as np

from docscan.core.config import load_cfg, merge_cfg
from docscan.core.contracts import Quadrilateral, Raster
from docscan.geometry.crop import compute_crop_area, crop_frame
from docscan.geometry.detect import detect


# --- Simple log-to-file wrapper ---
class Tee:
    def __init__(self, *streams):
        self.streams = streams
    def write(self, data):
        for s in self.streams:
            s.write(data)
            s.flush()
    def flush(self):
        for s in self.streams:
            s.flush()


def _setup_log(out_dir: str) -> str:
    os.makedirs(out_dir, exist_ok=True)
    logfile = os.path.join(out_dir, f"detect_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log")
    log = open(logfile, "w")
    sys.stdout = Tee(sys.stdout, log)
    sys.stderr = Tee(sys.stderr, log)
    print(f"[logging] Writing debug output to: {logfile}")
    return logfile


def draw_quad(img, quad: Quadrilateral, color=(0, 255, 0), thickness=3):
    q = quad.as_array().astype(int).reshape(4, 2)
    cv2.polylines(img, [q], True, color, thickness, lineType=cv2.LINE_AA)
    for x, y in q:
        cv2.circle(img, (int(x), int(y)), 5, (0, 0, 255), -1, lineType=cv2.LINE_AA)


def load_quad(path) -> np.ndarray:
    # expects JSON: [[x,y],[x,y],[x,y],[x,y]] in TL,TR,BR,BL order
    with open(path, "r") as f:
        arr = np.array(json.load(f), dtype=np.float32)
    return arr.reshape(4, 2)


def mask_from_quad(quad, shape):
    m = np.zeros(shape[:2], np.uint8)
    cv2.fillConvexPoly(m, quad.astype(np.int32), 255)
    return m


def iou_quads(q1, q2, shape):
    m1 = mask_from_quad(q1, shape)
    m2 = mask_from_quad(q2, shape)
    inter = np.logical_and(m1 > 0, m2 > 0).sum()
    union = np.logical_or(m1 > 0, m2 > 0).sum()
    return inter / max(1, union)


def main(argv=None):
    ap = argparse.ArgumentParser(description="Run docscan detect() on an image, draw the outline and crop.")
    ap.add_argument("image", help="Path to input image.")
    ap.add_argument("--config", help="YAML file with detector overrides.")
    ap.add_argument("--strategy", choices=["gradient", "contours"], default=None)
    ap.add_argument("--threshold", type=float, default=None, help="Gradient threshold override.")
    ap.add_argument("--strict", action="store_true", help="Reject non-convex / crossed quads.")
    ap.add_argument("--out_dir", default="tests/output", help="Directory for outputs.")
    ap.add_argument("--gt", help="Path to ground-truth quad JSON [[x,y],...]. Optional.")
    ap.add_argument("--debug", action="store_true", help="Enable debug prints in detector.")
    ap.add_argument("--no-log", action="store_true", help="Do not tee output to a log file.")
    args = ap.parse_args(argv)

    if not args.no_log:
        _setup_log(args.out_dir)

    img = cv2.imread(args.image, cv2.IMREAD_COLOR)
    if img is None:
        raise SystemExit(f"Could not read image: {args.image}")

    cfg = load_cfg(args.config) if args.config else merge_cfg(None)
    if args.strategy:
        cfg["strategy"] = args.strategy
    if args.threshold is not None:
        cfg["gradient_threshold"] = args.threshold
    if args.strict:
        cfg["strict"] = True
    cfg["debug"] = cfg.get("debug") or args.debug

    os.makedirs(args.out_dir, exist_ok=True)
    base = os.path.splitext(os.path.basename(args.image))[0]
    out_viz = os.path.join(args.out_dir, f"{base}_viz.png")
    out_crop = os.path.join(args.out_dir, f"{base}_crop.png")

    res = detect(Raster.from_bgr(img), cfg)
    vis = img.copy()
    h, w = img.shape[:2]

    if res.quad is not None:
        draw_quad(vis, res.quad)
        print(f"Detection: strategy={res.strategy}, points={res.num_points}, quad={res.quad.as_tuple()}")
        if args.gt:
            gt = load_quad(args.gt)
            cv2.polylines(vis, [gt.astype(np.int32)], True, (255, 0, 0), 2)
            print(f"[dbg] IoU vs GT = {iou_quads(res.quad.as_array(), gt, img.shape):.3f}")

        rect = compute_crop_area(res.quad, w, h, debug=cfg["debug"])
        cv2.imwrite(out_crop, crop_frame(img, rect))
        print(f"Saved crop ({rect if rect else 'full frame'}) → {out_crop}")
    else:
        print(f"No boundary detected ({res.failure.value if res.failure else 'unknown'}).")
        cv2.putText(vis, "NO DETECTION", (20, 40),
                    cv2.FONT_HERSHEY_SIMPLEX, 1.0, (0, 0, 255), 2, cv2.LINE_AA)

    cv2.imwrite(out_viz, vis)
    print(f"Saved visualization → {out_viz}")
    return 0 if res.quad is not None else 1


if __name__ == "__main__":
    sys.exit(main())
