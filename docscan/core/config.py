# docscan/core/config.py
from __future__ import annotations
from pathlib import Path
from typing import Dict, Optional, Union
import yaml

# Defaults tuned for 640x480 webcam frames and our synthetic tests
DEFAULT_CFG: Dict = {
    # Sobel magnitude a sample must exceed to count as an edge point.
    # Higher trades recall for noise rejection.
    "gradient_threshold": 40.0,
    "step_size": None,                # None → max(min_step_size, min(W, H) // step_divisor)
    "min_step_size": 5,
    "step_divisor": 100,

    # Quadrant search
    "min_edge_points": 50,            # need strictly more than this
    "top_k_points": 500,
    "min_quadrant_points": 5,

    # Bounding-box fallback must span this fraction of the raster in both axes
    "min_bbox_fraction": 0.2,

    "strategy": "gradient",           # "gradient" | "contours"
    "strict": False,                  # reject non-convex / crossed quads
    "contours": {"blur": 5, "canny_low": 75, "canny_high": 200, "dilate": 3,
                 "max_candidates": 5, "epsilon": 0.02},

    # Live loop / sampler
    "tick_period_ms": 200,
    "raster": {"width": 640, "height": 480},

    "jpeg_quality": 95,
    "debug": False,
}

STRATEGIES = ("gradient", "contours")


def merge_cfg(cfg: Optional[Dict]) -> Dict:
    # copy nested dicts so callers can't mutate DEFAULT_CFG
    merged = {k: (dict(v) if isinstance(v, dict) else v) for k, v in DEFAULT_CFG.items()}
    if not cfg:
        return merged
    for k, v in cfg.items():
        if isinstance(v, dict) and k in merged and isinstance(merged[k], dict):
            merged[k] = {**merged[k], **v}
        else:
            merged[k] = v
    return merged


def load_cfg(path: Union[str, Path]) -> Dict:
    """
    Read a YAML file of overrides and merge it over DEFAULT_CFG.
    An empty file yields the defaults.
    """
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config at {path} must be a mapping, got {type(data).__name__}")
    return merge_cfg(data)


def step_size_for(width: int, height: int, cfg: Dict) -> int:
    """Sampling stride; larger frames are sampled more sparsely."""
    if cfg.get("step_size"):
        return max(1, int(cfg["step_size"]))
    divisor = max(1, int(cfg.get("step_divisor", 100)))
    return max(int(cfg.get("min_step_size", 5)), min(int(width), int(height)) // divisor)
