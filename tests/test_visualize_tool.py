from __future__ import annotations
import importlib.util
from pathlib import Path

import cv2
import numpy as np

from conftest import make_document_frame

TOOL = Path(__file__).resolve().parent.parent / "tools" / "visualize_detect.py"


def _load_tool():
    spec = importlib.util.spec_from_file_location("visualize_detect", TOOL)
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


def test_tool_writes_viz_and_crop(tmp_path):
    img = tmp_path / "doc.png"
    cv2.imwrite(str(img), make_document_frame())
    rc = _load_tool().main([str(img), "--out_dir", str(tmp_path), "--no-log"])
    assert rc == 0
    crop = cv2.imread(str(tmp_path / "doc_crop.png"))
    assert crop is not None and crop.shape[:2] == (320, 440)
    assert (tmp_path / "doc_viz.png").exists()


def test_tool_reports_no_detection(tmp_path):
    img = tmp_path / "blank.png"
    cv2.imwrite(str(img), np.full((480, 640, 3), 90, np.uint8))
    rc = _load_tool().main([str(img), "--out_dir", str(tmp_path), "--no-log"])
    assert rc == 1
    assert (tmp_path / "blank_viz.png").exists()
    assert not (tmp_path / "blank_crop.png").exists()
