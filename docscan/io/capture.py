# docscan/io/capture.py
from __future__ import annotations
import base64
from dataclasses import dataclass, field
from typing import Dict, Optional
import cv2
import numpy as np

from docscan.core.contracts import CropRectangle, Failure
from docscan.geometry.crop import crop_frame


@dataclass
class CapturedPhoto:
    image: np.ndarray                       # BGR, cropped or full frame
    crop: Optional[CropRectangle]           # None → full frame was kept
    meta: Dict = field(default_factory=dict)

    def to_jpeg(self, quality: int = 95) -> bytes:
        ok, buf = cv2.imencode(".jpg", self.image, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
        if not ok:
            raise RuntimeError("JPEG encoding failed")
        return buf.tobytes()

    def to_data_url(self, quality: int = 95) -> str:
        return "data:image/jpeg;base64," + base64.b64encode(self.to_jpeg(quality)).decode("ascii")


def capture_photo(frame: np.ndarray, crop: Optional[CropRectangle], auto_detect: bool = True,
                  debug: bool = False) -> CapturedPhoto:
    """
    Crop a full-resolution frame to the detected document.

    The full frame is kept when auto-detection is off or no crop is
    available (meta["reason"] says which).
    """
    if not auto_detect:
        if debug: print("[capture] auto-detect off → full frame")
        return CapturedPhoto(image=frame.copy(), crop=None, meta={"reason": "auto_detect_off"})
    if crop is None:
        if debug: print("[capture] crop unavailable → full frame")
        return CapturedPhoto(image=frame.copy(), crop=None,
                             meta={"reason": Failure.CROP_UNAVAILABLE.value})

    # the crop was clipped to the video size; re-clip in case the frame differs
    H, W = frame.shape[:2]
    if crop.x + crop.width > W or crop.y + crop.height > H:
        if debug: print(f"[capture] crop {crop} outside {W}x{H} frame → full frame")
        return CapturedPhoto(image=frame.copy(), crop=None,
                             meta={"reason": Failure.CROP_UNAVAILABLE.value})

    if debug: print(f"[capture] cropped to {crop}")
    return CapturedPhoto(image=crop_frame(frame, crop), crop=crop, meta={"reason": None})
