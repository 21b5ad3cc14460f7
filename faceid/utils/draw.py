from __future__ import annotations

from functools import lru_cache
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from faceid.config import FONT_LIST
from faceid.face.decoder import Detection
from faceid.face.types import RecognitionResult, Status

# Prompt colors (BGR): green success, orange duplicate or not found, red for errors.
STATUS_COLORS = {
    Status.SUCCESS: (0, 200, 0),
    Status.DUPLICATE: (0, 165, 255),
    Status.NOT_FOUND: (0, 165, 255),
    Status.NO_FACE: (0, 0, 255),
    Status.NO_CROP: (0, 0, 255),
    Status.FAILED: (0, 0, 255),
}

# One color per landmark: left eye, right eye, nose, left mouth, right mouth.
LANDMARK_COLORS = [(255, 0, 0), (0, 0, 255), (0, 255, 0), (255, 0, 255), (0, 255, 255)]


@lru_cache(maxsize=64)
def _get_best_font(font_size: int) -> ImageFont.ImageFont:
    """Return a font instance (cached) that best supports CJK on current OS."""
    for p in FONT_LIST:
        try:
            return ImageFont.truetype(p, int(font_size))
        except OSError:
            continue
    return ImageFont.load_default()


def draw_texts_cn(
    img: np.ndarray,
    items: Sequence[Tuple[str, Tuple[int, int], int, Tuple[int, int, int]]],
) -> None:
    """Draw unicode texts onto one frame with a single PIL conversion.

    Args:
        img: OpenCV BGR image, modified in-place.
        items: sequence of (text, (x, y), font_size_px, bgr_color)
    """
    if img is None or len(items) == 0:
        return

    pil_img = Image.fromarray(cv2.cvtColor(img, cv2.COLOR_BGR2RGB))
    draw = ImageDraw.Draw(pil_img)
    for text, org, font_size, bgr in items:
        # PIL uses RGB
        rgb_color = (int(bgr[2]), int(bgr[1]), int(bgr[0]))
        draw.text(tuple(org), str(text), font=_get_best_font(int(font_size)), fill=rgb_color)
    img[:] = cv2.cvtColor(np.array(pil_img), cv2.COLOR_RGB2BGR)


def draw_text_cn(img: np.ndarray, text: str, org: Tuple[int, int], font_size: int = 14, color=(255, 255, 255)):
    """在 OpenCV 图像上绘制中文文本。"""
    draw_texts_cn(img, [(str(text), tuple(org), int(font_size), (int(color[0]), int(color[1]), int(color[2])))])


def draw_detection(img: np.ndarray, det: Detection, color=(0, 255, 0), thickness: int = 2) -> None:
    """Box, score and the 5 landmarks, in-place. Coordinates may exceed the frame."""
    x1, y1, x2, y2 = [int(round(v)) for v in det.xyxy]
    cv2.rectangle(img, (x1, y1), (x2, y2), color, thickness)
    cv2.putText(
        img, f"{det.score:.2f}", (x1, max(0, y1 - 6)), cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 1, cv2.LINE_AA
    )
    for (x, y), c in zip(det.landmarks, LANDMARK_COLORS):
        cv2.circle(img, (int(round(x)), int(round(y))), 3, c, -1)


def draw_result(img: np.ndarray, result: Optional[RecognitionResult], font_size: int = 28) -> None:
    """Overlay the chosen face and the colored prompt of an enroll/identify result."""
    if result is None:
        return
    color = STATUS_COLORS.get(result.status, (255, 255, 255))
    if result.detection is not None:
        draw_detection(img, result.detection, color=color)
    draw_text_cn(img, result.message, (10, 10), font_size=font_size, color=color)
