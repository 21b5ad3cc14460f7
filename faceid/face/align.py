"""5-point similarity alignment to the ArcFace-style 112x112 template."""
from __future__ import annotations

from typing import Optional, Tuple

import cv2
import numpy as np

from faceid.config import ALIGNED_SIZE, REFERENCE_PTS_112
from faceid.errors import ConfigurationError
from faceid.utils.log import get_logger

logger = get_logger(__name__)


def reference_points(out_size: Tuple[int, int] = ALIGNED_SIZE) -> np.ndarray:
    """Template landmarks scaled to `out_size` (w, h)."""
    out_w, out_h = int(out_size[0]), int(out_size[1])
    dst = REFERENCE_PTS_112.copy()
    if (out_w, out_h) != (112, 112):
        dst = dst * np.array([out_w / 112.0, out_h / 112.0], dtype=np.float32)
    return dst.astype(np.float32)


def _is_degenerate(pts: np.ndarray, min_spread: float = 1e-3, min_ratio: float = 1e-2) -> bool:
    """True for coincident or (near-)collinear point sets."""
    centered = pts.astype(np.float64) - pts.astype(np.float64).mean(axis=0)
    sv = np.linalg.svd(centered, compute_uv=False)
    if sv.size < 2 or not np.all(np.isfinite(sv)):
        return True
    if sv[0] < min_spread:
        return True
    return bool(sv[1] / sv[0] < min_ratio)


def estimate_similarity(src: np.ndarray, dst: np.ndarray) -> Optional[np.ndarray]:
    """Rotation + uniform scale + translation mapping `src` onto `dst`.

    Returns a 2x3 float32 matrix, or None when the point set or the solver
    result is degenerate.
    """
    src = np.asarray(src, dtype=np.float32).reshape(-1, 2)
    dst = np.asarray(dst, dtype=np.float32).reshape(-1, 2)
    if src.shape != dst.shape:
        raise ConfigurationError(f"landmark count {src.shape[0]} does not match reference count {dst.shape[0]}")
    if not np.all(np.isfinite(src)) or _is_degenerate(src):
        return None

    M, _ = cv2.estimateAffinePartial2D(src, dst, method=cv2.LMEDS)
    if M is None or M.size == 0 or not np.all(np.isfinite(M)):
        return None
    scale = float(np.hypot(M[0, 0], M[1, 0]))
    if scale < 1e-6:
        return None
    return M.astype(np.float32)


class Aligner:
    """Warp the source image so the 5 landmarks land on the reference template."""

    def __init__(self, out_size: Tuple[int, int] = ALIGNED_SIZE):
        self.out_size = (int(out_size[0]), int(out_size[1]))
        if self.out_size[0] <= 0 or self.out_size[1] <= 0:
            raise ConfigurationError(f"invalid aligned size: {out_size}")
        self.reference = reference_points(self.out_size)

    def align(self, image: np.ndarray, landmarks) -> Optional[np.ndarray]:
        """Returns the aligned crop, or None for a degenerate transform.

        `image` is read, never written.
        """
        kps = np.asarray(landmarks, dtype=np.float32).reshape(-1, 2)
        M = estimate_similarity(kps, self.reference)
        if M is None:
            logger.warning("5pt alignment degenerate -> no crop")
            return None

        aligned = cv2.warpAffine(
            image,
            M,
            self.out_size,
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=(0, 0, 0),
        )
        if aligned is None or aligned.size == 0:
            return None
        return aligned
