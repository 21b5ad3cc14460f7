from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from faceid.config import CONF_THRESHOLD, NMS_THRESHOLD, VARIANCES
from faceid.errors import ConfigurationError, TensorShapeError
from faceid.face.priors import PriorTable
from faceid.utils.log import get_logger

logger = get_logger(__name__)

# 5个关键点 (左眼, 右眼, 鼻, 左嘴, 右嘴)
LANDMARK_NAMES = ("left_eye", "right_eye", "nose", "left_mouth", "right_mouth")


@dataclass
class DetectorConfig:
    # Keep anchors whose face probability is at least this value.
    conf_threshold: float = CONF_THRESHOLD
    # Regression scale for (center, size).
    variances: Tuple[float, float] = VARIANCES
    # Greedy NMS drops candidates whose IoU with a kept box exceeds this value.
    nms_threshold: float = NMS_THRESHOLD


@dataclass(frozen=True)
class Detection:
    box: Tuple[float, float, float, float]  # (x, y, w, h) in source-image pixels
    score: float
    landmarks: Tuple[Tuple[float, float], ...]  # 5 x (x, y), LANDMARK_NAMES order

    @property
    def area(self) -> float:
        return float(self.box[2]) * float(self.box[3])

    @property
    def xyxy(self) -> Tuple[float, float, float, float]:
        x, y, w, h = self.box
        return (x, y, x + w, y + h)

    @property
    def kps(self) -> np.ndarray:
        """Landmarks as a fresh (5, 2) float32 array."""
        return np.asarray(self.landmarks, dtype=np.float32).reshape(-1, 2)


def _as_rows(name: str, tensor, num_priors: int, width: int) -> np.ndarray:
    arr = np.asarray(tensor, dtype=np.float32)
    expected = num_priors * width
    if arr.size != expected:
        raise TensorShapeError(
            f"{name} tensor has {arr.size} values (shape {arr.shape}), "
            f"expected {expected} = {num_priors} priors x {width}"
        )
    return arr.reshape(num_priors, width)


class DetectionDecoder:
    """Turns raw (loc, conf, landm) detector outputs into pixel-space detections."""

    def __init__(self, priors: PriorTable, config: Optional[DetectorConfig] = None):
        self.priors = priors
        self.config = config or DetectorConfig()
        if len(self.config.variances) != 2:
            raise ConfigurationError(f"variances must be a pair, got {self.config.variances}")

    def decode(
        self,
        loc,
        conf,
        landm,
        image_size: Tuple[int, int],
    ) -> List[Detection]:
        """Decode every anchor above the confidence threshold.

        Args:
            loc: box regression, N x 4 (any shape holding exactly N*4 values)
            conf: (background, face) probabilities, N x 2
            landm: landmark regression, N x 10
            image_size: (width, height) of the original, pre-resize image

        Returns:
            Unfiltered candidate list; boxes are not clamped to the image.
        """
        src_w, src_h = int(image_size[0]), int(image_size[1])
        if src_w <= 0 or src_h <= 0:
            raise ConfigurationError(f"invalid image size: {image_size}")

        n = len(self.priors)
        loc = _as_rows("loc", loc, n, 4)
        conf = _as_rows("conf", conf, n, 2)
        landm = _as_rows("landm", landm, n, 10)

        scores = conf[:, 1]
        keep = np.nonzero(scores >= float(self.config.conf_threshold))[0]
        if keep.size == 0:
            return []

        var0, var1 = (float(v) for v in self.config.variances)
        p = self.priors.table[keep].astype(np.float64)
        reg = loc[keep].astype(np.float64)
        lm = landm[keep].astype(np.float64).reshape(-1, 5, 2)

        cx = p[:, 0] + reg[:, 0] * var0 * p[:, 2]
        cy = p[:, 1] + reg[:, 1] * var0 * p[:, 3]
        w = p[:, 2] * np.exp(reg[:, 2] * var1)
        h = p[:, 3] * np.exp(reg[:, 3] * var1)

        xs = (cx - w / 2.0) * src_w
        ys = (cy - h / 2.0) * src_h
        ws = w * src_w
        hs = h * src_h

        lx = (p[:, None, 0] + lm[:, :, 0] * var0 * p[:, None, 2]) * src_w
        ly = (p[:, None, 1] + lm[:, :, 1] * var0 * p[:, None, 3]) * src_h

        out: List[Detection] = []
        for j, i in enumerate(keep):
            out.append(
                Detection(
                    box=(float(xs[j]), float(ys[j]), float(ws[j]), float(hs[j])),
                    score=float(scores[i]),
                    landmarks=tuple((float(lx[j, k]), float(ly[j, k])) for k in range(5)),
                )
            )
        logger.debug(f"decoded {len(out)}/{n} anchors above {self.config.conf_threshold}")
        return out

    def __call__(self, outputs: Sequence, image_size: Tuple[int, int]) -> List[Detection]:
        """Decode a (loc, conf, landm) output triple from the runtime."""
        if len(outputs) < 3:
            raise TensorShapeError(f"detector returned {len(outputs)} outputs, expected 3 (loc, conf, landm)")
        return self.decode(outputs[0], outputs[1], outputs[2], image_size)
