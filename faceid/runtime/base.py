from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np


@dataclass
class ModelSpec:
    """How an image is turned into the model's input tensor."""

    input_size: Tuple[int, int]  # (w, h)
    # Convert the BGR camera frame to RGB before normalisation.
    swap_rb: bool = True
    mean: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    std: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    layout: str = "nchw"  # or "nhwc"
    dtype: str = "float32"  # "uint8" feeds raw pixels (quantized NPU models)


# RetinaFace-320 (mobilenet0.25) as exported from Pytorch_Retinaface: BGR minus mean.
RETINAFACE_320 = ModelSpec(input_size=(320, 320), swap_rb=False, mean=(104.0, 117.0, 123.0))

# w600k_mbf / ArcFace: RGB, (x - 127.5) / 128.
MOBILEFACENET_112 = ModelSpec(input_size=(112, 112), swap_rb=True, mean=(127.5, 127.5, 127.5), std=(128.0, 128.0, 128.0))


class InferenceModel(ABC):
    """Single capability the core needs from an accelerator: image in, raw tensors out."""

    @abstractmethod
    def infer(self, image: np.ndarray) -> List[np.ndarray]:
        """Run the model on one BGR uint8 (H, W, 3) image.

        Implementations must not modify `image` and raise
        `faceid.errors.InferenceError` on failure.
        """
