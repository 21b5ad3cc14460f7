"""ONNX Runtime adapter for the detector and recognizer models."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np
import onnxruntime as ort

from faceid.errors import InferenceError
from faceid.runtime.base import InferenceModel, ModelSpec
from faceid.utils.log import get_logger, suppress_fds

logger = get_logger(__name__)

# 进程内会话缓存：同一模型 + providers 只初始化一次。
_SESSION_CACHE: Dict[Tuple, ort.InferenceSession] = {}


def resolve_providers(device: str = "auto") -> List[str]:
    """Map 'auto'/'cpu'/'gpu' to ONNX Runtime execution providers."""
    dev = str(device).lower().strip()
    if dev == "auto":
        try:
            import torch

            dev = "gpu" if torch.cuda.is_available() else "cpu"
        except Exception:
            dev = "cpu"
    if dev == "gpu" and "CUDAExecutionProvider" in ort.get_available_providers():
        return ["CUDAExecutionProvider", "CPUExecutionProvider"]
    if dev == "gpu":
        logger.warning("CUDA requested but onnxruntime has no CUDAExecutionProvider, falling back to CPU")
    return ["CPUExecutionProvider"]


def preprocess(image: np.ndarray, spec: ModelSpec) -> np.ndarray:
    """BGR uint8 (H, W, 3) -> batched model input. `image` is not modified."""
    if image is None or image.ndim != 3 or image.shape[2] != 3:
        raise InferenceError(f"expected a (H, W, 3) BGR image, got {None if image is None else image.shape}")
    in_w, in_h = int(spec.input_size[0]), int(spec.input_size[1])
    img = image
    if img.shape[1] != in_w or img.shape[0] != in_h:
        img = cv2.resize(img, (in_w, in_h), interpolation=cv2.INTER_LINEAR)
    if spec.swap_rb:
        img = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)

    if spec.dtype == "uint8":
        x = np.ascontiguousarray(img, dtype=np.uint8)
    else:
        x = img.astype(np.float32)
        x = (x - np.asarray(spec.mean, dtype=np.float32)) / np.asarray(spec.std, dtype=np.float32)
        x = x.astype(np.dtype(spec.dtype))

    if spec.layout == "nchw":
        x = np.transpose(x, (2, 0, 1))
    return np.ascontiguousarray(x[None, ...])


class OnnxModel(InferenceModel):
    """
    Runs one ONNX model file.

    `output_names` fixes the order of the returned tensors (for the detector:
    loc, conf, landm); by default the graph's own output order is used.
    """

    def __init__(
        self,
        model_path: str,
        spec: ModelSpec,
        device: str = "auto",
        output_names: Optional[Sequence[str]] = None,
    ):
        self.model_path = str(model_path)
        self.spec = spec
        self.providers = resolve_providers(device)

        if not Path(self.model_path).exists():
            raise InferenceError(f"model file not found: {self.model_path}")

        key = (self.model_path, tuple(self.providers))
        sess = _SESSION_CACHE.get(key)
        if sess is None:
            try:
                with suppress_fds():
                    sess = ort.InferenceSession(self.model_path, providers=self.providers)
            except Exception as e:
                logger.error(f"模型初始化失败: {self.model_path}: {e}")
                raise InferenceError(f"failed to load {self.model_path}: {e}") from e
            _SESSION_CACHE[key] = sess
            logger.info(f"已加载模型: {self.model_path} ({self.providers[0]})")
        self.sess = sess

        self.in_name = self.sess.get_inputs()[0].name
        graph_outputs = [o.name for o in self.sess.get_outputs()]
        if output_names is None:
            self.output_names = graph_outputs
        else:
            missing = [n for n in output_names if n not in graph_outputs]
            if missing:
                raise InferenceError(f"{self.model_path} has no outputs {missing}; available: {graph_outputs}")
            self.output_names = list(output_names)

    def infer(self, image: np.ndarray) -> List[np.ndarray]:
        x = preprocess(image, self.spec)
        try:
            outputs = self.sess.run(self.output_names, {self.in_name: x})
        except Exception as e:
            raise InferenceError(f"inference failed for {self.model_path}: {e}") from e
        return [np.asarray(o, dtype=np.float32) for o in outputs]
