"""Inference runtime adapters.

The core only depends on `InferenceModel`; `faceid.runtime.onnx` is imported
lazily so the decode/align/match code works without onnxruntime loaded.
"""
from faceid.runtime.base import MOBILEFACENET_112, RETINAFACE_320, InferenceModel, ModelSpec

__all__ = ["InferenceModel", "ModelSpec", "RETINAFACE_320", "MOBILEFACENET_112"]
