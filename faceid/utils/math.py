from __future__ import annotations

import numpy as np

from faceid.config import SIMILARITY_EPS


def l2_normalize(vec: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    """L2-normalize a vector (or 2D array row-wise) safely.

    Zero vectors are returned unchanged instead of producing NaN.
    """
    arr = np.asarray(vec, dtype=np.float32)
    if arr.ndim == 1:
        denom = float(np.linalg.norm(arr))
        if denom < eps:
            return arr
        return arr / denom
    if arr.ndim == 2:
        norms = np.linalg.norm(arr, axis=1, keepdims=True)
        norms = np.maximum(norms, eps)
        return arr / norms
    raise ValueError(f"Unsupported ndim={arr.ndim}")


def cosine_similarity(a: np.ndarray, b: np.ndarray, eps: float = SIMILARITY_EPS) -> float:
    """Cosine similarity for 1D vectors.

    Returns 0.0 when the dimensions differ, when either vector is empty, or
    when either norm is below `eps`.
    """
    va = np.asarray(a, dtype=np.float64).reshape(-1)
    vb = np.asarray(b, dtype=np.float64).reshape(-1)
    if va.size == 0 or va.size != vb.size:
        return 0.0
    na2 = float(np.dot(va, va))
    nb2 = float(np.dot(vb, vb))
    if np.sqrt(na2) < eps or np.sqrt(nb2) < eps:
        return 0.0
    # sqrt(na2 * nb2) keeps a-vs-a at exactly 1.0
    sim = float(np.dot(va, vb)) / float(np.sqrt(na2 * nb2))
    return max(-1.0, min(1.0, sim))
