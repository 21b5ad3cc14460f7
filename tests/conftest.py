from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import sys

import numpy as np
import pytest

# Ensure repo root is on sys.path so tests can import `faceid` without installing it.
repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from faceid.face.gallery import InMemoryEmbeddingStore
from faceid.face.priors import PriorTable
from faceid.runtime.base import InferenceModel

# stride 32, min size 256, feature-map cell (row 4, col 4)
BIG_ANCHOR = 3200 + 800 + (4 * 10 + 4) * 2
# stride 32, min size 512 on the same cell
HUGE_ANCHOR = BIG_ANCHOR + 1

# Landmark offsets (in variance-scaled anchor units) that form a face-like layout.
FACE_LANDMARKS = (
    (-1.0, -1.0),
    (1.0, -1.0),
    (0.0, 0.0),
    (-0.8, 1.0),
    (0.8, 1.0),
)
COINCIDENT_LANDMARKS = ((0.0, 0.0),) * 5


def make_detector_outputs(
    num_priors: int,
    hits: Dict[int, Tuple[float, Sequence[float], Sequence[Tuple[float, float]]]],
) -> List[np.ndarray]:
    """Raw (loc, conf, landm) tensors where only `hits` anchors carry a face score.

    hits: {prior_index: (score, loc4, 5 x landmark offsets)}
    """
    loc = np.zeros((1, num_priors, 4), dtype=np.float32)
    conf = np.zeros((1, num_priors, 2), dtype=np.float32)
    conf[..., 0] = 1.0
    landm = np.zeros((1, num_priors, 10), dtype=np.float32)
    for idx, (score, reg, lm) in hits.items():
        loc[0, idx] = reg
        conf[0, idx] = (1.0 - score, score)
        landm[0, idx] = np.asarray(lm, dtype=np.float32).reshape(-1)
    return [loc, conf, landm]


class DummyDetector(InferenceModel):
    """Returns the same raw tensors for every frame and records what it was given."""

    def __init__(self, outputs: List[np.ndarray]):
        self.outputs = outputs
        self.calls = 0

    def infer(self, image: np.ndarray) -> List[np.ndarray]:
        self.calls += 1
        assert not image.flags.writeable
        return [o.copy() for o in self.outputs]


class DummyEmbedder(InferenceModel):
    """Returns `feature` (settable between calls) as the model output."""

    def __init__(self, feature: Optional[np.ndarray]):
        self.feature = feature
        self.shapes: List[Tuple[int, ...]] = []

    def infer(self, image: np.ndarray) -> List[np.ndarray]:
        self.shapes.append(tuple(image.shape))
        if self.feature is None:
            return []
        return [np.asarray(self.feature, dtype=np.float32).reshape(1, -1)]


@pytest.fixture
def priors() -> PriorTable:
    return PriorTable()


@pytest.fixture
def face_outputs(priors: PriorTable) -> List[np.ndarray]:
    return make_detector_outputs(len(priors), {BIG_ANCHOR: (0.95, (0.0, 0.0, 0.0, 0.0), FACE_LANDMARKS)})


@pytest.fixture
def empty_outputs(priors: PriorTable) -> List[np.ndarray]:
    return make_detector_outputs(len(priors), {})


@pytest.fixture
def frame() -> np.ndarray:
    rng = np.random.default_rng(0)
    return rng.integers(0, 255, size=(320, 320, 3), dtype=np.uint8)


@pytest.fixture
def memory_store() -> InMemoryEmbeddingStore:
    return InMemoryEmbeddingStore()


def unit(seed: int, dim: int = 128) -> np.ndarray:
    rng = np.random.default_rng(seed)
    v = rng.normal(size=dim).astype(np.float32)
    return v / np.linalg.norm(v)
