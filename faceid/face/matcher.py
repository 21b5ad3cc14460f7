from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from faceid.config import SIMILARITY_THRESHOLD
from faceid.errors import DimensionMismatchError
from faceid.face.gallery import EmbeddingStore
from faceid.face.types import Action, RecognitionResult, Status
from faceid.utils.log import get_logger
from faceid.utils.math import cosine_similarity, l2_normalize

logger = get_logger(__name__)


@dataclass
class MatcherConfig:
    # One cosine boundary separates "same person" from "different person",
    # used both to reject duplicate enrollments and to accept identifications.
    threshold: float = SIMILARITY_THRESHOLD


class Matcher:
    """Linear-scan cosine matcher over an EmbeddingStore.

    Queries are L2-normalized before they are compared or stored. Match cost
    is O(gallery size x embedding dim) per call.
    """

    def __init__(self, store: EmbeddingStore, config: Optional[MatcherConfig] = None):
        self.store = store
        self.config = config or MatcherConfig()

    def _prepare(self, embedding: np.ndarray) -> np.ndarray:
        vec = np.asarray(embedding, dtype=np.float32).reshape(-1)
        if vec.size == 0:
            raise DimensionMismatchError("empty embedding")
        dim = self.store.dim
        if dim is not None and vec.size != dim:
            raise DimensionMismatchError(f"query dim {vec.size} does not match gallery dim {dim}")
        return l2_normalize(vec)

    def find_best(self, embedding: np.ndarray) -> Tuple[Optional[int], float]:
        """Return (best_id, best_similarity); (None, 0.0) for an empty gallery."""
        return self._scan(self._prepare(embedding))

    def _scan(self, query: np.ndarray) -> Tuple[Optional[int], float]:
        best_id: Optional[int] = None
        best_sim = 0.0
        for face_id, stored in self.store.iterate():
            sim = cosine_similarity(query, stored)
            if sim > best_sim:
                best_sim = sim
                best_id = face_id
        return best_id, float(best_sim)

    def enroll(self, embedding: np.ndarray) -> RecognitionResult:
        query = self._prepare(embedding)
        best_id, best_sim = self._scan(query)
        if best_id is not None and best_sim >= float(self.config.threshold):
            logger.info(f"duplicate enrollment: matches id={best_id} (similarity {best_sim:.4f})")
            return RecognitionResult(Action.ENROLL, Status.DUPLICATE, face_id=best_id, similarity=best_sim)

        new_id = self.store.append(query)
        logger.info(f"enrolled id={new_id} (closest similarity {best_sim:.4f})")
        return RecognitionResult(Action.ENROLL, Status.SUCCESS, face_id=new_id, similarity=best_sim)

    def identify(self, embedding: np.ndarray) -> RecognitionResult:
        best_id, best_sim = self.find_best(embedding)
        if best_id is not None and best_sim >= float(self.config.threshold):
            return RecognitionResult(Action.IDENTIFY, Status.SUCCESS, face_id=best_id, similarity=best_sim)
        return RecognitionResult(Action.IDENTIFY, Status.NOT_FOUND, similarity=best_sim)
