"""Anchor (prior box) grid for the RetinaFace detector head."""
from __future__ import annotations

import math

from dataclasses import dataclass
from typing import Iterator, Sequence

import numpy as np

from faceid.config import MIN_SIZES, MODEL_HEIGHT, MODEL_WIDTH, STRIDES
from faceid.errors import ConfigurationError
from faceid.utils.log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Prior:
    # Normalized (0..1) anchor center and size.
    cx: float
    cy: float
    base_w: float
    base_h: float


def expected_prior_count(
    width: int, height: int, strides: Sequence[int], min_sizes: Sequence[Sequence[float]]
) -> int:
    return sum(
        math.ceil(width / s) * math.ceil(height / s) * len(sizes) for s, sizes in zip(strides, min_sizes)
    )


def _is_positive_int(value) -> bool:
    """True for whole numbers above zero; 12.5 or "8" are rejected rather than truncated."""
    if isinstance(value, (bool, str)):
        return False
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(as_float) and as_float.is_integer() and as_float > 0


class PriorTable:
    """Precomputed anchors for one input resolution.

    Rows are emitted in stride order, then feature-map row, column and size
    index, which is the order the detector writes its output rows. Row ``i``
    of the table pairs with row ``i`` of every raw output tensor.

    The table is generated once in ``__init__`` and exposed read-only.
    """

    def __init__(
        self,
        width: int = MODEL_WIDTH,
        height: int = MODEL_HEIGHT,
        strides: Sequence[int] = STRIDES,
        min_sizes: Sequence[Sequence[float]] = MIN_SIZES,
    ):
        if not (_is_positive_int(width) and _is_positive_int(height)):
            raise ConfigurationError(f"invalid model resolution: {width}x{height}")
        if len(strides) == 0:
            raise ConfigurationError("at least one stride is required")
        if len(strides) != len(min_sizes):
            raise ConfigurationError(
                f"strides ({len(strides)}) and min_sizes ({len(min_sizes)}) must have the same length"
            )
        for stride, sizes in zip(strides, min_sizes):
            if not _is_positive_int(stride):
                raise ConfigurationError(f"invalid stride: {stride}")
            if len(sizes) == 0 or any(float(s) <= 0 for s in sizes):
                raise ConfigurationError(f"invalid min_sizes for stride {stride}: {list(sizes)}")

        self.width = int(width)
        self.height = int(height)
        self.strides = tuple(int(s) for s in strides)
        self.min_sizes = tuple(tuple(float(x) for x in sizes) for sizes in min_sizes)

        self._table = self._generate()
        self._table.setflags(write=False)
        logger.debug(f"Priors generated: {len(self)} for {self.width}x{self.height}")

    def _generate(self) -> np.ndarray:
        blocks = []
        for stride, sizes in zip(self.strides, self.min_sizes):
            feature_w = math.ceil(self.width / stride)
            feature_h = math.ceil(self.height / stride)
            rows, cols = np.meshgrid(np.arange(feature_h), np.arange(feature_w), indexing="ij")
            cx = (cols + 0.5) * stride / self.width
            cy = (rows + 0.5) * stride / self.height
            s = np.asarray(sizes, dtype=np.float64)

            block = np.empty((feature_h, feature_w, s.size, 4), dtype=np.float64)
            block[..., 0] = cx[..., None]
            block[..., 1] = cy[..., None]
            block[..., 2] = s / self.width
            block[..., 3] = s / self.height
            blocks.append(block.reshape(-1, 4))
        return np.concatenate(blocks, axis=0).astype(np.float32)

    @property
    def table(self) -> np.ndarray:
        """(N, 4) float32 array of (cx, cy, base_w, base_h); read-only."""
        return self._table

    def __len__(self) -> int:
        return int(self._table.shape[0])

    def __getitem__(self, index: int) -> Prior:
        cx, cy, w, h = (float(v) for v in self._table[index])
        return Prior(cx=cx, cy=cy, base_w=w, base_h=h)

    def __iter__(self) -> Iterator[Prior]:
        for i in range(len(self)):
            yield self[i]
