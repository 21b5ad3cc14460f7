"""Exception hierarchy shared by the decode/align/match core and its adapters.

Absence outcomes (no face, no crop, not found) are *not* exceptions; they are
reported through `faceid.face.recognizer.Status`.
"""
from __future__ import annotations


class FaceIDError(Exception):
    """Base class for all faceid errors."""


class ConfigurationError(FaceIDError, ValueError):
    """Invalid static configuration (strides, resolution, landmark count...)."""


class DimensionMismatchError(ConfigurationError):
    """An embedding does not match the dimensionality of the gallery."""


class TensorShapeError(FaceIDError):
    """A raw model output does not hold the number of values the priors require."""


class InferenceError(FaceIDError):
    """The inference runtime failed to load or run a model."""


class StorageError(FaceIDError):
    """The persistence backend failed to read or write the gallery."""
