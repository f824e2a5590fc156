"""Face descriptor validation and similarity scoring."""
from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence

import numpy as np

from .errors import InvalidDescriptor

DESCRIPTOR_DIM = 128
# Assumed practical maximum distance between unrelated descriptors.
DISTANCE_SCALE = 2.0


def coerce_descriptor(values: Any) -> np.ndarray:
    """Return ``values`` as a float32 vector of length 128 or raise InvalidDescriptor."""
    if values is None:
        raise InvalidDescriptor("descriptor is missing")
    try:
        vector = np.asarray(values, dtype=np.float32)
    except (TypeError, ValueError) as exc:
        raise InvalidDescriptor(f"descriptor is not numeric: {exc}") from exc
    if vector.shape != (DESCRIPTOR_DIM,):
        raise InvalidDescriptor(
            f"descriptor must have {DESCRIPTOR_DIM} dimensions, got shape {vector.shape}"
        )
    if not np.all(np.isfinite(vector)):
        raise InvalidDescriptor("descriptor contains non-finite values")
    return vector


def optional_descriptor(values: Any) -> Optional[np.ndarray]:
    if values is None:
        return None
    return coerce_descriptor(values)


def is_valid_descriptor(values: Any) -> bool:
    try:
        coerce_descriptor(values)
    except InvalidDescriptor:
        return False
    return True


def similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Bounded similarity in [0, 1]: ``max(0, 1 - ||a - b|| / 2)``."""
    left = np.asarray(a, dtype=np.float64)
    right = np.asarray(b, dtype=np.float64)
    distance = float(np.linalg.norm(left - right))
    return max(0.0, 1.0 - distance / DISTANCE_SCALE)


def corpus_similarity(descriptor: Sequence[float], corpus: Iterable[Sequence[float]]) -> float:
    """Best similarity between ``descriptor`` and any vector in ``corpus`` (0.0 when empty)."""
    vectors = [np.asarray(item, dtype=np.float64) for item in corpus]
    if not vectors:
        return 0.0
    matrix = np.stack(vectors, axis=0)
    probe = np.asarray(descriptor, dtype=np.float64)
    distances = np.linalg.norm(matrix - probe, axis=1)
    best = float(distances.min())
    return max(0.0, 1.0 - best / DISTANCE_SCALE)


def descriptor_to_list(vector: Optional[np.ndarray]) -> Optional[list]:
    if vector is None:
        return None
    return [float(value) for value in vector]
