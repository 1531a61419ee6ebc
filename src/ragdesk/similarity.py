"""Vector helpers shared by the record store and the client-side search path."""
from __future__ import annotations

import json
from typing import Any, Sequence

import numpy as np


def parse_embedding(raw: Any) -> list[float] | None:
    """
    Accepts an embedding stored as a numeric sequence or as a JSON array string.
    Returns None for anything that is not a non-empty list of numbers.
    """
    if raw is None:
        return None
    value = raw
    if isinstance(raw, (bytes, bytearray)):
        value = raw.decode("utf-8", errors="replace")
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except (TypeError, ValueError):
            return None
    if isinstance(value, np.ndarray):
        value = value.tolist()
    if not isinstance(value, (list, tuple)) or not value:
        return None
    try:
        return [float(component) for component in value]
    except (TypeError, ValueError):
        return None


def serialize_embedding(vector: Sequence[float] | None) -> str | None:
    if vector is None:
        return None
    return json.dumps([float(component) for component in vector])


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine of the angle between two vectors, clamped to [0, 1].
    Zero when the dimensions differ or either vector has zero magnitude.
    """
    if a is None or b is None or len(a) != len(b) or len(a) == 0:
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    score = float(np.dot(va, vb)) / (norm_a * norm_b)
    if not np.isfinite(score):
        return 0.0
    return min(1.0, max(0.0, score))
