"""Vector distance helpers used by in-memory search and result scoring."""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Sequence
from typing import TypeVar

T = TypeVar("T")


def cosine_distance(left: Sequence[float], right: Sequence[float]) -> float:
    """Return ``1 - cosine_similarity``; zero vectors are maximally distant."""
    if len(left) != len(right):
        raise ValueError(f"Vector dimensions differ: {len(left)} != {len(right)}")
    dot = 0.0
    left_norm = 0.0
    right_norm = 0.0
    for a, b in zip(left, right):
        dot += a * b
        left_norm += a * a
        right_norm += b * b
    if left_norm == 0.0 or right_norm == 0.0:
        return 1.0
    similarity = dot / (math.sqrt(left_norm) * math.sqrt(right_norm))
    similarity = max(-1.0, min(1.0, similarity))
    return 1.0 - similarity


def max_distance_for(threshold: float) -> float:
    """Largest cosine distance accepted for a similarity threshold in [0, 1]."""
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"similarity threshold must be within [0, 1], got {threshold}")
    return 1.0 - threshold


def similarity_from_distance(distance: float) -> float:
    return round(1.0 - distance, 6)


def rank_by_distance(
    candidates: Iterable[T],
    query: Sequence[float],
    *,
    vector_of: Callable[[T], Sequence[float] | None],
    max_distance: float,
    limit: int,
) -> list[tuple[T, float]]:
    """Rank candidates closest-first, dropping unembedded rows and rows beyond ``max_distance``."""
    scored: list[tuple[T, float]] = []
    for candidate in candidates:
        vector = vector_of(candidate)
        if not vector or len(vector) != len(query):
            continue
        distance = cosine_distance(vector, query)
        if distance > max_distance:
            continue
        scored.append((candidate, distance))
    scored.sort(key=lambda item: item[1])
    return scored[: max(limit, 0)]
