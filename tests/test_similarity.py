from __future__ import annotations

import math

import pytest

from assistant_orchestrator.memory.similarity import (
    cosine_distance,
    max_distance_for,
    rank_by_distance,
    similarity_from_distance,
)


def test_cosine_distance_basic_geometry() -> None:
    assert cosine_distance([1.0, 0.0], [2.0, 0.0]) == pytest.approx(0.0)
    assert cosine_distance([1.0, 0.0], [0.0, 3.0]) == pytest.approx(1.0)
    assert cosine_distance([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(2.0)


def test_cosine_distance_treats_zero_vectors_as_unrelated() -> None:
    assert cosine_distance([0.0, 0.0], [1.0, 1.0]) == 1.0


def test_cosine_distance_rejects_mismatched_dimensions() -> None:
    with pytest.raises(ValueError, match="dimensions differ"):
        cosine_distance([1.0, 0.0], [1.0, 0.0, 0.0])


def test_threshold_maps_to_max_distance() -> None:
    assert max_distance_for(0.7) == pytest.approx(0.3)
    assert max_distance_for(1.0) == 0.0
    with pytest.raises(ValueError):
        max_distance_for(1.5)


def test_similarity_is_one_minus_distance() -> None:
    assert similarity_from_distance(0.25) == 0.75


def test_rank_by_distance_filters_sorts_and_limits() -> None:
    angle = math.radians(30)
    candidates = {
        "exact": [1.0, 0.0],
        "near": [math.cos(angle), math.sin(angle)],
        "far": [0.0, 1.0],
        "unembedded": None,
        "wrong_dims": [1.0, 0.0, 0.0],
    }

    ranked = rank_by_distance(
        candidates,
        [1.0, 0.0],
        vector_of=candidates.get,
        max_distance=max_distance_for(0.7),
        limit=10,
    )

    assert [name for name, _ in ranked] == ["exact", "near"]
    assert ranked[0][1] == pytest.approx(0.0)

    limited = rank_by_distance(
        candidates,
        [1.0, 0.0],
        vector_of=candidates.get,
        max_distance=2.0,
        limit=1,
    )
    assert [name for name, _ in limited] == ["exact"]
