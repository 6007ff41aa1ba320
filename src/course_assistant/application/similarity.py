"""Cosine similarity and brute-force ranking over stored vectors.

Every candidate is scored in memory; there is no vector index. This is fine
for moderate corpus sizes and keeps the storage layer a flat table.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

import numpy as np

from course_assistant.application.exceptions import VectorLengthMismatchError

T = TypeVar("T")


@dataclass
class Ranked(Generic[T]):
    """A candidate payload with its similarity score."""

    item: T
    score: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return ``dot(a, b) / (|a| * |b|)``, or ``0.0`` if either vector has zero norm.

    Raises:
        VectorLengthMismatchError: If the vectors have different lengths.
    """
    if len(a) != len(b):
        raise VectorLengthMismatchError(
            f"Vectors must have the same length (got {len(a)} and {len(b)})"
        )

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    magnitude = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if magnitude == 0.0:
        return 0.0
    return float(np.dot(va, vb) / magnitude)


def rank_by_similarity(
    query: Sequence[float],
    candidates: Iterable[tuple[Sequence[float], T]],
    *,
    limit: int = 5,
    min_score: float,
) -> list[Ranked[T]]:
    """Score every ``(vector, item)`` candidate against *query* and keep the best.

    Candidates scoring below *min_score* are dropped. The rest are sorted by
    score descending; equal scores keep their original order.

    Args:
        query: The query embedding.
        candidates: ``(vector, item)`` pairs, typically stored chunks.
        limit: Maximum number of results.
        min_score: Minimum similarity to keep a candidate.

    Returns:
        At most *limit* ranked items.
    """
    if limit <= 0:
        return []

    scored = [
        Ranked(item=item, score=cosine_similarity(query, vector)) for vector, item in candidates
    ]
    kept = [r for r in scored if r.score >= min_score]
    # sorted() is stable, so ties keep candidate order
    kept = sorted(kept, key=lambda r: r.score, reverse=True)
    return kept[:limit]
