"""
Ranking helpers for chunk-level similarity results.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from ..errors import InvalidResponse
from ..storage import CandidateChunk

SNIPPET_LENGTH = 200


@dataclass(frozen=True)
class RankedChunk:
    """Best-scoring chunk of one page."""

    page_id: int
    chunk_index: int
    score: float
    snippet: str


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors; 0.0 when either has zero norm."""
    left = np.asarray(a, dtype=np.float64)
    right = np.asarray(b, dtype=np.float64)
    if left.shape != right.shape:
        raise InvalidResponse(
            f"Vector dimension mismatch: {left.shape[0]} vs {right.shape[0]}"
        )
    denom = float(np.linalg.norm(left) * np.linalg.norm(right))
    if denom == 0.0:
        return 0.0
    return float(np.dot(left, right) / denom)


def _score_candidates(
    query_vector: Sequence[float], candidates: Sequence[CandidateChunk]
) -> list[float]:
    query = np.asarray(query_vector, dtype=np.float64)
    dim = query.shape[0]
    for candidate in candidates:
        if len(candidate.vector) != dim:
            raise InvalidResponse(
                f"Stored vector for page {candidate.page_id} chunk "
                f"{candidate.chunk_index} has dimension {len(candidate.vector)}, "
                f"query has {dim}"
            )

    matrix = np.asarray([c.vector for c in candidates], dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms != 0)
    return [float(score) for score in scores]


def rank_chunks(
    query_vector: Sequence[float],
    candidates: Sequence[CandidateChunk],
    *,
    top_n: int = 10,
) -> list[RankedChunk]:
    """Score every candidate, keep the best chunk per page, and cut to *top_n*.

    Deduplication runs over the full sorted list before truncation, so a page
    with many strong chunks cannot push other pages out of the result.
    """
    if not candidates or top_n <= 0:
        return []

    scores = _score_candidates(query_vector, candidates)
    # sorted() is stable: equal scores keep the store's (page_id, chunk_index) order.
    order = sorted(range(len(candidates)), key=lambda i: -scores[i])

    seen: set[int] = set()
    ranked: list[RankedChunk] = []
    for index in order:
        candidate = candidates[index]
        if candidate.page_id in seen:
            continue
        seen.add(candidate.page_id)
        ranked.append(
            RankedChunk(
                page_id=candidate.page_id,
                chunk_index=candidate.chunk_index,
                score=scores[index],
                snippet=candidate.text[:SNIPPET_LENGTH],
            )
        )
        if len(ranked) >= top_n:
            break
    return ranked
