"""Tests for chunk ranking and page deduplication."""

import pytest

from wiki_search.errors import InvalidResponse
from wiki_search.search import cosine_similarity, rank_chunks
from wiki_search.storage import CandidateChunk


def _chunk(page_id: int, index: int, vector: list[float], text: str = "") -> CandidateChunk:
    return CandidateChunk(
        page_id=page_id,
        chunk_index=index,
        text=text or f"page {page_id} chunk {index}",
        vector=vector,
        page_title=f"Page {page_id}",
        page_slug=f"page-{page_id}",
    )


def test_cosine_similarity_basics() -> None:
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_cosine_similarity_dimension_mismatch() -> None:
    with pytest.raises(InvalidResponse):
        cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


def test_keeps_best_chunk_per_page() -> None:
    candidates = [
        _chunk(1, 0, [0.2, 1.0]),
        _chunk(1, 1, [1.0, 0.0]),
        _chunk(2, 0, [1.0, 0.1]),
    ]

    ranked = rank_chunks([1.0, 0.0], candidates, top_n=10)

    assert [(r.page_id, r.chunk_index) for r in ranked] == [(1, 1), (2, 0)]
    assert ranked[0].score == pytest.approx(1.0)
    assert ranked[0].score >= ranked[1].score


def test_dedup_happens_before_truncation() -> None:
    # Page 1 owns the five best chunks; page 2 must still make the top two.
    candidates = [_chunk(1, i, [1.0, 0.01 * i]) for i in range(5)]
    candidates.append(_chunk(2, 0, [0.5, 1.0]))

    ranked = rank_chunks([1.0, 0.0], candidates, top_n=2)

    assert [r.page_id for r in ranked] == [1, 2]


def test_ties_keep_candidate_order() -> None:
    candidates = [
        _chunk(3, 0, [1.0, 0.0]),
        _chunk(1, 0, [2.0, 0.0]),
        _chunk(2, 0, [0.5, 0.0]),
    ]

    first = rank_chunks([1.0, 0.0], candidates)
    second = rank_chunks([1.0, 0.0], candidates)

    assert [r.page_id for r in first] == [3, 1, 2]
    assert first == second


def test_snippet_is_truncated() -> None:
    long_text = "word " * 100
    ranked = rank_chunks([1.0], [_chunk(1, 0, [1.0], text=long_text)])

    assert ranked[0].snippet == long_text[:200]
    assert len(ranked[0].snippet) == 200


def test_zero_vector_scores_zero() -> None:
    ranked = rank_chunks([1.0, 0.0], [_chunk(1, 0, [0.0, 0.0])])

    assert ranked[0].score == 0.0


def test_dimension_mismatch_is_reported() -> None:
    with pytest.raises(InvalidResponse, match="dimension"):
        rank_chunks([1.0, 0.0], [_chunk(1, 0, [1.0, 0.0, 0.0])])


def test_empty_inputs() -> None:
    assert rank_chunks([1.0], []) == []
    assert rank_chunks([1.0], [_chunk(1, 0, [1.0])], top_n=0) == []
