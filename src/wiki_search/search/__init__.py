"""Search helpers for embedded wiki pages."""

from .ranker import RankedChunk, cosine_similarity, rank_chunks
from .service import SearchHit, SearchService

__all__ = [
    "RankedChunk",
    "cosine_similarity",
    "rank_chunks",
    "SearchHit",
    "SearchService",
]
