"""Storage backends for wiki pages and embedding chunks."""

from .base import (
    CandidateChunk,
    EmbeddingChunk,
    EmbeddingStore,
    PageRecord,
    PageStore,
)
from .duckdb import DuckDBStorage

__all__ = [
    "CandidateChunk",
    "EmbeddingChunk",
    "EmbeddingStore",
    "PageRecord",
    "PageStore",
    "DuckDBStorage",
]
