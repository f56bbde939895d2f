"""
WikiSearch - semantic search and batch embeddings for wiki pages.

This package turns page content into vector embeddings via Google GenAI,
stores them as per-page chunk sets in DuckDB, and ranks pages against free-text
queries. A resumable batch job embeds the whole wiki in the background.

Example usage:
    >>> from wiki_search import build_runtime
    >>> runtime = build_runtime("wiki.duckdb")
    >>> await runtime.batch_job.start()
    >>> hits = await runtime.search_service.search("onboarding checklist")
"""

from .embeddings import EmbeddingClient
from .errors import (
    BatchStateError,
    InvalidResponse,
    NotFound,
    ServiceUnavailable,
    StoreUnavailable,
    WikiSearchError,
)
from .indexing import (
    BatchJob,
    BatchProgress,
    EmbeddingsStats,
    PageEmbedder,
    ParagraphChunker,
    embeddings_stats,
)
from .runtime import WikiSearchRuntime, build_runtime, get_runtime, reset_runtime
from .search import SearchHit, SearchService, rank_chunks
from .storage import DuckDBStorage, PageRecord

__all__ = [
    # Embeddings
    "EmbeddingClient",
    # Errors
    "WikiSearchError",
    "ServiceUnavailable",
    "InvalidResponse",
    "StoreUnavailable",
    "NotFound",
    "BatchStateError",
    # Indexing
    "BatchJob",
    "BatchProgress",
    "EmbeddingsStats",
    "PageEmbedder",
    "ParagraphChunker",
    "embeddings_stats",
    # Search
    "SearchHit",
    "SearchService",
    "rank_chunks",
    # Storage
    "DuckDBStorage",
    "PageRecord",
    # Runtime
    "WikiSearchRuntime",
    "build_runtime",
    "get_runtime",
    "reset_runtime",
]
