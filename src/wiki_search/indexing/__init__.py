"""Embedding generation for wiki pages."""

from .batch import BatchError, BatchJob, BatchProgress, BatchStatus
from .chunker import ParagraphChunker
from .importer import ImportResult, import_markdown_folder
from .pipeline import EmbeddingsStats, PageEmbedder, embeddings_stats

__all__ = [
    "BatchError",
    "BatchJob",
    "BatchProgress",
    "BatchStatus",
    "ParagraphChunker",
    "ImportResult",
    "import_markdown_folder",
    "EmbeddingsStats",
    "PageEmbedder",
    "embeddings_stats",
]
