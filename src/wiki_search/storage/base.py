"""
Storage interfaces and data models for pages and embedding chunks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class PageRecord:
    """A wiki page as seen by the search subsystem."""

    id: int
    title: str
    slug: str
    content: str = ""
    is_archived: bool = False
    sort_order: int = 0

    @property
    def embeddable_text(self) -> str:
        return f"{self.title}\n\n{self.content}".strip()


@dataclass(frozen=True)
class EmbeddingChunk:
    """One embedded segment of a page."""

    page_id: int
    chunk_index: int
    text: str
    vector: list[float]


@dataclass(frozen=True)
class CandidateChunk:
    """A stored chunk joined with the owning page's title and slug."""

    page_id: int
    chunk_index: int
    text: str
    vector: list[float]
    page_title: str
    page_slug: str


class PageStore(Protocol):
    """Read access to wiki pages."""

    def list_pages(
        self,
        *,
        include_archived: bool = False,
        page_ids: list[int] | None = None,
    ) -> list[PageRecord]:
        """List pages, optionally restricted to *page_ids*."""

    def get_page(self, page_id: int) -> PageRecord | None:
        """Get a page by id."""


class EmbeddingStore(Protocol):
    """The only mutation path to stored embedding chunks."""

    def replace_page_embeddings(
        self, page_id: int, chunks: list[tuple[str, list[float]]]
    ) -> int:
        """Atomically replace all chunks of a page. Return count written."""

    def delete_page_embeddings(self, page_id: int) -> int:
        """Drop every chunk of a page. Return count removed."""

    def has_embeddings(self, page_id: int) -> bool:
        """Return True if the page has at least one stored chunk."""

    def pages_with_embeddings(self) -> set[int]:
        """Return ids of all pages that have stored chunks."""

    def get_page_chunks(self, page_id: int) -> list[EmbeddingChunk]:
        """Return the chunks of one page ordered by chunk_index."""

    def count_chunks(self) -> int:
        """Count stored chunks of non-archived pages."""

    def all_chunks(self) -> list[CandidateChunk]:
        """Return chunks of non-archived pages ordered by (page_id, chunk_index)."""

    def get_cached_embedding(
        self, text_hash: str, model: str, dim: int, *, max_age: float
    ) -> list[float] | None:
        """Return a vector cached for this text and model, if still fresh."""

    def cache_embedding(
        self, text_hash: str, model: str, dim: int, vector: list[float]
    ) -> None:
        """Remember the vector computed for a text."""
