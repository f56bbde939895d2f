"""
Query-time search over stored page embeddings.

Embeds the query, ranks every stored chunk, and resolves live page metadata,
falling back to substring matching while no embeddings exist yet.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import Any

from loguru import logger

from ..embeddings import EmbeddingClient
from ..errors import ServiceUnavailable
from ..storage import EmbeddingStore, PageStore
from .ranker import SNIPPET_LENGTH, RankedChunk, rank_chunks

FALLBACK_LIMIT = 10
FALLBACK_SCORE = 1.0


@dataclass(frozen=True)
class SearchHit:
    """A page matching a search query."""

    page_id: int
    page_title: str
    page_slug: str
    snippet: str
    score: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SearchService:
    """Semantic search with a keyword fallback for unindexed wikis."""

    def __init__(
        self,
        *,
        client: EmbeddingClient | None,
        store: EmbeddingStore,
        pages: PageStore,
    ) -> None:
        self.client = client
        self.store = store
        self.pages = pages

    async def search(self, query: str, *, limit: int = 10) -> list[SearchHit]:
        """Return up to *limit* pages ranked by similarity to *query*.

        Embedding failures propagate so callers can tell "no results" apart
        from "search unavailable".
        """
        normalized = query.strip()
        if not normalized:
            return []

        chunk_count = await asyncio.to_thread(self.store.count_chunks)
        if chunk_count == 0:
            logger.info("No embeddings stored yet; using substring search")
            return await asyncio.to_thread(self._substring_search, normalized)

        if self.client is None:
            raise ServiceUnavailable("No embedding client configured")
        query_vector = await self.client.embed_query(normalized)
        candidates = await asyncio.to_thread(self.store.all_chunks)
        # Rank every page so hits dropped during resolution can be backfilled.
        ranked = rank_chunks(query_vector, candidates, top_n=len(candidates))
        return await asyncio.to_thread(self._resolve_pages, ranked, max(limit, 1))

    def _resolve_pages(self, ranked: list[RankedChunk], limit: int) -> list[SearchHit]:
        hits: list[SearchHit] = []
        for item in ranked:
            if len(hits) >= limit:
                break
            page = self.pages.get_page(item.page_id)
            if page is None or page.is_archived:
                continue
            hits.append(
                SearchHit(
                    page_id=page.id,
                    page_title=page.title,
                    page_slug=page.slug,
                    snippet=item.snippet,
                    score=item.score,
                )
            )
        return hits

    def _substring_search(self, query: str) -> list[SearchHit]:
        needle = query.lower()
        hits: list[SearchHit] = []
        for page in self.pages.list_pages():
            if needle not in page.title.lower() and needle not in page.content.lower():
                continue
            hits.append(
                SearchHit(
                    page_id=page.id,
                    page_title=page.title,
                    page_slug=page.slug,
                    snippet=page.content[:SNIPPET_LENGTH],
                    score=FALLBACK_SCORE,
                )
            )
            if len(hits) >= FALLBACK_LIMIT:
                break
        return hits
