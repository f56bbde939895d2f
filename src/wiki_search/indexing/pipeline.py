"""
Per-page embedding pipeline and coverage statistics.
"""

from __future__ import annotations

import asyncio
import hashlib
from dataclasses import asdict, dataclass
from typing import Any

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ..config import env_float, env_int
from ..embeddings import EmbeddingClient
from ..errors import NotFound, ServiceUnavailable
from ..storage import EmbeddingStore, PageRecord, PageStore
from .chunker import ParagraphChunker

_DEFAULT_RETRIES = 3
_DEFAULT_RETRY_DELAY = 1.0
_DEFAULT_CONCURRENCY = 5
_DEFAULT_CACHE_TTL = 24 * 60 * 60


@dataclass(frozen=True)
class EmbeddingsStats:
    """Embedding coverage over non-archived pages."""

    total_pages: int
    pages_with_embeddings: int
    pages_without_embeddings: int
    coverage_percent: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Embedding attempt {} failed: {}; retrying",
        retry_state.attempt_number,
        exc,
    )


class PageEmbedder:
    """Chunk a page, embed every chunk, and replace the page's stored set."""

    def __init__(
        self,
        *,
        client: EmbeddingClient | None,
        store: EmbeddingStore,
        pages: PageStore,
        chunker: ParagraphChunker | None = None,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
        max_concurrency: int | None = None,
        cache_ttl: float | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.pages = pages
        self.chunker = chunker or ParagraphChunker(
            max_length=env_int("WIKI_SEARCH_CHUNK_SIZE", 500)
        )
        self.retry_attempts = retry_attempts or env_int(
            "WIKI_SEARCH_EMBEDDING_RETRIES", _DEFAULT_RETRIES
        )
        self.retry_delay = (
            retry_delay
            if retry_delay is not None
            else env_float("WIKI_SEARCH_EMBEDDING_RETRY_DELAY", _DEFAULT_RETRY_DELAY)
        )
        self.max_concurrency = max_concurrency or env_int(
            "WIKI_SEARCH_BATCH_CONCURRENCY", _DEFAULT_CONCURRENCY
        )
        # 0 disables the text-keyed cache.
        self.cache_ttl = (
            cache_ttl
            if cache_ttl is not None
            else env_float("WIKI_SEARCH_EMBEDDING_CACHE_TTL", _DEFAULT_CACHE_TTL)
        )

    async def embed_page(
        self,
        page: PageRecord,
        *,
        limiter: asyncio.Semaphore | None = None,
    ) -> int:
        """Embed *page* and store the result. Returns the number of chunks.

        Nothing is written unless every chunk embedded successfully.
        """
        if self.client is None:
            raise ServiceUnavailable("No embedding client configured")
        chunks = self.chunker.chunk_text(page.embeddable_text)
        results = await asyncio.gather(
            *(self._embed_chunk(text, limiter) for text in chunks),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

        pairs = list(zip(chunks, results))
        return await asyncio.to_thread(
            self.store.replace_page_embeddings, page.id, pairs
        )

    async def generate_embeddings(self, page_id: int) -> int:
        """(Re)embed a single page on demand, outside the batch pipeline."""
        page = await asyncio.to_thread(self.pages.get_page, page_id)
        if page is None:
            raise NotFound("Page", page_id)
        written = await self.embed_page(
            page, limiter=asyncio.Semaphore(self.max_concurrency)
        )
        logger.info("Embedded page {} into {} chunks", page_id, written)
        return written

    async def _embed_chunk(
        self, text: str, limiter: asyncio.Semaphore | None
    ) -> list[float]:
        text_hash = None
        if self.cache_ttl:
            text_hash = hashlib.sha256(text.encode("utf-8")).hexdigest()
            cached = await asyncio.to_thread(
                self.store.get_cached_embedding,
                text_hash,
                self.client.model,
                self.client.dim,
                max_age=self.cache_ttl,
            )
            if cached is not None:
                return cached

        vector = await self._call_model(text, limiter)
        if text_hash is not None:
            await asyncio.to_thread(
                self.store.cache_embedding,
                text_hash,
                self.client.model,
                self.client.dim,
                vector,
            )
        return vector

    async def _call_model(
        self, text: str, limiter: asyncio.Semaphore | None
    ) -> list[float]:
        vector: list[float] = []
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception_type(ServiceUnavailable),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                if limiter is None:
                    vector = await self.client.embed(text)
                else:
                    async with limiter:
                        vector = await self.client.embed(text)
        return vector


def embeddings_stats(pages: PageStore, store: EmbeddingStore) -> EmbeddingsStats:
    """Count how many non-archived pages have stored embeddings."""
    page_ids = {page.id for page in pages.list_pages()}
    embedded = store.pages_with_embeddings() & page_ids
    total = len(page_ids)
    with_embeddings = len(embedded)
    coverage = round(with_embeddings * 100 / total) if total else 0
    return EmbeddingsStats(
        total_pages=total,
        pages_with_embeddings=with_embeddings,
        pages_without_embeddings=total - with_embeddings,
        coverage_percent=coverage,
    )
