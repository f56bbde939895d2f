import asyncio
import hashlib
import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

from wiki_search.errors import ServiceUnavailable
from wiki_search.indexing import BatchJob, PageEmbedder
from wiki_search.search import SearchService
from wiki_search.storage import DuckDBStorage, PageRecord

FAKE_DIM = 16


def fake_vector(text: str, dim: int = FAKE_DIM) -> list[float]:
    """Bag-of-words vector with stable hashing so similar texts score high."""
    vector = [0.0] * dim
    for token in re.findall(r"[a-z0-9]+", text.lower()):
        bucket = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % dim
        vector[bucket] += 1.0
    return vector


class FakeEmbeddingClient:
    """Stands in for EmbeddingClient and records every call."""

    def __init__(
        self,
        *,
        dim: int = FAKE_DIM,
        delay: float = 0.0,
        fail_on: tuple[str, ...] = (),
        fail_times: dict[str, int] | None = None,
        error_cls: type[Exception] = ServiceUnavailable,
    ) -> None:
        self.model = "fake-embedding"
        self.dim = dim
        self.delay = delay
        self.fail_on = fail_on
        self.fail_times = dict(fail_times or {})
        self.error_cls = error_cls
        self.calls: list[str] = []
        self.query_calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.on_embed: Callable[[str], None] | None = None
        self.query_error: Exception | None = None

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.on_embed is not None:
            self.on_embed(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            for marker in self.fail_on:
                if marker in text:
                    raise self.error_cls(f"model rejected {marker}")
            for marker, remaining in self.fail_times.items():
                if marker in text and remaining > 0:
                    self.fail_times[marker] = remaining - 1
                    raise self.error_cls(f"transient failure for {marker}")
            return fake_vector(text, self.dim)
        finally:
            self.in_flight -= 1

    async def embed_query(self, text: str) -> list[float]:
        self.query_calls.append(text)
        if self.query_error is not None:
            raise self.query_error
        return fake_vector(text, self.dim)

    def calls_containing(self, marker: str) -> int:
        return sum(1 for text in self.calls if marker in text)


@dataclass
class Wiki:
    """A storage plus the services built on it, wired to a fake client."""

    storage: DuckDBStorage
    client: FakeEmbeddingClient
    embedder: PageEmbedder
    search: SearchService

    def job(self, **options: Any) -> BatchJob:
        options.setdefault("batch_delay", 0.0)
        return BatchJob(
            embedder=self.embedder,
            pages=self.storage,
            store=self.storage,
            **options,
        )

    def add_pages(self, count: int, *, start: int = 1) -> list[PageRecord]:
        pages = []
        for page_id in range(start, start + count):
            page = PageRecord(
                id=page_id,
                title=f"Page {page_id}",
                slug=f"page-{page_id}",
                content=f"Content for page #{page_id}#.",
                sort_order=page_id,
            )
            self.storage.upsert_page(page)
            pages.append(page)
        return pages


@pytest.fixture()
def storage(tmp_path: Path):
    store = DuckDBStorage(str(tmp_path / "wiki.duckdb"))
    yield store
    store.close()


@pytest.fixture()
def make_wiki(storage: DuckDBStorage) -> Callable[..., Wiki]:
    def _make(**client_options: Any) -> Wiki:
        client = FakeEmbeddingClient(**client_options)
        embedder = PageEmbedder(
            client=client,
            store=storage,
            pages=storage,
            retry_attempts=3,
            retry_delay=0.0,
        )
        return Wiki(
            storage=storage,
            client=client,
            embedder=embedder,
            search=SearchService(client=client, store=storage, pages=storage),
        )

    return _make


@pytest.fixture()
def wiki(make_wiki: Callable[..., Wiki]) -> Wiki:
    return make_wiki()
