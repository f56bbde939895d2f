"""
Process-wide wiring of storage, embedding client, batch job, and search.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger

from .config import resolve_db_path
from .embeddings import EmbeddingClient
from .indexing import BatchJob, PageEmbedder
from .search import SearchService
from .storage import DuckDBStorage


@dataclass
class WikiSearchRuntime:
    """Everything a server or CLI process shares."""

    storage: DuckDBStorage
    client: EmbeddingClient | None
    embedder: PageEmbedder
    batch_job: BatchJob
    search_service: SearchService

    def close(self) -> None:
        self.storage.close()


def build_runtime(
    db_path: str | None = None,
    *,
    client: Any | None = None,
    **job_options: Any,
) -> WikiSearchRuntime:
    """Open the database and assemble the services around it.

    Without *client* the Google GenAI client is created from the environment;
    when no API key is configured the runtime still serves substring search.
    """
    storage = DuckDBStorage(resolve_db_path(db_path))
    if client is None:
        try:
            client = EmbeddingClient()
        except ValueError as exc:
            logger.warning("Semantic search disabled: {}", exc)
            client = None

    embedder = PageEmbedder(client=client, store=storage, pages=storage)
    return WikiSearchRuntime(
        storage=storage,
        client=client,
        embedder=embedder,
        batch_job=BatchJob(
            embedder=embedder, pages=storage, store=storage, **job_options
        ),
        search_service=SearchService(client=client, store=storage, pages=storage),
    )


_RUNTIME: WikiSearchRuntime | None = None


def get_runtime() -> WikiSearchRuntime:
    global _RUNTIME
    if _RUNTIME is None:
        _RUNTIME = build_runtime()
    return _RUNTIME


def set_runtime(runtime: WikiSearchRuntime) -> None:
    global _RUNTIME
    _RUNTIME = runtime


def reset_runtime() -> None:
    global _RUNTIME
    if _RUNTIME is not None:
        _RUNTIME.close()
    _RUNTIME = None
