"""
Resumable batch embedding of wiki pages.

A :class:`BatchJob` owns one :class:`BatchProgress` and the coordinator task
that mutates it. Callers drive the job with ``start``/``stop``/``resume`` and
observe it through ``progress()``, which always returns a copy.

State machine::

    idle ──start──▶ running ──▶ completed | error | paused
    paused ──resume──▶ running
    completed | error ──start──▶ running

Pages are dispatched in fixed-size batches that run strictly one after the
other; a semaphore shared by the whole run caps in-flight embedding calls.
Stop requests are honoured between batches only.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections import deque
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Literal

from loguru import logger

from ..config import env_float, env_int
from ..errors import BatchStateError, InvalidResponse, ServiceUnavailable
from ..storage import EmbeddingStore, PageRecord, PageStore
from .pipeline import PageEmbedder

BatchStatus = Literal["idle", "running", "paused", "completed", "error"]

_DEFAULT_BATCH_SIZE = 5
_DEFAULT_CONCURRENCY = 5
_DEFAULT_BATCH_DELAY = 0.1
_DEFAULT_ERROR_CAP = 100


@dataclass(frozen=True)
class BatchError:
    """A page that failed during a batch run."""

    page_id: int
    error: str


@dataclass
class BatchProgress:
    """Observable state of a batch run."""

    status: BatchStatus = "idle"
    total: int = 0
    processed: int = 0
    failed: int = 0
    cached: int = 0
    current_batch: int = 0
    total_batches: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    estimated_time_remaining: int | None = None
    errors: list[BatchError] = field(default_factory=list)
    last_error: str | None = None
    stop_requested: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("started_at", "completed_at"):
            value = getattr(self, key)
            data[key] = value.isoformat() if value is not None else None
        return data


@dataclass(frozen=True)
class _PageOutcome:
    page_id: int
    chunks: int = 0
    error: str | None = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BatchJob:
    """Single-instance embedding job with pause/resume support."""

    def __init__(
        self,
        *,
        embedder: PageEmbedder,
        pages: PageStore,
        store: EmbeddingStore,
        batch_size: int | None = None,
        concurrency: int | None = None,
        batch_delay: float | None = None,
        error_cap: int | None = None,
    ) -> None:
        self._embedder = embedder
        self._pages = pages
        self._store = store
        self.batch_size = batch_size or env_int(
            "WIKI_SEARCH_BATCH_SIZE", _DEFAULT_BATCH_SIZE
        )
        self.concurrency = concurrency or env_int(
            "WIKI_SEARCH_BATCH_CONCURRENCY", _DEFAULT_CONCURRENCY
        )
        self.batch_delay = (
            batch_delay
            if batch_delay is not None
            else env_float("WIKI_SEARCH_BATCH_DELAY", _DEFAULT_BATCH_DELAY)
        )
        self.error_cap = error_cap or env_int(
            "WIKI_SEARCH_BATCH_ERROR_CAP", _DEFAULT_ERROR_CAP
        )

        self._progress = BatchProgress()
        self._errors: deque[BatchError] = deque(maxlen=self.error_cap)
        self._work_ids: list[int] = []
        self._settled: set[int] = set()
        self._cancel_requested = False
        self._task: asyncio.Task[None] | None = None
        self._active_seconds = 0.0
        self._segment_started: float | None = None

    # -- control -------------------------------------------------------------

    async def start(
        self,
        *,
        force_regenerate: bool = False,
        page_ids: list[int] | None = None,
    ) -> BatchProgress:
        """Begin a fresh run and return immediately with a progress snapshot.

        Raises :class:`BatchStateError` while a run is running or paused. Any
        error raised while reading the work set (typically
        :class:`StoreUnavailable`) leaves the job in ``error`` and is re-raised.
        """
        if self._progress.status in ("running", "paused"):
            raise BatchStateError(
                f"Batch processing already {self._progress.status}; "
                "stop/resume it instead of starting a new run"
            )

        self._reset()
        self._progress.status = "running"
        self._progress.started_at = _now()
        self._segment_started = time.monotonic()

        try:
            pages = await asyncio.to_thread(self._pages.list_pages, page_ids=page_ids)
            embedded: set[int] = set()
            if not force_regenerate:
                embedded = await asyncio.to_thread(self._store.pages_with_embeddings)
        except Exception as exc:
            self._fail(exc)
            raise

        work = [page for page in pages if page.id not in embedded]
        self._work_ids = [page.id for page in work]
        self._progress.total = len(pages)
        self._progress.cached = len(pages) - len(work)
        self._progress.total_batches = math.ceil(len(work) / self.batch_size)

        logger.info(
            "Starting batch embeddings: {} pages, {} cached, {} batches",
            len(pages),
            self._progress.cached,
            self._progress.total_batches,
        )

        if not work:
            self._complete()
        else:
            self._launch(work)
        return self.progress()

    def stop(self) -> BatchProgress:
        """Ask the running job to pause at the next batch boundary."""
        if self._progress.status != "running":
            return self.progress()
        self._cancel_requested = True
        self._progress.stop_requested = True
        logger.info("Batch stop requested")
        return self.progress()

    async def resume(self) -> BatchProgress:
        """Continue a paused run with the pages it has not settled yet."""
        if self._progress.status != "paused":
            raise BatchStateError("Can only resume paused processing")

        self._cancel_requested = False
        self._progress.stop_requested = False
        self._progress.status = "running"
        self._progress.completed_at = None
        self._segment_started = time.monotonic()

        remaining_ids = [pid for pid in self._work_ids if pid not in self._settled]
        try:
            pages = await asyncio.to_thread(
                self._pages.list_pages, page_ids=remaining_ids
            )
        except Exception as exc:
            self._fail(exc)
            raise

        by_id = {page.id: page for page in pages}
        remaining = [by_id[pid] for pid in remaining_ids if pid in by_id]
        vanished = len(remaining_ids) - len(remaining)
        if vanished:
            logger.warning(
                "{} pages were archived or removed while paused; dropping them",
                vanished,
            )
            self._progress.total -= vanished
            self._work_ids = [
                pid for pid in self._work_ids if pid in self._settled or pid in by_id
            ]

        self._progress.total_batches = self._progress.current_batch + math.ceil(
            len(remaining) / self.batch_size
        )
        logger.info("Resuming batch embeddings: {} pages remaining", len(remaining))

        if not remaining:
            self._complete()
        else:
            self._launch(remaining)
        return self.progress()

    def progress(self) -> BatchProgress:
        """Return a snapshot of the current progress."""
        return replace(self._progress, errors=list(self._errors))

    async def wait(self) -> BatchProgress:
        """Wait for the coordinator task to finish, pause, or fail."""
        if self._task is not None:
            await asyncio.shield(self._task)
        return self.progress()

    @property
    def is_running(self) -> bool:
        return self._progress.status == "running"

    # -- coordinator ---------------------------------------------------------

    def _launch(self, pages: list[PageRecord]) -> None:
        self._task = asyncio.create_task(self._run(pages))

    async def _run(self, pages: list[PageRecord]) -> None:
        limiter = asyncio.Semaphore(self.concurrency)
        try:
            for offset in range(0, len(pages), self.batch_size):
                if offset and self.batch_delay:
                    await asyncio.sleep(self.batch_delay)
                if self._cancel_requested:
                    self._pause()
                    return
                self._progress.current_batch += 1
                await self._run_batch(pages[offset : offset + self.batch_size], limiter)
            # A stop that arrives during the last batch has nothing left to pause.
            self._complete()
        except asyncio.CancelledError:
            self._pause()
            raise
        except Exception as exc:
            self._fail(exc)

    async def _run_batch(
        self, batch: list[PageRecord], limiter: asyncio.Semaphore
    ) -> None:
        tasks = [asyncio.create_task(self._embed_one(page, limiter)) for page in batch]
        fatal: Exception | None = None
        try:
            for next_done in asyncio.as_completed(tasks):
                try:
                    outcome = await next_done
                except Exception as exc:
                    if fatal is None:
                        fatal = exc
                    continue
                self._record(outcome)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise
        if fatal is not None:
            raise fatal

    async def _embed_one(
        self, page: PageRecord, limiter: asyncio.Semaphore
    ) -> _PageOutcome:
        try:
            chunks = await self._embedder.embed_page(page, limiter=limiter)
        except (ServiceUnavailable, InvalidResponse) as exc:
            return _PageOutcome(page_id=page.id, error=str(exc) or type(exc).__name__)
        return _PageOutcome(page_id=page.id, chunks=chunks)

    # -- progress bookkeeping (coordinator only) -----------------------------

    def _record(self, outcome: _PageOutcome) -> None:
        self._settled.add(outcome.page_id)
        self._progress.processed += 1
        if outcome.error is not None:
            self._progress.failed += 1
            self._errors.append(BatchError(page_id=outcome.page_id, error=outcome.error))
            logger.warning(
                "Embedding failed for page {}: {}", outcome.page_id, outcome.error
            )
        self._update_eta()

    def _update_eta(self) -> None:
        processed = self._progress.processed
        if not processed:
            self._progress.estimated_time_remaining = None
            return
        remaining = max(
            self._progress.total - self._progress.cached - processed, 0
        )
        per_page = self._elapsed() / processed
        self._progress.estimated_time_remaining = round(per_page * remaining)

    def _elapsed(self) -> float:
        if self._segment_started is None:
            return self._active_seconds
        return self._active_seconds + (time.monotonic() - self._segment_started)

    def _close_segment(self) -> None:
        self._active_seconds = self._elapsed()
        self._segment_started = None

    def _pause(self) -> None:
        self._close_segment()
        self._cancel_requested = False
        self._progress.stop_requested = False
        self._progress.status = "paused"
        logger.info(
            "Batch embeddings paused after {} of {} pages",
            self._progress.processed,
            self._progress.total - self._progress.cached,
        )

    def _complete(self) -> None:
        self._close_segment()
        self._cancel_requested = False
        self._progress.stop_requested = False
        self._progress.status = "completed"
        self._progress.completed_at = _now()
        self._progress.estimated_time_remaining = 0
        logger.info(
            "Batch embeddings completed: {} processed, {} cached, {} failed",
            self._progress.processed,
            self._progress.cached,
            self._progress.failed,
        )

    def _fail(self, exc: BaseException) -> None:
        self._close_segment()
        self._cancel_requested = False
        self._progress.stop_requested = False
        self._progress.status = "error"
        self._progress.completed_at = _now()
        self._progress.last_error = str(exc) or type(exc).__name__
        logger.opt(exception=exc).error("Batch embeddings failed: {}", exc)

    def _reset(self) -> None:
        self._progress = BatchProgress()
        self._errors = deque(maxlen=self.error_cap)
        self._work_ids = []
        self._settled = set()
        self._cancel_requested = False
        self._active_seconds = 0.0
        self._segment_started = None
