"""
DuckDB storage backend for pages and embedding chunks.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import duckdb

from ..errors import StoreUnavailable
from .base import CandidateChunk, EmbeddingChunk, PageRecord


class DuckDBStorage:
    """DuckDB-backed persistence for wiki pages and their embedding chunks.

    A single connection is shared by every caller; the instance lock
    serializes access so that a page's delete+insert is never observed
    half-done by a concurrent reader.
    """

    def __init__(
        self,
        db_path: str,
        *,
        read_only: bool = False,
        initialize: bool = True,
    ) -> None:
        self.db_path = str(Path(db_path).expanduser().resolve())
        self.read_only = read_only
        self._lock = threading.RLock()
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = duckdb.connect(self.db_path, read_only=read_only)
        except duckdb.Error as exc:
            raise StoreUnavailable(f"Cannot open database {self.db_path}: {exc}") from exc
        if initialize and not read_only:
            self.initialize()

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        with self._lock:
            self._conn.close()

    @contextmanager
    def _guard(self) -> Iterator[duckdb.DuckDBPyConnection]:
        with self._lock:
            try:
                yield self._conn
            except duckdb.Error as exc:
                raise StoreUnavailable(str(exc)) from exc

    def initialize(self) -> None:
        with self._guard() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS pages (
                    id INTEGER PRIMARY KEY,
                    title VARCHAR NOT NULL,
                    slug VARCHAR NOT NULL,
                    content VARCHAR NOT NULL DEFAULT '',
                    is_archived BOOLEAN NOT NULL DEFAULT FALSE,
                    sort_order INTEGER NOT NULL DEFAULT 0,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS page_embeddings (
                    page_id INTEGER NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    chunk_text VARCHAR NOT NULL,
                    embedding DOUBLE[] NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (page_id, chunk_index)
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS embedding_cache (
                    text_hash VARCHAR NOT NULL,
                    model VARCHAR NOT NULL,
                    dim INTEGER NOT NULL,
                    embedding DOUBLE[] NOT NULL,
                    cached_at DOUBLE NOT NULL,
                    PRIMARY KEY (text_hash, model, dim)
                );
                """
            )

    # -- pages ---------------------------------------------------------------

    def upsert_page(self, page: PageRecord) -> None:
        with self._guard() as conn:
            conn.execute(
                """
                INSERT INTO pages (id, title, slug, content, is_archived, sort_order)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    slug = excluded.slug,
                    content = excluded.content,
                    is_archived = excluded.is_archived,
                    sort_order = excluded.sort_order,
                    updated_at = now()
                """,
                [
                    page.id,
                    page.title,
                    page.slug,
                    page.content,
                    page.is_archived,
                    page.sort_order,
                ],
            )

    def list_pages(
        self,
        *,
        include_archived: bool = False,
        page_ids: list[int] | None = None,
    ) -> list[PageRecord]:
        sql = """
            SELECT id, title, slug, content, is_archived, sort_order
            FROM pages
            WHERE 1 = 1
        """
        params: list[Any] = []
        if not include_archived:
            sql += " AND is_archived = FALSE"
        if page_ids is not None:
            if not page_ids:
                return []
            placeholders = ", ".join(["?"] * len(page_ids))
            sql += f" AND id IN ({placeholders})"
            params.extend(int(page_id) for page_id in page_ids)
        sql += " ORDER BY sort_order ASC, title ASC, id ASC"

        with self._guard() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_page(row) for row in rows]

    def get_page(self, page_id: int) -> PageRecord | None:
        with self._guard() as conn:
            row = conn.execute(
                """
                SELECT id, title, slug, content, is_archived, sort_order
                FROM pages
                WHERE id = ?
                LIMIT 1
                """,
                [page_id],
            ).fetchone()
        if row is None:
            return None
        return self._row_to_page(row)

    def get_page_by_slug(self, slug: str) -> PageRecord | None:
        with self._guard() as conn:
            row = conn.execute(
                """
                SELECT id, title, slug, content, is_archived, sort_order
                FROM pages
                WHERE slug = ?
                ORDER BY id ASC
                LIMIT 1
                """,
                [slug],
            ).fetchone()
        if row is None:
            return None
        return self._row_to_page(row)

    def next_page_id(self) -> int:
        with self._guard() as conn:
            row = conn.execute("SELECT coalesce(max(id), 0) + 1 FROM pages").fetchone()
        return int(row[0]) if row else 1

    # -- embeddings ----------------------------------------------------------

    def replace_page_embeddings(
        self, page_id: int, chunks: list[tuple[str, list[float]]]
    ) -> int:
        with self._guard() as conn:
            conn.begin()
            try:
                conn.execute("DELETE FROM page_embeddings WHERE page_id = ?", [page_id])
                if chunks:
                    conn.executemany(
                        """
                        INSERT INTO page_embeddings (page_id, chunk_index, chunk_text, embedding)
                        VALUES (?, ?, ?, ?)
                        """,
                        [
                            (page_id, index, text, [float(v) for v in vector])
                            for index, (text, vector) in enumerate(chunks)
                        ],
                    )
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
        return len(chunks)

    def delete_page_embeddings(self, page_id: int) -> int:
        with self._guard() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM page_embeddings WHERE page_id = ?",
                [page_id],
            ).fetchone()
            conn.execute("DELETE FROM page_embeddings WHERE page_id = ?", [page_id])
        return int(row[0]) if row else 0

    def has_embeddings(self, page_id: int) -> bool:
        with self._guard() as conn:
            row = conn.execute(
                "SELECT 1 FROM page_embeddings WHERE page_id = ? LIMIT 1",
                [page_id],
            ).fetchone()
        return row is not None

    def pages_with_embeddings(self) -> set[int]:
        with self._guard() as conn:
            rows = conn.execute(
                "SELECT DISTINCT page_id FROM page_embeddings"
            ).fetchall()
        return {int(row[0]) for row in rows}

    def get_page_chunks(self, page_id: int) -> list[EmbeddingChunk]:
        with self._guard() as conn:
            rows = conn.execute(
                """
                SELECT page_id, chunk_index, chunk_text, embedding
                FROM page_embeddings
                WHERE page_id = ?
                ORDER BY chunk_index ASC
                """,
                [page_id],
            ).fetchall()
        return [
            EmbeddingChunk(
                page_id=int(row[0]),
                chunk_index=int(row[1]),
                text=str(row[2]),
                vector=[float(v) for v in row[3]],
            )
            for row in rows
        ]

    def count_chunks(self) -> int:
        with self._guard() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*)
                FROM page_embeddings e
                JOIN pages p ON p.id = e.page_id
                WHERE p.is_archived = FALSE
                """
            ).fetchone()
        return int(row[0]) if row else 0

    def all_chunks(self) -> list[CandidateChunk]:
        with self._guard() as conn:
            rows = conn.execute(
                """
                SELECT e.page_id, e.chunk_index, e.chunk_text, e.embedding, p.title, p.slug
                FROM page_embeddings e
                JOIN pages p ON p.id = e.page_id
                WHERE p.is_archived = FALSE
                ORDER BY e.page_id ASC, e.chunk_index ASC
                """
            ).fetchall()
        return [
            CandidateChunk(
                page_id=int(row[0]),
                chunk_index=int(row[1]),
                text=str(row[2]),
                vector=[float(v) for v in row[3]],
                page_title=str(row[4]),
                page_slug=str(row[5]),
            )
            for row in rows
        ]

    # -- embedding cache -----------------------------------------------------

    def get_cached_embedding(
        self, text_hash: str, model: str, dim: int, *, max_age: float
    ) -> list[float] | None:
        """Return a cached vector stored less than *max_age* seconds ago."""
        with self._guard() as conn:
            row = conn.execute(
                """
                SELECT embedding
                FROM embedding_cache
                WHERE text_hash = ? AND model = ? AND dim = ? AND cached_at >= ?
                """,
                [text_hash, model, dim, time.time() - max_age],
            ).fetchone()
        if row is None:
            return None
        return [float(v) for v in row[0]]

    def cache_embedding(
        self, text_hash: str, model: str, dim: int, vector: list[float]
    ) -> None:
        with self._guard() as conn:
            conn.execute(
                """
                INSERT INTO embedding_cache (text_hash, model, dim, embedding, cached_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (text_hash, model, dim) DO UPDATE SET
                    embedding = excluded.embedding,
                    cached_at = excluded.cached_at
                """,
                [text_hash, model, dim, [float(v) for v in vector], time.time()],
            )

    @staticmethod
    def _row_to_page(row: tuple[Any, ...]) -> PageRecord:
        return PageRecord(
            id=int(row[0]),
            title=str(row[1]),
            slug=str(row[2]),
            content=str(row[3] or ""),
            is_archived=bool(row[4]),
            sort_order=int(row[5]),
        )
