"""
Markdown folder import into the page store.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, replace
from pathlib import Path

from loguru import logger

from ..storage import DuckDBStorage, PageRecord

_HEADING = re.compile(r"^#\s+(.+?)\s*#*\s*$", re.MULTILINE)
_SLUG_UNSAFE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class ImportResult:
    """Summary output for a markdown import."""

    imported_pages: int
    updated_pages: int
    archived_pages: int


def slugify(relative_path: str) -> str:
    stem = str(Path(relative_path).with_suffix(""))
    return _SLUG_UNSAFE.sub("-", stem.lower()).strip("-") or "page"


def extract_title(content: str, fallback: str) -> str:
    match = _HEADING.search(content)
    if match:
        return match.group(1).strip()
    return fallback


def import_markdown_folder(
    storage: DuckDBStorage,
    folder: str,
    *,
    archive_missing: bool = True,
) -> ImportResult:
    """Create or update one page per ``*.md`` file under *folder*.

    A page keeps its id across re-imports as long as its slug is unchanged.
    Pages whose file disappeared are archived and lose their embeddings.
    """
    root = str(Path(folder).resolve())
    if not os.path.isdir(root):
        raise ValueError(f"No such directory: {root}")

    imported = 0
    updated = 0
    seen_slugs: set[str] = set()
    for order, file_path in enumerate(_iter_markdown_files(root)):
        relative_path = os.path.relpath(file_path, root)
        content = Path(file_path).read_text(encoding="utf-8", errors="replace")
        slug = slugify(relative_path)
        seen_slugs.add(slug)

        existing = storage.get_page_by_slug(slug)
        page = PageRecord(
            id=existing.id if existing is not None else storage.next_page_id(),
            title=extract_title(content, Path(file_path).stem),
            slug=slug,
            content=content,
            is_archived=False,
            sort_order=order,
        )
        storage.upsert_page(page)
        if existing is None:
            imported += 1
            continue
        updated += 1
        # Stale vectors would be cache-skipped by the next batch run.
        if existing.embeddable_text != page.embeddable_text:
            storage.delete_page_embeddings(page.id)

    archived = 0
    if archive_missing:
        for page in storage.list_pages():
            if page.slug in seen_slugs:
                continue
            storage.upsert_page(replace(page, is_archived=True))
            storage.delete_page_embeddings(page.id)
            archived += 1

    logger.info(
        "Imported {} new, {} updated, {} archived pages from {}",
        imported,
        updated,
        archived,
        root,
    )
    return ImportResult(
        imported_pages=imported,
        updated_pages=updated,
        archived_pages=archived,
    )


def _iter_markdown_files(root: str) -> list[str]:
    files: list[str] = []
    for current_root, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if not d.startswith(".")]
        for filename in filenames:
            if Path(filename).suffix.lower() == ".md":
                files.append(str(Path(current_root) / filename))
    files.sort()
    return files
