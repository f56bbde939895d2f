"""Tests for importing markdown folders as wiki pages."""

from pathlib import Path

import pytest

from wiki_search.indexing import import_markdown_folder
from wiki_search.indexing.importer import extract_title, slugify
from wiki_search.storage import DuckDBStorage


def _write(root: Path, relative: str, content: str) -> None:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_slugify_and_title() -> None:
    assert slugify("Team Docs/On-Call Guide.md") == "team-docs-on-call-guide"
    assert slugify("___.md") == "page"
    assert extract_title("intro\n# Release Process ##\nbody", "fallback") == "Release Process"
    assert extract_title("no heading here", "fallback") == "fallback"


def test_import_creates_pages(storage: DuckDBStorage, tmp_path: Path) -> None:
    docs = tmp_path / "docs"
    _write(docs, "alpha.md", "# Alpha\n\nFirst page.")
    _write(docs, "team/beta.md", "Beta body without heading.")
    _write(docs, ".drafts/hidden.md", "# Hidden")
    _write(docs, "notes.txt", "not markdown")

    result = import_markdown_folder(storage, str(docs))

    assert result.imported_pages == 2
    assert result.updated_pages == 0
    pages = storage.list_pages()
    assert [(p.title, p.slug) for p in pages] == [("Alpha", "alpha"), ("beta", "team-beta")]


def test_reimport_keeps_ids_and_archives_missing(
    storage: DuckDBStorage, tmp_path: Path
) -> None:
    docs = tmp_path / "docs"
    _write(docs, "alpha.md", "# Alpha\n\nFirst page.")
    _write(docs, "beta.md", "# Beta\n\nSecond page.")
    _write(docs, "gamma.md", "# Gamma\n\nThird page.")
    import_markdown_folder(storage, str(docs))
    alpha = storage.get_page_by_slug("alpha")
    for page in storage.list_pages():
        storage.replace_page_embeddings(page.id, [("cached", [1.0])])

    _write(docs, "alpha.md", "# Alpha\n\nFirst page, revised.")
    (docs / "gamma.md").unlink()
    result = import_markdown_folder(storage, str(docs))

    assert result.imported_pages == 0
    assert result.updated_pages == 2
    assert result.archived_pages == 1
    assert storage.get_page_by_slug("alpha").id == alpha.id
    gamma = storage.get_page_by_slug("gamma")
    assert gamma.is_archived
    # Revised and archived pages lose their vectors; unchanged pages keep them.
    assert storage.pages_with_embeddings() == {storage.get_page_by_slug("beta").id}


def test_keep_missing_pages(storage: DuckDBStorage, tmp_path: Path) -> None:
    docs = tmp_path / "docs"
    _write(docs, "alpha.md", "# Alpha")
    _write(docs, "beta.md", "# Beta")
    import_markdown_folder(storage, str(docs))
    (docs / "beta.md").unlink()

    result = import_markdown_folder(storage, str(docs), archive_missing=False)

    assert result.archived_pages == 0
    assert len(storage.list_pages()) == 2


def test_missing_folder_raises(storage: DuckDBStorage, tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="No such directory"):
        import_markdown_folder(storage, str(tmp_path / "nope"))
