"""Tests for the search service."""

from dataclasses import replace

import pytest

from wiki_search.errors import ServiceUnavailable
from wiki_search.search import SearchService
from wiki_search.storage import PageRecord

from .conftest import Wiki


def _seed(wiki: Wiki) -> list[PageRecord]:
    pages = [
        PageRecord(1, "Onboarding guide", "onboarding", "Welcome aboard. Read the wiki first."),
        PageRecord(2, "Expense policy", "expenses", "Submit receipts within thirty days."),
        PageRecord(3, "Wiki style guide", "style", "Use sentence case for headings."),
        PageRecord(4, "Office hours", "office-hours", "The office opens at nine."),
        PageRecord(5, "Holiday calendar", "holidays", "Public holidays are listed here."),
    ]
    for page in pages:
        wiki.storage.upsert_page(page)
    return pages


async def _embed_all(wiki: Wiki, pages: list[PageRecord]) -> None:
    for page in pages:
        await wiki.embedder.embed_page(page)


@pytest.mark.asyncio
async def test_substring_fallback_without_embeddings(wiki: Wiki) -> None:
    _seed(wiki)

    hits = await wiki.search.search("WIKI")

    assert sorted(hit.page_id for hit in hits) == [1, 3]
    assert all(hit.score == 1.0 for hit in hits)
    assert wiki.client.query_calls == []


@pytest.mark.asyncio
async def test_substring_fallback_is_capped(wiki: Wiki) -> None:
    for page_id in range(1, 16):
        wiki.storage.upsert_page(
            PageRecord(page_id, f"Note {page_id}", f"note-{page_id}", "shared text")
        )

    hits = await wiki.search.search("shared")

    assert len(hits) == 10


@pytest.mark.asyncio
async def test_substring_fallback_works_without_client(wiki: Wiki) -> None:
    _seed(wiki)
    service = SearchService(client=None, store=wiki.storage, pages=wiki.storage)

    hits = await service.search("holidays")

    assert [hit.page_id for hit in hits] == [5]


@pytest.mark.asyncio
async def test_blank_query_returns_nothing(wiki: Wiki) -> None:
    _seed(wiki)

    assert await wiki.search.search("   ") == []
    assert wiki.client.query_calls == []


@pytest.mark.asyncio
async def test_semantic_search_ranks_exact_match_first(wiki: Wiki) -> None:
    pages = _seed(wiki)
    await _embed_all(wiki, pages)

    hits = await wiki.search.search(pages[0].embeddable_text, limit=3)

    assert len(hits) == 3
    assert hits[0].page_id == 1
    assert hits[0].page_title == "Onboarding guide"
    assert hits[0].page_slug == "onboarding"
    assert hits[0].score == pytest.approx(1.0)
    assert [hit.score for hit in hits] == sorted((hit.score for hit in hits), reverse=True)
    assert len({hit.page_id for hit in hits}) == 3
    assert wiki.client.query_calls == [pages[0].embeddable_text]


@pytest.mark.asyncio
async def test_results_use_live_page_metadata(wiki: Wiki) -> None:
    pages = _seed(wiki)
    await _embed_all(wiki, pages)
    wiki.storage.upsert_page(replace(pages[0], title="New hire handbook"))

    hits = await wiki.search.search(pages[0].embeddable_text)

    assert hits[0].page_id == 1
    assert hits[0].page_title == "New hire handbook"


@pytest.mark.asyncio
async def test_archived_pages_are_dropped(wiki: Wiki) -> None:
    pages = _seed(wiki)
    await _embed_all(wiki, pages)
    wiki.storage.upsert_page(replace(pages[0], is_archived=True))

    hits = await wiki.search.search(pages[0].embeddable_text)

    assert 1 not in {hit.page_id for hit in hits}
    assert len(hits) == 4


@pytest.mark.asyncio
async def test_query_embedding_failure_propagates(wiki: Wiki) -> None:
    pages = _seed(wiki)
    await _embed_all(wiki, pages)
    wiki.client.query_error = ServiceUnavailable("embedding backend down")

    with pytest.raises(ServiceUnavailable):
        await wiki.search.search("onboarding")


@pytest.mark.asyncio
async def test_semantic_search_without_client_is_unavailable(wiki: Wiki) -> None:
    pages = _seed(wiki)
    await _embed_all(wiki, pages)
    service = SearchService(client=None, store=wiki.storage, pages=wiki.storage)

    with pytest.raises(ServiceUnavailable):
        await service.search("onboarding")


class _PagesWithout:
    """Page store view in which one page has been deleted."""

    def __init__(self, storage, missing_id: int) -> None:
        self.storage = storage
        self.missing_id = missing_id

    def list_pages(self, **kwargs):
        return [p for p in self.storage.list_pages(**kwargs) if p.id != self.missing_id]

    def get_page(self, page_id: int):
        if page_id == self.missing_id:
            return None
        return self.storage.get_page(page_id)


@pytest.mark.asyncio
async def test_archived_best_match_does_not_use_up_the_limit(wiki: Wiki) -> None:
    pages = _seed(wiki)
    await _embed_all(wiki, pages)
    wiki.storage.upsert_page(replace(pages[0], is_archived=True))

    hits = await wiki.search.search(pages[0].embeddable_text, limit=1)

    assert len(hits) == 1
    assert hits[0].page_id != 1


@pytest.mark.asyncio
async def test_missing_page_is_backfilled_from_ranking(wiki: Wiki) -> None:
    pages = _seed(wiki)
    await _embed_all(wiki, pages)
    service = SearchService(
        client=wiki.client, store=wiki.storage, pages=_PagesWithout(wiki.storage, 1)
    )

    hits = await service.search(pages[0].embeddable_text, limit=2)

    assert len(hits) == 2
    assert 1 not in {hit.page_id for hit in hits}


@pytest.mark.asyncio
async def test_archived_chunks_do_not_block_substring_fallback(wiki: Wiki) -> None:
    old = PageRecord(1, "Old wiki home", "old-home", "Legacy wiki notes.")
    wiki.storage.upsert_page(old)
    await wiki.embedder.embed_page(old)
    wiki.storage.upsert_page(replace(old, is_archived=True))
    wiki.storage.upsert_page(PageRecord(2, "Editing guide", "editing", "How to edit the wiki."))

    hits = await wiki.search.search("wiki")

    assert [hit.page_id for hit in hits] == [2]
    assert wiki.client.query_calls == []
