"""Test the lazy pagination iterators."""

from __future__ import annotations

import pytest

from agency_sync.sync.pagination import Page, paginate_after, paginate_cursor, paginate_pages


def items(*ids):
    return [{"id": i} for i in ids]


class PagedSource:
    """Serves pre-built pages keyed by the token that requests them."""

    def __init__(self, pages: dict):
        self.pages = pages
        self.requested: list = []

    async def __call__(self, token):
        self.requested.append(token)
        return self.pages[token]


async def collect(iterator):
    return [batch async for batch in iterator]


@pytest.mark.asyncio
async def test_after_follows_tokens_until_short_page():
    source = PagedSource({
        None: Page(items(1, 2), "a"),
        "a": Page(items(3, 4), "b"),
        "b": Page(items(5), "c"),
    })
    batches = await collect(paginate_after(source, page_size=2))

    assert batches == [items(1, 2), items(3, 4), items(5)]
    assert source.requested == [None, "a", "b"]


@pytest.mark.asyncio
async def test_after_stops_without_next_token():
    source = PagedSource({None: Page(items(1, 2), None)})
    assert await collect(paginate_after(source, page_size=2)) == [items(1, 2)]


@pytest.mark.asyncio
async def test_after_empty_first_page_yields_nothing():
    source = PagedSource({None: Page([], "a")})
    assert await collect(paginate_after(source, page_size=2)) == []
    assert source.requested == [None]


@pytest.mark.asyncio
async def test_after_repeated_token_stops():
    source = PagedSource({
        None: Page(items(1, 2), "a"),
        "a": Page(items(3, 4), "a"),
    })
    batches = await collect(paginate_after(source, page_size=2))

    assert batches == [items(1, 2), items(3, 4)]
    assert source.requested == [None, "a"]


@pytest.mark.asyncio
async def test_after_respects_max_pages():
    source = PagedSource({
        None: Page(items(1), "a"),
        "a": Page(items(2), "b"),
        "b": Page(items(3), "c"),
    })
    batches = await collect(paginate_after(source, page_size=1, max_pages=2))
    assert batches == [items(1), items(2)]


@pytest.mark.asyncio
async def test_ragged_pages_follow_token_when_page_size_unknown():
    source = PagedSource({
        None: Page(items(1), "a"),
        "a": Page(items(2, 3, 4), "b"),
        "b": Page(items(5), None),
    })
    batches = await collect(paginate_after(source, page_size=None))
    assert [len(b) for b in batches] == [1, 3, 1]


@pytest.mark.asyncio
async def test_errors_propagate():
    async def failing(token):
        if token is None:
            return Page(items(1, 2), "a")
        raise RuntimeError("boom")

    batches = []
    with pytest.raises(RuntimeError, match="boom"):
        async for batch in paginate_after(failing, page_size=2):
            batches.append(batch)
    assert batches == [items(1, 2)]


@pytest.mark.asyncio
async def test_cursor_first_request_differs():
    calls = []

    async def first():
        calls.append("first")
        return Page(items(1, 2), "c1")

    async def following(cursor):
        calls.append(cursor)
        return Page(items(3), "c2")

    batches = await collect(paginate_cursor(first, following, page_size=2))

    assert batches == [items(1, 2), items(3)]
    assert calls == ["first", "c1"]


@pytest.mark.asyncio
async def test_cursor_is_lazy():
    calls = []

    async def first():
        calls.append("first")
        return Page(items(1, 2), "c1")

    async def following(cursor):
        calls.append(cursor)
        return Page(items(3, 4), "c2")

    iterator = paginate_cursor(first, following, page_size=2)
    batch = await iterator.__anext__()
    await iterator.aclose()

    assert batch == items(1, 2)
    assert calls == ["first"]


@pytest.mark.asyncio
async def test_page_numbers_start_at_one_and_end_on_short_page():
    requested = []

    async def fetch(page):
        requested.append(page)
        return items(*range(page * 10, page * 10 + (2 if page < 3 else 1)))

    batches = await collect(paginate_pages(fetch, page_size=2))

    assert requested == [1, 2, 3]
    assert [len(b) for b in batches] == [2, 2, 1]


@pytest.mark.asyncio
async def test_page_numbers_empty_page_ends():
    async def fetch(page):
        return items(1, 2) if page == 1 else []

    assert await collect(paginate_pages(fetch, page_size=2)) == [items(1, 2)]
