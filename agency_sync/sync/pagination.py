"""Lazy batch iterators over paginated provider APIs.

Each iterator yields one list of raw records per page and stops on a short
page, an empty page, a missing next token/cursor, a repeated token, or
``max_pages``. Transport errors propagate; pages are never skipped.
APIs that return ragged pages (Slack, Google) pass ``page_size=None`` so
only the token decides when to stop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable

log = logging.getLogger(__name__)


@dataclass
class Page:
    items: list[dict[str, Any]] = field(default_factory=list)
    next_token: str | None = None


def _is_last(page: Page, page_size: int | None) -> bool:
    if not page.items or not page.next_token:
        return True
    return page_size is not None and len(page.items) < page_size


async def paginate_after(
    fetch_page: Callable[[str | None], Awaitable[Page]],
    page_size: int | None = 100,
    max_pages: int = 1000,
) -> AsyncIterator[list[dict[str, Any]]]:
    """Offset / after-token pagination; ``fetch_page(after)`` returns a Page."""
    token: str | None = None
    seen: set[str] = set()

    for _ in range(max_pages):
        page = await fetch_page(token)
        if page.items:
            yield page.items
        if _is_last(page, page_size):
            return
        if page.next_token in seen:
            log.warning("Pagination token repeated (%s), stopping", page.next_token)
            return
        seen.add(page.next_token)
        token = page.next_token


async def paginate_cursor(
    fetch_first: Callable[[], Awaitable[Page]],
    fetch_next: Callable[[str], Awaitable[Page]],
    page_size: int | None = 100,
    max_pages: int = 1000,
) -> AsyncIterator[list[dict[str, Any]]]:
    """Opaque "next page" cursor pagination (first request differs from the rest)."""
    page = await fetch_first()
    seen: set[str] = set()

    for _ in range(max_pages):
        if page.items:
            yield page.items
        if _is_last(page, page_size):
            return
        cursor = page.next_token
        if cursor in seen:
            log.warning("Pagination cursor repeated, stopping")
            return
        seen.add(cursor)
        page = await fetch_next(cursor)


async def paginate_pages(
    fetch_page: Callable[[int], Awaitable[list[dict[str, Any]]]],
    page_size: int = 100,
    max_pages: int = 1000,
) -> AsyncIterator[list[dict[str, Any]]]:
    """Page-number pagination starting at 1; ends on a short page."""
    for page_number in range(1, max_pages + 1):
        items = await fetch_page(page_number)
        if items:
            yield items
        if len(items) < page_size:
            return
