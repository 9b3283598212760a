"""Pagination - Fetches and merges the remaining pages of a listing call."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


FetchPage = Callable[[int], Awaitable[dict[str, Any]]]


def page_count(result: dict[str, Any]) -> int:
    """Total pages announced by a normalized result (0 when absent)."""
    pagination = result.get("pagination")
    if not isinstance(pagination, dict):
        return 0
    pages = pagination.get("pages", 0)
    return pages if isinstance(pages, int) else 0


async def paginate(first: dict[str, Any], fetch_page: FetchPage) -> dict[str, Any]:
    """Merge pages 2..N into the first page's result.

    Pages are fetched one at a time in ascending order so ``results`` keeps the
    remote collection's order. ``pagination`` and every other key come from the
    first page. An exception from any page aborts the whole sequence; no
    partial result is returned.

    Args:
        first: Normalized result of page 1.
        fetch_page: Coroutine function returning the normalized result of a page.

    Returns:
        A new result whose ``results`` holds every page's entries.
    """
    pages = page_count(first)
    if pages < 2:
        return first

    merged = dict(first)
    results: list[Any] = list(first.get("results") or [])

    for page in range(2, pages + 1):
        logger.debug("Fetching page %d of %d", page, pages)
        result = await fetch_page(page)
        results.extend(result.get("results") or [])

    merged["results"] = results
    return merged
