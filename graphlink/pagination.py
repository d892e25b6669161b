"""
Cursor-link pagination follower.

Graph list responses link to their next page with `@odata.nextLink`. The
follower never computes offsets itself: after the first request, every page
is fetched from the cursor the previous page returned.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

from .models.pagination import Page, PageParams, is_list_response

if TYPE_CHECKING:
    from .clients.http import AsyncHTTPClient

logger = logging.getLogger(__name__)


class PaginationFollower:
    def __init__(self, client: AsyncHTTPClient):
        self._client = client

    async def fetch_page(
        self,
        url: str,
        params: PageParams | None = None,
    ) -> Page[Any]:
        """Fetch a single page. A non-list response is an empty, final page."""
        query = params.to_query() if params is not None else None
        data = await self._client.get(url, params=query or None)
        return self._to_page(url, data)

    async def _fetch_cursor(self, cursor: str) -> Page[Any]:
        data = await self._client.get_url(cursor)
        return self._to_page(cursor, data)

    @staticmethod
    def _to_page(url: str, data: Any) -> Page[Any]:
        if not is_list_response(data):
            logger.warning("non_list_response", extra={"endpoint": url})
            return Page[Any]()
        page = Page[Any].from_odata(data)
        logger.debug(
            "page_fetched",
            extra={
                "endpoint": url,
                "item_count": len(page.items),
                "total_count": page.total_count,
                "has_more": page.has_more,
            },
        )
        return page

    async def pages(
        self,
        url: str,
        params: PageParams | None = None,
    ) -> AsyncIterator[Page[Any]]:
        """
        Iterate pages (not items), following cursors until the last page.

        Useful when a caller wants to checkpoint on `page.next_cursor`.
        """
        page = await self.fetch_page(url, params)
        requested: str | None = None
        while True:
            yield page
            next_cursor = page.next_cursor
            if next_cursor is None or next_cursor == requested:
                return
            requested = next_cursor
            page = await self._fetch_cursor(next_cursor)

    async def paginate(
        self,
        url: str,
        max_items: int | None = None,
    ) -> AsyncIterator[list[Any]]:
        """
        Yield item batches, one per page, capped at `max_items` in total.

        The batch that reaches the cap is truncated and no further page is
        requested. Forward-only; iterate again to start over.
        """
        if max_items is not None and max_items <= 0:
            return
        yielded = 0
        requested: str | None = None
        page = await self.fetch_page(url)
        while True:
            items = list(page.items)
            if max_items is not None:
                items = items[: max_items - yielded]
            if items:
                yield items
            yielded += len(items)

            if max_items is not None and yielded >= max_items:
                logger.debug(
                    "max_items_reached", extra={"yielded": yielded, "max_items": max_items}
                )
                return
            next_cursor = page.next_cursor
            if next_cursor is None or next_cursor == requested:
                return
            requested = next_cursor
            page = await self._fetch_cursor(next_cursor)

    async def iter_items(self, url: str, max_items: int | None = None) -> AsyncIterator[Any]:
        """Flattened view of `paginate()`."""
        async for batch in self.paginate(url, max_items):
            for item in batch:
                yield item
