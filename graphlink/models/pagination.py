"""
Pagination models.

Graph list responses carry their items in `value`, an optional total in
`@odata.count`, and a cursor URL in `@odata.nextLink`.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import ConfigDict, Field, computed_field

from .base import GraphModel

T = TypeVar("T")


def is_list_response(payload: Any) -> bool:
    return isinstance(payload, dict) and isinstance(payload.get("value"), list)


class Page(GraphModel, Generic[T]):
    """Immutable snapshot of one fetched page."""

    model_config = ConfigDict(frozen=True)

    items: list[T] = Field(default_factory=list)
    total_count: int | None = None
    next_cursor: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None

    @classmethod
    def from_odata(cls, payload: Any) -> Page[Any]:
        """Build a page from a decoded list response; anything else is an empty last page."""
        if not is_list_response(payload):
            return cls()
        count = payload.get("@odata.count")
        next_link = payload.get("@odata.nextLink")
        return cls(
            items=payload["value"],
            total_count=count if isinstance(count, int) and not isinstance(count, bool) else None,
            next_cursor=next_link if isinstance(next_link, str) and next_link else None,
        )


class PageParams(GraphModel):
    """OData paging/query options for a single page request."""

    top: int | None = Field(None, ge=1)
    skip: int | None = Field(None, ge=0)
    select: str | None = None
    filter: str | None = None
    orderby: str | None = None
    count: bool | None = None

    def to_query(self) -> dict[str, str]:
        query: dict[str, str] = {}
        if self.top is not None:
            query["$top"] = str(self.top)
        if self.skip is not None:
            query["$skip"] = str(self.skip)
        if self.select:
            query["$select"] = self.select
        if self.filter:
            query["$filter"] = self.filter
        if self.orderby:
            query["$orderby"] = self.orderby
        if self.count is not None:
            query["$count"] = "true" if self.count else "false"
        return query
