"""
JSON batch executor.

Bundles independent sub-requests into one `POST /$batch` and hands back one
sub-response per correlation id. A failing sub-request is reported through
its own status, never raised: only failure of the physical batch call itself
raises.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import pydantic

from .cache import ResponseCache
from .middleware.caching import invalidate_for_write
from .models.batch import (
    BatchFailure,
    BatchRequestItem,
    BatchResponseEnvelope,
    BatchResponseItem,
    BatchSummary,
)
from .policies import InvalidationPolicy

if TYPE_CHECKING:
    from .clients.http import AsyncHTTPClient

logger = logging.getLogger(__name__)

BATCH_PATH = "/$batch"
# Upper bound imposed by the Graph JSON batching protocol.
MAX_BATCH_SIZE = 20
MISSING_RESPONSE_STATUS = 424

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class BatchResult:
    """Sub-responses keyed by correlation id, in request order."""

    responses: Mapping[str, BatchResponseItem]

    def __getitem__(self, request_id: str) -> BatchResponseItem:
        return self.responses[request_id]

    def __iter__(self) -> Iterator[BatchResponseItem]:
        return iter(self.responses.values())

    def __len__(self) -> int:
        return len(self.responses)

    @property
    def succeeded(self) -> list[BatchResponseItem]:
        return [r for r in self.responses.values() if r.ok]

    @property
    def failed(self) -> list[BatchResponseItem]:
        return [r for r in self.responses.values() if not r.ok]

    def summarize(self) -> BatchSummary:
        failures = [
            BatchFailure(id=r.id, status=r.status, error=r.error_message) for r in self.failed
        ]
        return BatchSummary(
            success_count=len(self.responses) - len(failures),
            failure_count=len(failures),
            failures=failures,
        )


def format_batch_summary(summary: BatchSummary, success_verb: str, failed_verb: str) -> str:
    """`✓ 4 moved, ✗ 1 failed: 3 (404 Not found)`."""
    parts = [f"✓ {summary.success_count} {success_verb}"]
    if summary.failure_count:
        details = ", ".join(
            f"{f.id} ({f.status}{' ' + f.error if f.error else ''})" for f in summary.failures
        )
        parts.append(f"✗ {summary.failure_count} {failed_verb}: {details}")
    else:
        parts.append(f"✗ 0 {failed_verb}")
    return ", ".join(parts)


def _coerce(request: BatchRequestItem | Mapping[str, Any]) -> BatchRequestItem:
    if isinstance(request, BatchRequestItem):
        return request
    return BatchRequestItem.model_validate(request)


def _missing_response(request_id: str) -> BatchResponseItem:
    return BatchResponseItem(
        id=request_id,
        status=MISSING_RESPONSE_STATUS,
        body={"error": {"code": "MissingResponse", "message": "No response for this request"}},
    )


class BatchExecutor:
    def __init__(
        self,
        client: AsyncHTTPClient,
        *,
        cache: ResponseCache | None = None,
        policy: InvalidationPolicy = InvalidationPolicy.DETAIL_ONLY,
    ):
        self._client = client
        self._cache = cache
        self._policy = policy

    async def execute(
        self, requests: Sequence[BatchRequestItem | Mapping[str, Any]]
    ) -> BatchResult:
        """
        Send `requests` as one physical call and demultiplex by correlation id.

        Every request id receives exactly one sub-response. Ids the server
        never answered, or answered with a malformed sub-response, get a
        synthesized 424; ids it answered that were never asked for are dropped.
        The size limit is the caller's to enforce (see `execute_all` for
        chunking).
        """
        items = [_coerce(r) for r in requests]
        ids = [item.id for item in items]
        if len(set(ids)) != len(ids):
            raise ValueError("Batch correlation ids must be unique")
        if not items:
            return BatchResult(responses={})

        data = await self._client.post(
            BATCH_PATH, json={"requests": [item.to_wire() for item in items]}
        )
        envelope = BatchResponseEnvelope.model_validate(data or {})

        by_id: dict[str, BatchResponseItem] = {}
        for raw in envelope.responses:
            try:
                response = BatchResponseItem.model_validate(raw)
            except pydantic.ValidationError as e:
                batch_id = raw.get("id") if isinstance(raw, dict) else None
                logger.warning(
                    "batch_malformed_response",
                    extra={"batch_id": batch_id, "error": str(e.errors()[0]["msg"])},
                )
                continue
            if response.id not in ids:
                logger.warning("batch_unknown_response_id", extra={"batch_id": response.id})
                continue
            by_id[response.id] = response

        ordered: dict[str, BatchResponseItem] = {}
        for request_id in ids:
            response = by_id.get(request_id)
            if response is None:
                logger.warning("batch_missing_response", extra={"batch_id": request_id})
                response = _missing_response(request_id)
            ordered[request_id] = response

        self._invalidate(items, ordered)
        result = BatchResult(responses=ordered)
        summary = result.summarize()
        logger.info(
            "batch_completed",
            extra={
                "requests": len(items),
                "success": summary.success_count,
                "failed": summary.failure_count,
            },
        )
        return result

    async def execute_all(
        self, requests: Sequence[BatchRequestItem | Mapping[str, Any]]
    ) -> BatchResult:
        """Execute any number of requests in consecutive batches of `MAX_BATCH_SIZE`."""
        items = [_coerce(r) for r in requests]
        ids = [item.id for item in items]
        if len(set(ids)) != len(ids):
            raise ValueError("Batch correlation ids must be unique")
        merged: dict[str, BatchResponseItem] = {}
        for start in range(0, len(items), MAX_BATCH_SIZE):
            chunk = await self.execute(items[start : start + MAX_BATCH_SIZE])
            merged.update(chunk.responses)
        return BatchResult(responses=merged)

    def _invalidate(
        self,
        items: Iterable[BatchRequestItem],
        responses: Mapping[str, BatchResponseItem],
    ) -> None:
        if self._cache is None:
            return
        for item in items:
            if item.method != "GET" and responses[item.id].ok:
                invalidate_for_write(self._cache, item.method, item.url, self._policy)


@dataclass(slots=True)
class SettledResult(Generic[T]):
    results: list[T] = field(default_factory=list)
    errors: list[BaseException] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.errors)


async def gather_settled(
    tasks: Iterable[Awaitable[T]], *, label: str = "batch"
) -> SettledResult[T]:
    """
    Await `tasks` concurrently, collecting results and failures separately.

    The fan-out alternative to `$batch` for work that cannot be expressed as
    sub-requests. Failures are logged and counted, never raised.
    """
    settled = await asyncio.gather(*tasks, return_exceptions=True)
    outcome: SettledResult[T] = SettledResult()
    for item in settled:
        if isinstance(item, BaseException):
            if not isinstance(item, Exception):
                raise item
            logger.warning(
                "batch_item_failed",
                extra={"label": label, "error_name": type(item).__name__},
            )
            outcome.errors.append(item)
        else:
            outcome.results.append(item)
    return outcome
