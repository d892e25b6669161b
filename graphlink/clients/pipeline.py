"""
Internal request pipeline primitives.

Requests and responses are modelled independently of the underlying HTTP
transport so cross-cutting behavior (logging, retry, error mapping, caching)
can be implemented as middleware.
"""

from __future__ import annotations

import json as _json
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeAlias, TypedDict, cast

Header: TypeAlias = tuple[str, str]


class RequestContext(TypedDict, total=False):
    request_id: str
    user_scope: str
    cache_key: str
    attempt: int


class ResponseContext(TypedDict, total=False):
    cache_hit: bool
    request_id: str
    elapsed_seconds: float
    retry_count: int


def _find_header(headers: Sequence[Header], name: str) -> str | None:
    lowered = name.lower()
    for key, value in headers:
        if key.lower() == lowered:
            return value
    return None


@dataclass(slots=True)
class GraphRequest:
    """One in-flight call. Never shared between concurrent calls."""

    method: str
    url: str
    headers: list[Header] = field(default_factory=list)
    params: Mapping[str, Any] | None = None
    json: Any | None = None
    context: RequestContext = field(default_factory=lambda: cast(RequestContext, {}))

    def __post_init__(self) -> None:
        self.method = self.method.upper()

    def header(self, name: str) -> str | None:
        return _find_header(self.headers, name)


@dataclass(slots=True)
class GraphResponse:
    status_code: int
    headers: list[Header] = field(default_factory=list)
    content: bytes = b""
    json: Any | None = None
    context: ResponseContext = field(default_factory=lambda: cast(ResponseContext, {}))

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str) -> str | None:
        return _find_header(self.headers, name)

    def parse_json(self) -> Any | None:
        """Best-effort JSON body; `None` when the body is empty or not JSON."""
        if self.json is not None:
            return self.json
        if not self.content:
            return None
        try:
            return _json.loads(self.content)
        except (ValueError, UnicodeDecodeError):
            return None


Handler: TypeAlias = Callable[[GraphRequest], Awaitable[GraphResponse]]


class Transport(Protocol):
    async def __call__(self, req: GraphRequest) -> GraphResponse: ...


class Middleware(Protocol):
    async def __call__(self, req: GraphRequest, next: Handler) -> GraphResponse: ...


def compose(middlewares: Sequence[Middleware], terminal: Handler) -> Handler:
    handler = terminal
    for middleware in reversed(middlewares):
        next_handler = handler

        async def _wrapped(
            req: GraphRequest,
            *,
            _mw: Middleware = middleware,
            _n: Handler = next_handler,
        ) -> GraphResponse:
            return await _mw(req, _n)

        handler = _wrapped
    return handler


@dataclass(frozen=True, slots=True)
class Pipeline:
    """
    Immutable middleware chain over a terminal transport.

    The chain is composed once at construction; calling the pipeline only
    threads the request object through it, so one instance can serve any
    number of concurrent calls.
    """

    middlewares: tuple[Middleware, ...]
    terminal: Transport
    _handler: Handler = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_handler", compose(self.middlewares, self.terminal))

    async def __call__(self, req: GraphRequest) -> GraphResponse:
        return await self._handler(req)
