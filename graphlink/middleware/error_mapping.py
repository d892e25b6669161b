"""
Error-mapping middleware.

Successful responses pass through untouched. Failed responses (status >= 400)
become exactly one typed error from `graphlink.exceptions`. Exceptions raised
below this middleware are wrapped in `NetworkError` when they carry a socket
error code; anything else propagates unchanged.
"""

from __future__ import annotations

import errno
import logging
import re
import socket

import httpx

from ..clients.pipeline import GraphRequest, GraphResponse, Handler
from ..exceptions import (
    AuthError,
    ConflictError,
    CredentialUnavailableError,
    GraphApiError,
    GraphError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServiceError,
    ValidationError,
)
from ..models.errors import GraphErrorBody
from .retry import parse_retry_after_ms

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_MS = 1000

NETWORK_ERRNOS = frozenset(
    code
    for code in (
        getattr(errno, name, None)
        for name in (
            "ECONNREFUSED",
            "ECONNRESET",
            "ENOTFOUND",
            "ETIMEDOUT",
            "EPIPE",
            "EHOSTUNREACH",
            "ENETUNREACH",
        )
    )
    if code is not None
)

_SCOPE_RE = re.compile(r"insufficient.*?scope.*?[:\s]+(\S+)", re.IGNORECASE)
_VERSION_SEGMENT_RE = re.compile(r"^(v\d+(\.\d+)?|beta)$")
_IDENTITY_SEGMENTS = frozenset({"me", "users"})


def _path_segments(url: str) -> list[str]:
    try:
        path = httpx.URL(url).path
    except httpx.InvalidURL:
        return []
    return [segment for segment in path.split("/") if segment]


def guess_resource(url: str) -> tuple[str, str]:
    """
    Resource type and id from a request path.

    `/me/messages/msg-001` -> `("messages", "msg-001")`. Version and identity
    segments are skipped when looking for the collection name.
    """
    segments = _path_segments(url)
    resource_id = "unknown"
    if segments and segments[-1] != "me":
        resource_id = segments[-1]
    resource_type = "resource"
    for segment in reversed(segments[:-1]):
        if _VERSION_SEGMENT_RE.match(segment) or segment in _IDENTITY_SEGMENTS:
            continue
        resource_type = segment
        break
    return resource_type, resource_id


def network_syscall(error: BaseException) -> str | None:
    """
    Socket-level error tag for `error`, or None if it is not a network failure.

    Walks the cause chain so errors wrapped by httpx/httpcore are recognized.
    """
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, socket.gaierror):
            return "ENOTFOUND" if current.errno != socket.EAI_AGAIN else "EAI_AGAIN"
        if isinstance(current, OSError) and current.errno in NETWORK_ERRNOS:
            return errno.errorcode[current.errno]
        current = current.__cause__ or current.__context__

    if isinstance(error, httpx.TimeoutException):
        return "ETIMEDOUT"
    if isinstance(error, httpx.ConnectError):
        return "ECONNREFUSED"
    if isinstance(error, (httpx.ReadError, httpx.WriteError)):
        return "ECONNRESET"
    return None


def map_response_error(req: GraphRequest, response: GraphResponse) -> GraphError:
    """Build the typed error for a failed response."""
    body = GraphErrorBody.parse(response.parse_json())
    status = response.status_code
    message = body.message
    request_id = body.request_id or response.header("request-id")

    if status == 400:
        return ValidationError(message, request_id=request_id, response=response)
    if status == 401:
        return AuthError(message, 401, request_id=request_id, response=response)
    if status == 403:
        match = _SCOPE_RE.search(message)
        return AuthError(
            message,
            403,
            match.group(1) if match else None,
            request_id=request_id,
            response=response,
        )
    if status == 404:
        resource_type, resource_id = guess_resource(req.url)
        return NotFoundError(resource_type, resource_id, request_id=request_id, response=response)
    if status == 409:
        return ConflictError(message, request_id=request_id, response=response)
    if status == 429:
        retry_after = parse_retry_after_ms(response.header("Retry-After"))
        return RateLimitError(
            retry_after if retry_after is not None else DEFAULT_RETRY_AFTER_MS,
            request_id=request_id,
            response=response,
        )
    if status in (500, 502, 503):
        return ServiceError(message, status, request_id=request_id, response=response)
    return GraphApiError(message, status, body.code, request_id=request_id, response=response)


class ErrorMappingMiddleware:
    async def __call__(self, req: GraphRequest, next: Handler) -> GraphResponse:
        try:
            response = await next(req)
        except GraphError:
            raise
        except CredentialUnavailableError as e:
            raise AuthError(str(e) or "Access token unavailable", 401) from e
        except Exception as e:
            syscall = network_syscall(e)
            if syscall is None:
                raise
            raise NetworkError(str(e) or type(e).__name__, syscall) from e

        if response.status_code >= 400:
            error = map_response_error(req, response)
            logger.debug(
                "graph_error_mapped",
                extra={"status": response.status_code, "error_name": type(error).__name__},
            )
            raise error
        return response
