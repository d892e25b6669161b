from __future__ import annotations

import errno
import json
import socket

import httpx
import pytest

from graphlink.clients.pipeline import GraphRequest, GraphResponse
from graphlink.exceptions import (
    AuthError,
    ConflictError,
    GraphApiError,
    GraphError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServiceError,
    ValidationError,
    format_error_for_user,
    is_retryable,
)
from graphlink.middleware.error_mapping import (
    ErrorMappingMiddleware,
    guess_resource,
    map_response_error,
    network_syscall,
)
from graphlink.models.errors import GraphErrorBody


def _response(status: int, body: object | None = None, **headers: str) -> GraphResponse:
    content = json.dumps(body).encode() if body is not None else b""
    return GraphResponse(
        status_code=status,
        headers=[(k.replace("_", "-"), v) for k, v in headers.items()],
        content=content,
    )


def _error_body(code: str, message: str) -> dict[str, object]:
    return {"error": {"code": code, "message": message}}


@pytest.mark.parametrize(
    ("status", "expected", "retryable"),
    [
        (400, ValidationError, False),
        (401, AuthError, False),
        (403, AuthError, False),
        (404, NotFoundError, False),
        (409, ConflictError, False),
        (429, RateLimitError, True),
        (500, ServiceError, True),
        (502, ServiceError, True),
        (503, ServiceError, True),
        (405, GraphApiError, False),
        (422, GraphApiError, False),
        (504, GraphApiError, False),
    ],
)
def test_status_maps_to_exactly_one_error_kind(
    status: int, expected: type[GraphError], retryable: bool
) -> None:
    req = GraphRequest("GET", "/me/messages/msg-001")
    error = map_response_error(req, _response(status, _error_body("Code", "msg")))
    assert type(error) is expected
    assert error.status_code == status
    assert error.retryable is retryable
    assert is_retryable(error) is retryable


def test_not_found_names_resource_from_path() -> None:
    req = GraphRequest("GET", "/me/messages/msg-001")
    error = map_response_error(req, _response(404, _error_body("ErrorItemNotFound", "gone")))
    assert isinstance(error, NotFoundError)
    assert error.resource_type == "messages"
    assert error.resource_id == "msg-001"
    assert error.message == "Resource not found: messages with ID msg-001"


def test_forbidden_extracts_required_scope() -> None:
    req = GraphRequest("POST", "/me/sendMail")
    body = _error_body(
        "Authorization_RequestDenied",
        "Insufficient privileges to complete the operation. Required scope: Mail.Send",
    )
    error = map_response_error(req, _response(403, body))
    assert isinstance(error, AuthError)
    assert error.required_scope == "Mail.Send"
    assert format_error_for_user(error) == "Missing permission: Mail.Send. Admin consent required."


def test_forbidden_without_scope_hint() -> None:
    error = map_response_error(
        GraphRequest("GET", "/me"), _response(403, _error_body("Forbidden", "Access denied"))
    )
    assert isinstance(error, AuthError)
    assert error.required_scope is None


def test_rate_limit_reads_retry_after_or_defaults() -> None:
    req = GraphRequest("GET", "/me")
    with_header = map_response_error(req, _response(429, None, Retry_After="10"))
    assert isinstance(with_header, RateLimitError)
    assert with_header.retry_after_ms == 10_000
    assert format_error_for_user(with_header) == "Rate limit reached. Retry in 10 seconds."

    without_header = map_response_error(req, _response(429))
    assert isinstance(without_header, RateLimitError)
    assert without_header.retry_after_ms == 1000


def test_catch_all_keeps_raw_code_and_message() -> None:
    error = map_response_error(
        GraphRequest("GET", "/me"), _response(405, _error_body("MethodNotAllowed", "nope"))
    )
    assert isinstance(error, GraphApiError)
    assert error.error_code == "MethodNotAllowed"
    assert error.message == "nope"
    assert str(error) == "[405] nope"


@pytest.mark.parametrize(
    "response",
    [
        GraphResponse(status_code=500, content=b"<html>Bad gateway</html>"),
        GraphResponse(status_code=500),
        GraphResponse(status_code=500, content=b'{"error": "flat string"}'),
        GraphResponse(status_code=500, content=b"[1, 2, 3]"),
    ],
)
def test_unusable_error_bodies_fall_back_to_unknown(response: GraphResponse) -> None:
    error = map_response_error(GraphRequest("GET", "/me"), response)
    assert isinstance(error, ServiceError)
    assert error.message == "Unknown error"


def test_request_id_taken_from_inner_error_then_header() -> None:
    body = {"error": {"code": "X", "message": "y", "innerError": {"request-id": "inner-1"}}}
    req = GraphRequest("GET", "/me")
    assert map_response_error(req, _response(409, body)).request_id == "inner-1"
    assert (
        map_response_error(req, _response(409, _error_body("X", "y"), request_id="hdr-1"))
        .request_id
        == "hdr-1"
    )


def test_error_body_model_is_tolerant() -> None:
    assert GraphErrorBody.parse(None).code == "UnknownError"
    assert GraphErrorBody.parse({"error": {"code": "A"}}).message == "Unknown error"
    assert GraphErrorBody.parse({"error": {"code": "A", "message": "B"}}).code == "A"


def test_guess_resource() -> None:
    assert guess_resource("/me/messages/msg-001") == ("messages", "msg-001")
    assert guess_resource("/users/u1/events/e1") == ("events", "e1")
    assert guess_resource("https://graph.example/v1.0/me/todo/lists/l1") == ("lists", "l1")
    assert guess_resource("/me") == ("resource", "unknown")


def test_network_syscall_detection() -> None:
    assert network_syscall(httpx.ConnectError("refused")) == "ECONNREFUSED"
    assert network_syscall(httpx.ConnectTimeout("slow")) == "ETIMEDOUT"
    assert network_syscall(httpx.ReadError("reset")) == "ECONNRESET"
    assert network_syscall(OSError(errno.ECONNRESET, "reset")) == "ECONNRESET"
    assert network_syscall(socket.gaierror(socket.EAI_NONAME, "no host")) == "ENOTFOUND"
    assert network_syscall(ValueError("nope")) is None

    wrapped = httpx.ConnectError("wrapped")
    wrapped.__cause__ = OSError(errno.ETIMEDOUT, "timed out")
    assert network_syscall(wrapped) == "ETIMEDOUT"


@pytest.mark.asyncio
async def test_middleware_passes_success_through() -> None:
    ok = GraphResponse(status_code=200, json={"id": "1"})

    async def terminal(req: GraphRequest) -> GraphResponse:
        return ok

    assert await ErrorMappingMiddleware()(GraphRequest("GET", "/me"), terminal) is ok


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("raised", "syscall"),
    [
        (httpx.ConnectError("connection refused"), "ECONNREFUSED"),
        (httpx.ConnectTimeout("timed out"), "ETIMEDOUT"),
        (OSError(errno.ECONNRESET, "connection reset"), "ECONNRESET"),
    ],
)
async def test_transport_failures_become_network_errors(
    make_client, sleep, raised: Exception, syscall: str
) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise raised

    client = make_client(handler)
    try:
        with pytest.raises(NetworkError) as exc_info:
            await client.http.get("/me")
    finally:
        await client.close()

    assert exc_info.value.syscall == syscall
    assert exc_info.value.retryable is True
    assert exc_info.value.__cause__ is raised
    assert format_error_for_user(exc_info.value) == (
        "No connection to Microsoft Graph. Check your network."
    )
    # Retry only judges statuses; a request that never got one is not re-issued.
    assert calls == 1
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_unrecognized_exceptions_propagate_unchanged(make_client) -> None:
    boom = ValueError("programming error")

    def handler(request: httpx.Request) -> httpx.Response:
        raise boom

    client = make_client(handler)
    try:
        with pytest.raises(ValueError) as exc_info:
            await client.http.get("/me")
    finally:
        await client.close()

    assert exc_info.value is boom


def test_user_facing_messages() -> None:
    assert format_error_for_user(ValidationError("bad id")) == "Invalid parameters: bad id"
    assert format_error_for_user(AuthError("expired", 401)) == (
        "Authentication expired. Please refresh your token."
    )
    assert format_error_for_user(ConflictError("etag mismatch")) == (
        "Conflict: etag mismatch. Resource was modified in the meantime."
    )
    assert format_error_for_user(ServiceError("down", 503)) == (
        "Microsoft Graph API temporarily unavailable."
    )
    assert format_error_for_user(GraphApiError("teapot", 418, "Teapot")) == "teapot"
