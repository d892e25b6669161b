"""
Typed errors raised by the request pipeline.

Every failed Graph response that leaves the pipeline is one of the classes
below. `GraphError` is the common base; handlers can branch on the concrete
class or on `retryable`.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .clients.pipeline import GraphResponse


class GraphError(Exception):
    """Base class for all typed pipeline errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str,
        status_code: int | None = None,
        retryable: bool = False,
        request_id: str | None = None,
        response: GraphResponse | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.retryable = retryable
        self.request_id = request_id
        self.response = response

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"[{self.status_code}] {self.message}"
        return self.message


class GraphApiError(GraphError):
    """Catch-all for status codes without a dedicated error class."""

    def __init__(
        self,
        message: str,
        status_code: int,
        error_code: str,
        *,
        required_scope: str | None = None,
        retryable: bool = False,
        request_id: str | None = None,
        response: GraphResponse | None = None,
    ) -> None:
        super().__init__(
            message,
            code="GRAPH_API_ERROR",
            status_code=status_code,
            retryable=retryable,
            request_id=request_id,
            response=response,
        )
        self.error_code = error_code
        self.required_scope = required_scope


class AuthError(GraphError):
    """Expired or missing credential (401) or insufficient permission (403)."""

    def __init__(
        self,
        message: str,
        status_code: int,
        required_scope: str | None = None,
        *,
        request_id: str | None = None,
        response: GraphResponse | None = None,
    ) -> None:
        super().__init__(
            message,
            code="AUTH_ERROR",
            status_code=status_code,
            retryable=False,
            request_id=request_id,
            response=response,
        )
        self.required_scope = required_scope


class ValidationError(GraphError):
    def __init__(
        self,
        details: str,
        *,
        request_id: str | None = None,
        response: GraphResponse | None = None,
    ) -> None:
        super().__init__(
            f"Validation failed: {details}",
            code="VALIDATION_ERROR",
            status_code=400,
            request_id=request_id,
            response=response,
        )
        self.details = details


class NotFoundError(GraphError):
    def __init__(
        self,
        resource_type: str,
        resource_id: str,
        *,
        request_id: str | None = None,
        response: GraphResponse | None = None,
    ) -> None:
        super().__init__(
            f"Resource not found: {resource_type} with ID {resource_id}",
            code="NOT_FOUND_ERROR",
            status_code=404,
            request_id=request_id,
            response=response,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(GraphError):
    def __init__(
        self,
        details: str,
        *,
        request_id: str | None = None,
        response: GraphResponse | None = None,
    ) -> None:
        super().__init__(
            f"Conflict: {details}",
            code="CONFLICT_ERROR",
            status_code=409,
            request_id=request_id,
            response=response,
        )
        self.details = details


class RateLimitError(GraphError):
    """429 that survived every retry attempt."""

    def __init__(
        self,
        retry_after_ms: int,
        *,
        request_id: str | None = None,
        response: GraphResponse | None = None,
    ) -> None:
        super().__init__(
            f"Rate limit exceeded. Retry after {math.ceil(retry_after_ms / 1000)}s",
            code="RATE_LIMIT_ERROR",
            status_code=429,
            retryable=True,
            request_id=request_id,
            response=response,
        )
        self.retry_after_ms = retry_after_ms


class ServiceError(GraphError):
    """Upstream outage (500, 502, 503)."""

    def __init__(
        self,
        message: str,
        status_code: int,
        *,
        request_id: str | None = None,
        response: GraphResponse | None = None,
    ) -> None:
        super().__init__(
            message,
            code="SERVICE_ERROR",
            status_code=status_code,
            retryable=True,
            request_id=request_id,
            response=response,
        )


class NetworkError(GraphError):
    """The request never produced a response (refused, reset, timed out...)."""

    def __init__(self, message: str, syscall: str | None = None) -> None:
        super().__init__(message, code="NETWORK_ERROR", retryable=True)
        self.syscall = syscall


class CredentialUnavailableError(Exception):
    """Raised by credential providers when no access token can be produced."""


def is_retryable(error: BaseException) -> bool:
    if isinstance(error, GraphError):
        return error.retryable
    return False


def format_error_for_user(error: GraphError) -> str:
    """Render a typed error as a short, human-readable sentence."""
    if isinstance(error, ValidationError):
        return f"Invalid parameters: {error.details}"
    if isinstance(error, AuthError):
        if error.status_code == 403 and error.required_scope:
            return f"Missing permission: {error.required_scope}. Admin consent required."
        return "Authentication expired. Please refresh your token."
    if isinstance(error, NotFoundError):
        return f"Resource not found: {error.resource_type} with ID {error.resource_id}"
    if isinstance(error, ConflictError):
        return f"Conflict: {error.details}. Resource was modified in the meantime."
    if isinstance(error, RateLimitError):
        seconds = math.ceil(error.retry_after_ms / 1000)
        return f"Rate limit reached. Retry in {seconds} seconds."
    if isinstance(error, ServiceError):
        return "Microsoft Graph API temporarily unavailable."
    if isinstance(error, NetworkError):
        return "No connection to Microsoft Graph. Check your network."
    return error.message
