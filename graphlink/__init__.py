"""
graphlink: resilient async access to the Microsoft Graph API.

The request pipeline (logging, retry, error mapping, caching) wraps every
call; pagination, JSON batching and idempotent writes are layered on top.
"""

from __future__ import annotations

from .batch import BatchExecutor, BatchResult, format_batch_summary, gather_settled
from .cache import ResponseCache
from .client import GraphClient
from .clients.http import AsyncHTTPClient, ClientConfig, CredentialProvider, StaticTokenProvider
from .clients.pipeline import GraphRequest, GraphResponse, Pipeline
from .exceptions import (
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
from .idempotency import IdempotencyCache
from .middleware.retry import RetryConfig
from .models.pagination import Page, PageParams
from .pagination import PaginationFollower
from .policies import InvalidationPolicy, Policies

__version__ = "0.1.0"

__all__ = [
    "AsyncHTTPClient",
    "AuthError",
    "BatchExecutor",
    "BatchResult",
    "ClientConfig",
    "ConflictError",
    "CredentialProvider",
    "CredentialUnavailableError",
    "GraphApiError",
    "GraphClient",
    "GraphError",
    "GraphRequest",
    "GraphResponse",
    "IdempotencyCache",
    "InvalidationPolicy",
    "NetworkError",
    "NotFoundError",
    "Page",
    "PageParams",
    "PaginationFollower",
    "Pipeline",
    "Policies",
    "RateLimitError",
    "ResponseCache",
    "RetryConfig",
    "ServiceError",
    "StaticTokenProvider",
    "ValidationError",
    "__version__",
    "format_batch_summary",
    "gather_settled",
]
