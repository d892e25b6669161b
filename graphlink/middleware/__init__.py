"""Standard request pipeline middlewares, outermost first."""

from __future__ import annotations

from .caching import CachingMiddleware
from .error_mapping import ErrorMappingMiddleware
from .logging import LoggingMiddleware
from .retry import RetryConfig, RetryMiddleware

__all__ = [
    "CachingMiddleware",
    "ErrorMappingMiddleware",
    "LoggingMiddleware",
    "RetryConfig",
    "RetryMiddleware",
]
