"""
Main Graph client.

Provides one entry point wiring the request pipeline to the cross-cutting
services built on top of it.
"""

from __future__ import annotations

from typing import Any

import httpx

from .batch import BatchExecutor
from .cache import CacheStats, ResponseCache
from .clients.http import DEFAULT_BASE_URL, AsyncHTTPClient, ClientConfig, CredentialProvider
from .idempotency import IdempotencyCache
from .middleware.retry import RetryConfig, Sleep
from .pagination import PaginationFollower
from .policies import Policies


class GraphClient:
    """
    Asynchronous Graph API client.

    Example:
        ```python
        from graphlink import GraphClient, StaticTokenProvider

        async with GraphClient(StaticTokenProvider(token)) as client:
            async for batch in client.pagination.paginate("/me/messages", max_items=50):
                for message in batch:
                    print(message["subject"])

            result = await client.batch.execute(
                [{"id": "1", "method": "DELETE", "url": "/me/messages/abc"}]
            )
            print(result.summarize())
        ```

    Attributes:
        http: The underlying HTTP client (pipeline, cache)
        pagination: Cursor-following page access
        batch: JSON batch executor
        idempotency: Idempotency cache shared by write handlers
    """

    def __init__(
        self,
        credentials: CredentialProvider,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry: RetryConfig | None = None,
        enable_cache: bool = True,
        cache_ttl: float | None = None,
        cache: ResponseCache | None = None,
        policies: Policies | None = None,
        idempotency: IdempotencyCache | None = None,
        async_transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep | None = None,
    ):
        """
        Initialize the client.

        Args:
            credentials: Bearer token provider
            base_url: Graph API base URL (default: https://graph.microsoft.com/v1.0)
            timeout: Per-attempt request timeout in seconds
            max_retries: Maximum retries for transient failures (ignored if `retry` is given)
            retry: Full retry configuration
            enable_cache: Enable read-through response caching
            cache_ttl: Fixed cache TTL in seconds (default: per resource type)
            cache: Response cache to share with other clients; a private one is
                created otherwise
            policies: Cross-cutting policies (cache invalidation)
            idempotency: Idempotency cache to share; a private one is created otherwise
            async_transport: httpx transport override (tests, proxies)
            sleep: Backoff sleep override (tests)
        """
        config = ClientConfig(
            credentials=credentials,
            base_url=base_url,
            timeout=timeout,
            retry=retry or RetryConfig(max_retries=max_retries),
            enable_cache=enable_cache,
            cache_ttl=cache_ttl,
            cache=cache,
            policies=policies or Policies(),
            async_transport=async_transport,
            sleep=sleep,
        )
        self._http = AsyncHTTPClient(config)
        self._idempotency = idempotency if idempotency is not None else IdempotencyCache()
        self._pagination: PaginationFollower | None = None
        self._batch: BatchExecutor | None = None

    async def __aenter__(self) -> GraphClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        await self._http.close()

    @property
    def http(self) -> AsyncHTTPClient:
        return self._http

    @property
    def pagination(self) -> PaginationFollower:
        if self._pagination is None:
            self._pagination = PaginationFollower(self._http)
        return self._pagination

    @property
    def batch(self) -> BatchExecutor:
        if self._batch is None:
            self._batch = BatchExecutor(
                self._http,
                cache=self._http.cache,
                policy=self._http.config.policies.invalidation,
            )
        return self._batch

    @property
    def idempotency(self) -> IdempotencyCache:
        return self._idempotency

    def clear_cache(self) -> None:
        """Clear the response cache."""
        if self._http.cache is not None:
            self._http.cache.clear()

    @property
    def cache_stats(self) -> CacheStats | None:
        if self._http.cache is None:
            return None
        return self._http.cache.stats()
