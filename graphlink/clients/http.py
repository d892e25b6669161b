"""
HTTP client: transport, credentials and the standard middleware chain.

`AsyncHTTPClient` owns one `httpx.AsyncClient`, one `ResponseCache` and one
`Pipeline`, all built at construction and shared by every call made through
the client.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from ..cache import DEFAULT_MAX_ENTRIES, ResponseCache, normalize_path
from ..exceptions import CredentialUnavailableError
from ..middleware.caching import CachingMiddleware
from ..middleware.error_mapping import ErrorMappingMiddleware
from ..middleware.logging import LoggingMiddleware
from ..middleware.retry import RetryConfig, RetryMiddleware, Sleep
from ..policies import Policies
from .pipeline import GraphRequest, GraphResponse, Middleware, Pipeline, Transport

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://graph.microsoft.com/v1.0"
USER_AGENT = "graphlink"


class CredentialProvider(Protocol):
    """Supplies a bearer token on demand. Token acquisition is not our concern."""

    async def get_access_token(self) -> str: ...


class StaticTokenProvider:
    def __init__(self, token: str):
        self._token = token

    async def get_access_token(self) -> str:
        if not self._token:
            raise CredentialUnavailableError("No access token configured")
        return self._token


@dataclass(slots=True)
class ClientConfig:
    credentials: CredentialProvider
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 30.0
    retry: RetryConfig = field(default_factory=RetryConfig)
    enable_cache: bool = True
    cache_max_entries: int = DEFAULT_MAX_ENTRIES
    cache_ttl: float | None = None
    cache: ResponseCache | None = None
    policies: Policies = field(default_factory=Policies)
    async_transport: httpx.AsyncBaseTransport | None = None
    sleep: Sleep | None = None

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")


def build_pipeline(
    transport: Transport,
    *,
    retry: RetryConfig | None = None,
    cache: ResponseCache | None = None,
    policies: Policies | None = None,
    cache_ttl: float | None = None,
    sleep: Sleep | None = None,
) -> Pipeline:
    """
    Standard chain: Logging -> Retry -> ErrorMapping -> Caching -> transport.

    Logging is outermost so it records final outcomes, retries included.
    Caching is innermost so a hit short-circuits before a network attempt
    and only responses that actually succeeded are stored.
    """
    policies = policies or Policies()
    middlewares: list[Middleware] = [
        LoggingMiddleware(),
        RetryMiddleware(retry, sleep=sleep),
        ErrorMappingMiddleware(),
    ]
    if cache is not None:
        middlewares.append(
            CachingMiddleware(cache, policy=policies.invalidation, default_ttl=cache_ttl)
        )
    return Pipeline(tuple(middlewares), transport)


class HttpxTransport:
    """Terminal link: one HTTP exchange per call, no retries, no status checks."""

    def __init__(self, client: httpx.AsyncClient, credentials: CredentialProvider, base_url: str):
        self._client = client
        self._credentials = credentials
        self._base_url = base_url

    def _absolute(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        return f"{self._base_url}/{url.lstrip('/')}"

    async def __call__(self, req: GraphRequest) -> GraphResponse:
        token = await self._credentials.get_access_token()
        headers = dict(req.headers)
        headers["Authorization"] = f"Bearer {token}"
        started = time.perf_counter()
        response = await self._client.request(
            req.method,
            self._absolute(req.url),
            params=dict(req.params) if req.params else None,
            json=req.json,
            headers=headers,
        )
        content = await response.aread()
        result = GraphResponse(
            status_code=response.status_code,
            headers=list(response.headers.multi_items()),
            content=content,
        )
        if content and "json" in response.headers.get("content-type", ""):
            result.json = result.parse_json()
        result.context["elapsed_seconds"] = time.perf_counter() - started
        return result


class AsyncHTTPClient:
    def __init__(self, config: ClientConfig):
        self.config = config
        self._client = httpx.AsyncClient(
            timeout=config.timeout,
            transport=config.async_transport,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        )
        self.cache: ResponseCache | None = None
        if config.enable_cache:
            self.cache = (
                config.cache
                if config.cache is not None
                else ResponseCache(config.cache_max_entries)
            )
        self._pipeline = build_pipeline(
            HttpxTransport(self._client, config.credentials, config.base_url),
            retry=config.retry,
            cache=self.cache,
            policies=config.policies,
            cache_ttl=config.cache_ttl,
            sleep=config.sleep,
        )

    @property
    def pipeline(self) -> Pipeline:
        return self._pipeline

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> AsyncHTTPClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def relativize(self, url: str) -> str:
        """Strip the base URL so cursor links and plain paths share cache keys."""
        if url.startswith(self.config.base_url):
            rest = url[len(self.config.base_url) :]
            if not rest or rest[0] in "/?":
                return normalize_path(rest)
        return normalize_path(url)

    async def send(self, req: GraphRequest) -> GraphResponse:
        """Run a prepared request through the pipeline."""
        req.url = self.relativize(req.url)
        return await self._pipeline(req)

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (None when empty)."""
        req = GraphRequest(
            method=method,
            url=url,
            params=params,
            json=json,
            headers=list(headers.items()) if headers else [],
        )
        response = await self.send(req)
        return response.parse_json()

    async def get(self, path: str, *, params: Mapping[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def get_url(self, url: str) -> Any:
        """GET an absolute URL as-is (e.g. an `@odata.nextLink`)."""
        return await self.request("GET", url)

    async def post(self, path: str, *, json: Any | None = None) -> Any:
        return await self.request("POST", path, json=json)

    async def put(self, path: str, *, json: Any | None = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def patch(self, path: str, *, json: Any | None = None) -> Any:
        return await self.request("PATCH", path, json=json)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)
