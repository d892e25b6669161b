"""
Read-through caching middleware.

GET responses are served from `ResponseCache` when fresh and stored after a
successful round trip. Writes are never cached; after they complete, whether
they succeeded or not, the cached reads they may have made stale are
dropped:

- POST /resources        -> list reads of /resources (every query variant)
- PATCH|PUT /resources/x -> detail reads of /resources/x
                            (plus /resources with DETAIL_AND_PARENT)
- DELETE /resources/x    -> detail reads of /resources/x and list reads of /resources

Sibling items (/resources/y) are never touched.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import replace

import httpx

from ..cache import (
    ResponseCache,
    cache_key,
    normalize_path,
    resource_matcher,
    ttl_for_resource,
    user_scope_for,
)
from ..clients.pipeline import GraphRequest, GraphResponse, Handler
from ..policies import InvalidationPolicy

logger = logging.getLogger(__name__)

READ_METHOD = "GET"
WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def split_target(req: GraphRequest) -> tuple[str, str]:
    """Return `(path, path_with_query)` for a request, params included."""
    url = httpx.URL(normalize_path(req.url))
    if req.params:
        url = url.copy_merge_params(dict(req.params))
    path = url.path
    query = url.query.decode("ascii")
    return path, f"{path}?{query}" if query else path


def _parent_path(path: str) -> str | None:
    trimmed = path.rstrip("/")
    idx = trimmed.rfind("/")
    if idx <= 0:
        return None
    return trimmed[:idx]


def invalidate_for_write(
    cache: ResponseCache,
    method: str,
    path: str,
    policy: InvalidationPolicy = InvalidationPolicy.DETAIL_ONLY,
) -> int:
    """Drop cached reads made stale by a write to `path`. Returns the number dropped."""
    method = method.upper()
    if method not in WRITE_METHODS:
        return 0
    path = httpx.URL(normalize_path(path)).path
    scope = user_scope_for(path)

    if method == "POST":
        return cache.invalidate(resource_matcher(READ_METHOD, path, scope))

    removed = cache.invalidate(resource_matcher(READ_METHOD, path, scope))
    if method == "DELETE" or policy is InvalidationPolicy.DETAIL_AND_PARENT:
        parent = _parent_path(path)
        if parent:
            removed += cache.invalidate(resource_matcher(READ_METHOD, parent, scope))
    return removed


class CachingMiddleware:
    def __init__(
        self,
        cache: ResponseCache,
        *,
        policy: InvalidationPolicy = InvalidationPolicy.DETAIL_ONLY,
        default_ttl: float | None = None,
    ):
        self.cache = cache
        self.policy = policy
        self._default_ttl = default_ttl

    def _ttl(self, path: str) -> float:
        if self._default_ttl is not None:
            return self._default_ttl
        return ttl_for_resource(path)

    async def __call__(self, req: GraphRequest, next: Handler) -> GraphResponse:
        path, path_with_query = split_target(req)
        scope = user_scope_for(path)
        req.context["user_scope"] = scope

        if req.method == READ_METHOD:
            key = cache_key(req.method, path_with_query, scope)
            req.context["cache_key"] = key
            cached = self.cache.get(key)
            if cached is not None:
                return replace(
                    cached,
                    headers=list(cached.headers),
                    json=copy.deepcopy(cached.json),
                    context={"cache_hit": True},
                )

            response = await next(req)
            if response.ok:
                ttl = self._ttl(path)
                stored = replace(response, json=copy.deepcopy(response.json), context={})
                self.cache.set(key, stored, ttl)
                logger.debug("cache_store", extra={"key": key, "ttl": ttl})
            response.context["cache_hit"] = False
            return response

        if req.method not in WRITE_METHODS:
            return await next(req)

        try:
            return await next(req)
        finally:
            removed = invalidate_for_write(self.cache, req.method, path, self.policy)
            logger.debug(
                "cache_invalidated_by_write",
                extra={"method": req.method, "path": path, "count": removed},
            )
