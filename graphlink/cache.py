"""
Response cache: LRU-bounded TTL store shared by all in-flight requests.

Keys follow `METHOD:/path(?query):userScope`. The store itself knows nothing
about HTTP; key construction, path normalisation, per-resource TTLs, and write
invalidation rules live here as plain functions so the caching middleware and
the batch executor apply the same rules.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from cachetools import TLRUCache

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 500
DEFAULT_USER_SCOPE = "me"

_USER_SCOPE_RE = re.compile(r"/users/([^/?]+)")

_HOUR = 60 * 60
_MINUTE = 60

# (path fragment, ttl seconds); first match wins.
_RESOURCE_TTLS: tuple[tuple[str, float], ...] = (
    ("/profile", _HOUR),
    ("/calendar", _HOUR),
    ("/todo/lists", 30 * _MINUTE),
    ("/mailFolders", 30 * _MINUTE),
    ("/onenote/notebooks", _HOUR),
    ("/presence", 5 * _MINUTE),
    ("/teams", _HOUR),
    ("/joinedTeams", _HOUR),
    ("/sites", _HOUR),
    ("/contactFolders", _HOUR),
)
DEFAULT_TTL_SECONDS = 10 * _MINUTE

_MISSING = object()


def normalize_path(path: str) -> str:
    """
    Relative Graph path with exactly one leading slash.

    `me/messages`, `/me/messages` and `//me/messages` all become
    `/me/messages`. Absolute URLs are returned unchanged.
    """
    if path.startswith(("http://", "https://")):
        return path
    return "/" + path.lstrip("/")


def ttl_for_resource(path: str) -> float:
    """TTL in seconds for a Graph path, by resource family."""
    path = normalize_path(path)
    for fragment, ttl in _RESOURCE_TTLS:
        if fragment in path:
            return ttl
    return DEFAULT_TTL_SECONDS


def user_scope_for(path: str) -> str:
    """Identity a path acts on: the id after `/users/`, else `me`."""
    match = _USER_SCOPE_RE.search(normalize_path(path))
    return match.group(1) if match else DEFAULT_USER_SCOPE


def cache_key(method: str, path_with_query: str, user_scope: str) -> str:
    return f"{method.upper()}:{normalize_path(path_with_query)}:{user_scope}"


def resource_matcher(method: str, path: str, user_scope: str) -> Callable[[str], bool]:
    """
    Predicate matching every key for exactly `path`, any query string, one scope.

    `GET:/me/events` matches `GET:/me/events:me` and
    `GET:/me/events?$top=5:me`, but never `GET:/me/events/abc:me`.
    """
    prefix = f"{method.upper()}:{normalize_path(path)}"
    suffix = f":{user_scope}"

    def _matches(key: str) -> bool:
        if not key.startswith(prefix) or not key.endswith(suffix):
            return False
        rest = key[len(prefix) :]
        return rest == suffix or rest.startswith("?")

    return _matches


@dataclass(frozen=True, slots=True)
class CacheEntry:
    value: Any
    expires_at: float


def _entry_expiry(key: str, entry: CacheEntry, now: float) -> float:
    return entry.expires_at


@dataclass(frozen=True, slots=True)
class CacheStats:
    hits: int
    misses: int
    size: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class ResponseCache:
    """
    Process-wide keyed store with per-entry expiry and LRU eviction.

    Backed by a `cachetools.TLRUCache` whose time-to-use is the expiry stored
    on each entry, so every resource family keeps its own TTL and a hit can be
    re-inserted as most recently used without extending its life. Mutations happen
    between await points on a single event loop, so concurrent writers to the
    same key simply overwrite each other.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._store: TLRUCache[str, CacheEntry] = TLRUCache(
            maxsize=max_entries, ttu=_entry_expiry, timer=clock
        )
        self._clock = clock
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        self._store.expire()
        return len(self._store)

    def __contains__(self, key: object) -> bool:
        return key in self._store

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            self._misses += 1
            logger.debug("cache_access", extra={"key": key, "result": "miss"})
            return None
        self._store[key] = entry
        self._hits += 1
        logger.debug("cache_access", extra={"key": key, "result": "hit"})
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._store[key] = CacheEntry(value=value, expires_at=self._clock() + ttl_seconds)
        logger.debug("cache_set", extra={"key": key, "ttl": ttl_seconds})

    def invalidate(self, predicate: Callable[[str], bool]) -> int:
        """Drop every live entry whose key satisfies `predicate`; returns the count."""
        doomed = [key for key in list(self._store) if predicate(key)]
        removed = sum(1 for key in doomed if self._store.pop(key, _MISSING) is not _MISSING)
        if removed:
            logger.info("cache_invalidate", extra={"count": removed})
        return removed

    def clear(self) -> None:
        size = len(self)
        self._store.clear()
        self._hits = 0
        self._misses = 0
        logger.info("cache_clear", extra={"size": size})

    def stats(self) -> CacheStats:
        return CacheStats(hits=self._hits, misses=self._misses, size=len(self))
