"""
Idempotency cache for confirmed writes.

Handlers, not the pipeline, consult this cache around a whole write: look up
`(tool_name, key, user_scope)`, return the stored outcome when present, and
otherwise execute the write and store its outcome. Entries expire a fixed
time after they were stored, however often they are read.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from cachetools import TTLCache

from .cache import DEFAULT_USER_SCOPE

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 10 * 60
DEFAULT_MAX_ENTRIES = 1000

R = TypeVar("R")

_Key = tuple[str, str, str]


@dataclass(slots=True)
class IdempotencyEntry:
    tool_name: str
    idempotency_key: str
    user_scope: str
    result: Any


def derive_key(*parts: str | list[str] | tuple[str, ...]) -> str:
    """
    Deterministic idempotency key from request parts.

    Sequence parts are order-insensitive, so the same set of ids always maps
    to the same key.
    """
    normalized: list[str] = []
    for part in parts:
        if isinstance(part, (list, tuple)):
            normalized.append(",".join(sorted(part)))
        else:
            normalized.append(part)
    digest = hashlib.sha256("\x1f".join(normalized).encode("utf-8")).hexdigest()
    return digest[:32]


class IdempotencyCache:
    """
    Outcome store keyed by `(tool_name, key, user_scope)`.

    Backed by a `cachetools.TTLCache`, so reads never extend an entry's life.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._entries: TTLCache[_Key, IdempotencyEntry] = TTLCache(
            maxsize=max_entries, ttl=ttl_seconds, timer=clock
        )

    def __len__(self) -> int:
        self._entries.expire()
        return len(self._entries)

    def _live_entry(self, composite: _Key) -> IdempotencyEntry | None:
        return self._entries.get(composite)

    def get(self, tool_name: str, key: str, user_scope: str = DEFAULT_USER_SCOPE) -> Any | None:
        """Stored result for the exact `(tool_name, key, user_scope)`, or None."""
        entry = self._live_entry((tool_name, key, user_scope))
        if entry is None:
            return None
        logger.debug(
            "idempotency_hit",
            extra={"tool_name": tool_name, "idempotency_key": key, "user_scope": user_scope},
        )
        return entry.result

    def set(
        self,
        tool_name: str,
        key: str,
        result: Any,
        user_scope: str = DEFAULT_USER_SCOPE,
    ) -> None:
        self.cleanup()
        self._entries[(tool_name, key, user_scope)] = IdempotencyEntry(
            tool_name=tool_name,
            idempotency_key=key,
            user_scope=user_scope,
            result=result,
        )
        logger.debug(
            "idempotency_set",
            extra={"tool_name": tool_name, "idempotency_key": key, "size": len(self._entries)},
        )

    def cleanup(self) -> int:
        """Purge expired entries. Returns how many were removed."""
        before = self._entries.currsize
        self._entries.expire()
        removed = before - self._entries.currsize
        if removed:
            logger.debug(
                "idempotency_cleanup",
                extra={"removed": removed, "remaining": len(self._entries)},
            )
        return int(removed)

    async def run_once(
        self,
        tool_name: str,
        key: str | None,
        operation: Callable[[], Awaitable[R]],
        user_scope: str = DEFAULT_USER_SCOPE,
    ) -> R:
        """
        Execute `operation` unless an outcome for this key is already stored.

        Without a key the operation always runs and nothing is stored. Failed
        operations are not stored, so a retry with the same key re-executes.
        """
        if key is None:
            return await operation()
        entry = self._live_entry((tool_name, key, user_scope))
        if entry is not None:
            logger.info(
                "idempotency_replay", extra={"tool_name": tool_name, "user_scope": user_scope}
            )
            return entry.result  # type: ignore[no-any-return]
        result = await operation()
        self.set(tool_name, key, result, user_scope)
        return result
