from __future__ import annotations

import pytest

from graphlink.idempotency import IdempotencyCache, derive_key


def test_lookup_requires_all_three_components(clock) -> None:
    cache = IdempotencyCache(clock=clock)
    cache.set("send-mail", "k1", {"sent": True}, "me")

    assert cache.get("send-mail", "k1", "me") == {"sent": True}
    assert cache.get("send-mail", "k1", "someone-else") is None
    assert cache.get("delete-mail", "k1", "me") is None
    assert cache.get("send-mail", "k2", "me") is None


def test_entries_expire_regardless_of_reads(clock) -> None:
    cache = IdempotencyCache(ttl_seconds=600, clock=clock)
    cache.set("send-mail", "k1", "ok")

    clock.advance(599)
    assert cache.get("send-mail", "k1") == "ok"
    clock.advance(1)
    assert cache.get("send-mail", "k1") is None
    assert len(cache) == 0


def test_set_purges_expired_entries(clock) -> None:
    cache = IdempotencyCache(ttl_seconds=10, clock=clock)
    cache.set("a", "1", "x")
    cache.set("a", "2", "y")
    clock.advance(10)
    cache.set("a", "3", "z")

    assert len(cache) == 1


def test_cleanup_reports_removed_count(clock) -> None:
    cache = IdempotencyCache(ttl_seconds=10, clock=clock)
    cache.set("a", "1", "x")
    clock.advance(5)
    cache.set("a", "2", "y")
    clock.advance(5)

    assert cache.cleanup() == 1
    assert cache.cleanup() == 0
    assert cache.get("a", "2") == "y"


def test_invalid_ttl_and_size() -> None:
    with pytest.raises(ValueError):
        IdempotencyCache(ttl_seconds=0)
    with pytest.raises(ValueError):
        IdempotencyCache(max_entries=0)


def test_oldest_outcomes_are_evicted_at_capacity(clock) -> None:
    cache = IdempotencyCache(max_entries=2, clock=clock)
    cache.set("t", "1", "a")
    cache.set("t", "2", "b")
    cache.set("t", "3", "c")

    assert len(cache) == 2
    assert cache.get("t", "1") is None
    assert cache.get("t", "3") == "c"


def test_derive_key_is_deterministic_and_order_insensitive() -> None:
    a = derive_key("move-mail", ["m2", "m1", "m3"], "archive")
    b = derive_key("move-mail", ("m1", "m3", "m2"), "archive")
    c = derive_key("move-mail", ["m1", "m2"], "archive")

    assert a == b
    assert a != c
    assert len(a) == 32


@pytest.mark.asyncio
async def test_run_once_replays_stored_outcome(clock) -> None:
    cache = IdempotencyCache(clock=clock)
    calls = 0

    async def send() -> dict[str, str]:
        nonlocal calls
        calls += 1
        return {"status": "sent", "n": str(calls)}

    first = await cache.run_once("send-mail", "k1", send)
    second = await cache.run_once("send-mail", "k1", send)
    other_user = await cache.run_once("send-mail", "k1", send, user_scope="bob")

    assert first == second == {"status": "sent", "n": "1"}
    assert other_user == {"status": "sent", "n": "2"}
    assert calls == 2


@pytest.mark.asyncio
async def test_run_once_stores_none_results(clock) -> None:
    cache = IdempotencyCache(clock=clock)
    calls = 0

    async def delete() -> None:
        nonlocal calls
        calls += 1

    await cache.run_once("delete-event", "k1", delete)
    await cache.run_once("delete-event", "k1", delete)

    assert calls == 1


@pytest.mark.asyncio
async def test_run_once_without_key_always_executes(clock) -> None:
    cache = IdempotencyCache(clock=clock)
    calls = 0

    async def op() -> int:
        nonlocal calls
        calls += 1
        return calls

    assert await cache.run_once("t", None, op) == 1
    assert await cache.run_once("t", None, op) == 2
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_failed_operation_is_not_stored(clock) -> None:
    cache = IdempotencyCache(clock=clock)
    attempts = 0

    async def flaky() -> str:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RuntimeError("first try fails")
        return "done"

    with pytest.raises(RuntimeError):
        await cache.run_once("t", "k", flaky)
    assert await cache.run_once("t", "k", flaky) == "done"
    assert attempts == 2


@pytest.mark.asyncio
async def test_client_exposes_shared_idempotency_cache(make_client) -> None:
    shared = IdempotencyCache()
    client = make_client(lambda request: None, idempotency=shared)
    try:
        assert client.idempotency is shared
    finally:
        await client.close()
