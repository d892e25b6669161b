from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from graphlink import GraphClient, StaticTokenProvider

BASE_URL = "https://graph.example/v1.0"


class RecordingSleep:
    """Stands in for `asyncio.sleep`; records requested delays without waiting."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


ClientFactory = Callable[..., GraphClient]


@pytest.fixture
def make_client(sleep: RecordingSleep) -> ClientFactory:
    """Build a `GraphClient` whose network is `handler` and whose backoff is `sleep`."""

    def _make(handler: Callable[[httpx.Request], httpx.Response], **kwargs: Any) -> GraphClient:
        return GraphClient(
            StaticTokenProvider("test-token"),
            base_url=BASE_URL,
            async_transport=httpx.MockTransport(handler),
            sleep=sleep,
            **kwargs,
        )

    return _make
