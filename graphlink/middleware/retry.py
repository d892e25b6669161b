"""
Retry middleware with capped exponential backoff, driven by tenacity.

Transient failures (429 and 5xx by default) are re-issued up to
`RetryConfig.max_retries` times. A 429 carrying `Retry-After` waits exactly
what the server asked for when `respect_retry_after` is enabled.

Error mapping sits inside this middleware, so a failed attempt arrives either
as a failed response or as a typed `GraphError` raised for that response.
Both are judged by status code alone; anything raised without a status
(network failures, programming errors) is never retried here.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
)

from ..clients.pipeline import GraphRequest, GraphResponse, Handler
from ..exceptions import GraphError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

DEFAULT_RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True, slots=True)
class RetryConfig:
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 32000
    retryable_statuses: frozenset[int] = field(default=DEFAULT_RETRYABLE_STATUSES)
    respect_retry_after: bool = True
    jitter: bool = False

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("retry delays must be >= 0")
        object.__setattr__(self, "retryable_statuses", frozenset(self.retryable_statuses))


def compute_backoff_ms(attempt: int, config: RetryConfig) -> float:
    """`min(base * 2**attempt, max_delay)`, with optional additive jitter."""
    delay: float = config.base_delay_ms * (2**attempt)
    if config.jitter:
        delay += random.random() * config.base_delay_ms
    return min(delay, config.max_delay_ms)


def parse_retry_after_ms(value: str | None) -> int | None:
    """
    Parse a `Retry-After` header into milliseconds.

    Accepts delta-seconds (fractional values included) and HTTP-date forms.
    Returns None when the header is missing, negative, non-finite or
    unparseable.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        delay_ms = seconds * 1000
        if not math.isfinite(delay_ms) or delay_ms < 0:
            return None
        return int(delay_ms)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    delta = when - datetime.now(timezone.utc)
    return max(0, int(delta.total_seconds() * 1000))


def _failed_response(state: RetryCallState) -> GraphResponse | None:
    """Response behind the attempt that just finished, raised or returned."""
    outcome = state.outcome
    if outcome is None:
        return None
    if outcome.failed:
        error = outcome.exception()
        return error.response if isinstance(error, GraphError) else None
    return outcome.result()  # type: ignore[no-any-return]


def _status_of(state: RetryCallState) -> int | None:
    outcome = state.outcome
    if outcome is not None and outcome.failed:
        error = outcome.exception()
        return error.status_code if isinstance(error, GraphError) else None
    response = _failed_response(state)
    return response.status_code if response is not None else None


class RetryMiddleware:
    def __init__(self, config: RetryConfig | None = None, *, sleep: Sleep | None = None):
        self.config = config or RetryConfig()
        self._sleep: Sleep = sleep or asyncio.sleep

    def _delay_ms(self, response: GraphResponse | None, attempt: int) -> float:
        if (
            self.config.respect_retry_after
            and response is not None
            and response.status_code == 429
        ):
            retry_after = parse_retry_after_ms(response.header("Retry-After"))
            if retry_after is not None:
                return retry_after
        return compute_backoff_ms(attempt, self.config)

    def _is_retryable_response(self, response: GraphResponse) -> bool:
        return response.status_code in self.config.retryable_statuses

    def _is_retryable_error(self, error: BaseException) -> bool:
        if not isinstance(error, GraphError) or error.status_code is None:
            return False
        return error.status_code in self.config.retryable_statuses

    def _wait(self, state: RetryCallState) -> float:
        """Seconds before the next attempt: Retry-After first, backoff otherwise."""
        return self._delay_ms(_failed_response(state), state.attempt_number - 1) / 1000

    def _log_retry(self, state: RetryCallState) -> None:
        delay = state.next_action.sleep if state.next_action is not None else 0.0
        logger.warning(
            "graph_retry",
            extra={
                "attempt": state.attempt_number,
                "max_retries": self.config.max_retries,
                "status": _status_of(state),
                "delay_ms": round(delay * 1000),
            },
        )

    def _exhausted(self, state: RetryCallState) -> GraphResponse:
        """Hand back the last response, or re-raise the last error."""
        logger.warning(
            "graph_retry_exhausted",
            extra={"attempts": state.attempt_number, "status": _status_of(state)},
        )
        assert state.outcome is not None
        return state.outcome.result()  # type: ignore[no-any-return]

    async def __call__(self, req: GraphRequest, next: Handler) -> GraphResponse:
        attempt = -1

        async def send_once() -> GraphResponse:
            nonlocal attempt
            attempt += 1
            req.context["attempt"] = attempt
            response = await next(req)
            response.context["retry_count"] = attempt
            return response

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=self._wait,
            retry=(
                retry_if_result(self._is_retryable_response)
                | retry_if_exception(self._is_retryable_error)
            ),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            retry_error_callback=self._exhausted,
        )
        return await retrying(send_once)  # type: ignore[no-any-return]
