from __future__ import annotations

import io
import logging

import httpx
import pydantic
import pytest

from graphlink.config import GraphSettings, load_settings
from graphlink.exceptions import NotFoundError
from graphlink.logging import (
    KeyValueFormatter,
    RedactionFilter,
    configure_logging,
    redact,
    restore_logging,
)


def test_defaults_without_environment() -> None:
    settings = load_settings({})
    assert settings == GraphSettings()
    assert settings.base_url == "https://graph.microsoft.com/v1.0"
    assert settings.access_token is None
    assert settings.max_items == 25
    assert settings.max_retries == 3
    assert settings.enable_cache is True


def test_environment_overrides() -> None:
    settings = load_settings(
        {
            "GRAPH_BASE_URL": "https://graph.example/beta",
            "GRAPH_ACCESS_TOKEN": "tok",
            "LOG_LEVEL": "DEBUG",
            "MAX_ITEMS": "50",
            "MAX_RETRIES": "0",
            "GRAPH_TIMEOUT": "2.5",
            "GRAPH_CACHE": "false",
            "UNRELATED": "x",
        }
    )
    assert settings.base_url == "https://graph.example/beta"
    assert settings.access_token == "tok"
    assert settings.log_level == "debug"
    assert settings.max_items == 50
    assert settings.max_retries == 0
    assert settings.timeout == 2.5
    assert settings.enable_cache is False


def test_empty_values_keep_defaults() -> None:
    assert load_settings({"MAX_ITEMS": "", "LOG_LEVEL": ""}) == GraphSettings()


@pytest.mark.parametrize(
    "environ",
    [
        {"MAX_ITEMS": "0"},
        {"MAX_ITEMS": "many"},
        {"MAX_RETRIES": "-1"},
        {"LOG_LEVEL": "loud"},
        {"GRAPH_TIMEOUT": "0"},
    ],
)
def test_invalid_values_are_rejected(environ: dict[str, str]) -> None:
    with pytest.raises(pydantic.ValidationError):
        load_settings(environ)


def test_settings_are_frozen() -> None:
    settings = load_settings({})
    with pytest.raises(pydantic.ValidationError):
        settings.max_items = 3  # type: ignore[misc]


def test_redact() -> None:
    assert redact("Authorization: Bearer eyJ0eXAi.abc-def") == "Authorization: Bearer [REDACTED]"
    assert redact("?access_token=abc&x=1") == "?access_token=[REDACTED]&x=1"
    assert redact("client_secret=s3cr3t") == "client_secret=[REDACTED]"
    assert redact("nothing to hide") == "nothing to hide"


def test_formatter_renders_extra_fields_and_filter_redacts() -> None:
    record = logging.LogRecord(
        "graphlink.http", logging.INFO, __file__, 1, "graph_request", None, None
    )
    record.method = "GET"
    record.endpoint = "/me"
    record.token = "Bearer abc.def"
    record.absent = None

    assert RedactionFilter().filter(record) is True
    line = KeyValueFormatter().format(record)

    assert "INFO graphlink.http graph_request" in line
    assert "method=GET" in line
    assert "endpoint=/me" in line
    assert "token=Bearer [REDACTED]" in line
    assert "absent=" not in line


def test_configure_and_restore_logging() -> None:
    logger = logging.getLogger("graphlink")
    before_handlers = list(logger.handlers)
    before_level = logger.level
    stream = io.StringIO()

    state = configure_logging("debug", stream=stream)
    try:
        logging.getLogger("graphlink.cache").debug("cache_set", extra={"key": "GET:/me:me"})
        assert logger.level == logging.DEBUG
    finally:
        restore_logging(state)

    assert "cache_set key=GET:/me:me" in stream.getvalue()
    assert logger.handlers == before_handlers
    assert logger.level == before_level


@pytest.mark.asyncio
async def test_logging_middleware_records_outcomes(make_client, caplog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"id": "1"}, headers={"request-id": "srv-42"}, request=request
        )

    caplog.set_level(logging.INFO, logger="graphlink.http")
    client = make_client(handler)
    try:
        await client.http.get("/me/events/1", params={"access_token": "nope"})
        await client.http.get("/me/events/1", params={"access_token": "nope"})
    finally:
        await client.close()

    requests = [r for r in caplog.records if r.getMessage() == "graph_request"]
    responses = [r for r in caplog.records if r.getMessage() == "graph_response"]
    assert len(requests) == 2
    assert len(responses) == 2
    assert requests[0].endpoint == "/me/events/1"
    assert responses[0].status == 200
    assert responses[0].correlation_id == "srv-42"
    assert responses[0].cached is False
    assert responses[1].cached is True
    assert responses[0].request_id == requests[0].request_id
    assert responses[0].request_id != responses[1].request_id
    assert all("nope" not in str(r.__dict__) for r in requests + responses)


@pytest.mark.asyncio
async def test_logging_middleware_records_errors(make_client, caplog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={}, request=request)

    caplog.set_level(logging.INFO, logger="graphlink.http")
    client = make_client(handler)
    try:
        with pytest.raises(NotFoundError):
            await client.http.get("/me/events/gone")
    finally:
        await client.close()

    errors = [r for r in caplog.records if r.getMessage() == "graph_error"]
    assert len(errors) == 1
    assert errors[0].levelno == logging.ERROR
    assert errors[0].error_name == "NotFoundError"
    assert errors[0].error_code == "NOT_FOUND_ERROR"
