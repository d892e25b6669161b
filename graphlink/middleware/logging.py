"""
Request/response logging middleware.

Logs structured request metadata only: request id, method, endpoint, status,
duration and the server correlation id. Bodies, tokens and query strings are
never logged.
"""

from __future__ import annotations

import logging
import time
import uuid

import httpx

from ..clients.pipeline import GraphRequest, GraphResponse, Handler

logger = logging.getLogger("graphlink.http")


def _endpoint(url: str) -> str:
    try:
        return httpx.URL(url).path or "unknown"
    except httpx.InvalidURL:
        return "unknown"


class LoggingMiddleware:
    async def __call__(self, req: GraphRequest, next: Handler) -> GraphResponse:
        request_id = req.context.setdefault("request_id", str(uuid.uuid4()))
        endpoint = _endpoint(req.url)
        started = time.perf_counter()

        logger.info(
            "graph_request",
            extra={"request_id": request_id, "method": req.method, "endpoint": endpoint},
        )

        try:
            response = await next(req)
        except Exception as e:
            logger.error(
                "graph_error",
                extra={
                    "request_id": request_id,
                    "method": req.method,
                    "endpoint": endpoint,
                    "duration_ms": round((time.perf_counter() - started) * 1000),
                    "error_name": type(e).__name__,
                    "error_code": getattr(e, "code", None),
                },
            )
            raise

        elapsed = time.perf_counter() - started
        response.context["request_id"] = request_id
        response.context.setdefault("elapsed_seconds", elapsed)
        logger.info(
            "graph_response",
            extra={
                "request_id": request_id,
                "correlation_id": response.header("request-id"),
                "method": req.method,
                "endpoint": endpoint,
                "status": response.status_code,
                "cached": response.context.get("cache_hit", False),
                "duration_ms": round(elapsed * 1000),
            },
        )
        return response
