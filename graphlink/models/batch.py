"""JSON batching envelopes (`POST /$batch`)."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from .base import GraphModel

BatchMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]


class BatchRequestItem(GraphModel):
    id: str = Field(..., min_length=1)
    method: BatchMethod
    url: str
    headers: dict[str, str] | None = None
    body: Any | None = None
    depends_on: list[str] | None = Field(None, alias="dependsOn")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class BatchResponseItem(GraphModel):
    id: str
    status: int
    headers: dict[str, str] | None = None
    body: Any | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def error_message(self) -> str | None:
        if isinstance(self.body, dict):
            error = self.body.get("error")
            if isinstance(error, dict) and isinstance(error.get("message"), str):
                return error["message"]
        return None


class BatchResponseEnvelope(GraphModel):
    # Items stay raw so one malformed sub-response cannot fail the whole batch.
    responses: list[Any] = Field(default_factory=list)


class BatchFailure(GraphModel):
    id: str
    status: int
    error: str | None = None


class BatchSummary(GraphModel):
    success_count: int = 0
    failure_count: int = 0
    failures: list[BatchFailure] = Field(default_factory=list)
