"""
Graph API error body.

Every field is optional: error bodies are parsed best-effort and a missing or
malformed body must never break error mapping.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field
from pydantic import ValidationError as PydanticValidationError

from .base import GraphModel

UNKNOWN_ERROR_CODE = "UnknownError"
UNKNOWN_ERROR_MESSAGE = "Unknown error"


class InnerError(GraphModel):
    request_id: str | None = Field(None, alias="request-id")
    date: str | None = None


class ErrorDetail(GraphModel):
    code: str | None = None
    message: str | None = None
    inner_error: InnerError | None = Field(None, alias="innerError")


class GraphErrorBody(GraphModel):
    error: ErrorDetail | None = None

    @property
    def code(self) -> str:
        if self.error is not None and self.error.code:
            return self.error.code
        return UNKNOWN_ERROR_CODE

    @property
    def message(self) -> str:
        if self.error is not None and self.error.message:
            return self.error.message
        return UNKNOWN_ERROR_MESSAGE

    @property
    def request_id(self) -> str | None:
        if self.error is not None and self.error.inner_error is not None:
            return self.error.inner_error.request_id
        return None

    @classmethod
    def parse(cls, payload: Any) -> GraphErrorBody:
        """Parse any decoded JSON value; shapes that do not fit yield an empty body."""
        if not isinstance(payload, dict):
            return cls()
        try:
            return cls.model_validate(payload)
        except PydanticValidationError:
            return cls()
