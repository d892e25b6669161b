"""
Wire models.

All Pydantic models used on the wire are available from this module.
"""

from __future__ import annotations

from .base import GraphModel

# Batching
from .batch import (
    BatchFailure,
    BatchRequestItem,
    BatchResponseEnvelope,
    BatchResponseItem,
    BatchSummary,
)

# Errors
from .errors import ErrorDetail, GraphErrorBody, InnerError

# Pagination
from .pagination import Page, PageParams

__all__ = [
    "BatchFailure",
    "BatchRequestItem",
    "BatchResponseEnvelope",
    "BatchResponseItem",
    "BatchSummary",
    "ErrorDetail",
    "GraphErrorBody",
    "GraphModel",
    "InnerError",
    "Page",
    "PageParams",
]
