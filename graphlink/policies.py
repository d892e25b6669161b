"""
Client policies (cross-cutting behavioral controls).

Policies are orthogonal and composable. They are enforced centrally by the
request pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class InvalidationPolicy(Enum):
    """Which cached reads an update (PATCH/PUT) of a single item drops."""

    DETAIL_ONLY = "detail_only"
    DETAIL_AND_PARENT = "detail_and_parent"


@dataclass(frozen=True, slots=True)
class Policies:
    """Policy bundle applied to all requests made by a client."""

    invalidation: InvalidationPolicy = InvalidationPolicy.DETAIL_ONLY
