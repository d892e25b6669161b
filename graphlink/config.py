"""
Environment configuration.

Settings are read from the process environment once, validated with pydantic,
and then passed explicitly to whatever needs them.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .clients.http import DEFAULT_BASE_URL

LogLevel = Literal["debug", "info", "warning", "error", "critical"]


class GraphSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    base_url: str = DEFAULT_BASE_URL
    access_token: str | None = None
    log_level: LogLevel | None = None
    max_items: int = Field(25, gt=0)
    max_retries: int = Field(3, ge=0)
    timeout: float = Field(30.0, gt=0)
    enable_cache: bool = True


_ENV_VARS: dict[str, str] = {
    "base_url": "GRAPH_BASE_URL",
    "access_token": "GRAPH_ACCESS_TOKEN",
    "log_level": "LOG_LEVEL",
    "max_items": "MAX_ITEMS",
    "max_retries": "MAX_RETRIES",
    "timeout": "GRAPH_TIMEOUT",
    "enable_cache": "GRAPH_CACHE",
}


def load_settings(environ: Mapping[str, str] | None = None) -> GraphSettings:
    """Build settings from environment variables; unset or empty values keep defaults."""
    env = os.environ if environ is None else environ
    values: dict[str, str] = {}
    for name, var in _ENV_VARS.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        values[name] = raw.lower() if name == "log_level" else raw
    return GraphSettings.model_validate(values)
