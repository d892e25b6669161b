from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class GraphModel(BaseModel):
    """Base for wire models: tolerant of unknown keys, populated by alias or name."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )
