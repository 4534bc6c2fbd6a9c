"""Models for browser watch sessions started through the HTTP API."""

from __future__ import annotations

from typing import Literal

import pydantic

from pagewatch.utils.serialization import WIRE_CONFIG

WatchState = Literal["starting", "watching", "finished", "failed", "cancelled"]


class WatchRequest(pydantic.BaseModel):
    """Body of ``POST /api/watch``."""

    model_config = WIRE_CONFIG

    url: str
    duration_seconds: float = pydantic.Field(default=60, gt=0, le=3600)
    headless: bool = True
    # Unpacked extension directories loaded into the watched browser.
    extension_paths: list[str] = pydantic.Field(default_factory=list)

    @pydantic.field_validator("url")
    @classmethod
    def _require_http(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("url must be an http(s) URL")
        return value


class WatchStatus(pydantic.BaseModel):
    """Progress of one watch session."""

    model_config = WIRE_CONFIG

    id: str
    url: str
    state: WatchState = "starting"
    started_at: int = 0
    finished_at: int | None = None
    batches: int = 0
    error: str | None = None
