"""
Runtime configuration for the collector and the alert engine.

Centralises every tunable threshold, its environment variable name
and its default.  Uses ``pydantic_settings.BaseSettings`` for
environment binding, type coercion and validation; ``.env`` files are
loaded by the server entry point via ``dotenv``.
"""

from __future__ import annotations

import pathlib

import pydantic
import pydantic_settings


class CollectorSettings(pydantic_settings.BaseSettings):
    """Thresholds for the in-page collector and flush gate.

    Attributes:
        quiet_window_ms: Trailing debounce before a window is evaluated.
        min_report_interval_ms: Minimum gap between two non-high alerts
            for the same document.
        change_threshold: ``added + removed`` count that earns the
            structural-volume reason.
        max_descendants: Descendants inspected per mutation batch.
        max_detail_entries: Ceiling of each diff list per window.
        max_snippet_length: Characters kept from HTML snippets and values.
        max_mutations_per_window: Records processed before the window
            saturates.
        max_security_items: Ceiling of each security list per window.
        settle_after_load_ms: Grace period after load completion.
        max_extension_urls: Distinct extension URLs kept per window.
    """

    model_config = pydantic_settings.SettingsConfigDict(populate_by_name=True)

    quiet_window_ms: int = pydantic.Field(
        default=1500, ge=0, validation_alias="PAGEWATCH_QUIET_WINDOW_MS"
    )
    min_report_interval_ms: int = pydantic.Field(
        default=10000, ge=0, validation_alias="PAGEWATCH_MIN_REPORT_INTERVAL_MS"
    )
    change_threshold: int = pydantic.Field(
        default=25, ge=1, validation_alias="PAGEWATCH_CHANGE_THRESHOLD"
    )
    max_descendants: int = pydantic.Field(
        default=50, ge=0, validation_alias="PAGEWATCH_MAX_DESCENDANTS"
    )
    max_detail_entries: int = pydantic.Field(
        default=30, ge=0, validation_alias="PAGEWATCH_MAX_DETAIL_ENTRIES"
    )
    max_snippet_length: int = pydantic.Field(
        default=220, ge=1, validation_alias="PAGEWATCH_MAX_SNIPPET_LENGTH"
    )
    max_mutations_per_window: int = pydantic.Field(
        default=3000, ge=1, validation_alias="PAGEWATCH_MAX_MUTATIONS_PER_WINDOW"
    )
    max_security_items: int = pydantic.Field(
        default=20, ge=0, validation_alias="PAGEWATCH_MAX_SECURITY_ITEMS"
    )
    settle_after_load_ms: int = pydantic.Field(
        default=2000, ge=0, validation_alias="PAGEWATCH_SETTLE_AFTER_LOAD_MS"
    )
    max_extension_urls: int = pydantic.Field(
        default=5, ge=1, validation_alias="PAGEWATCH_MAX_EXTENSION_URLS"
    )


class EngineSettings(pydantic_settings.BaseSettings):
    """Limits for the alert merge engine and its backing store.

    Attributes:
        data_file: JSON file holding the key-value store.
        max_alerts: Alert log capacity.
        merge_window_ms: Two alerts for the same URL closer than this
            are merged.
        max_diff_items: Ceiling of each merged diff list.
    """

    model_config = pydantic_settings.SettingsConfigDict(populate_by_name=True)

    data_file: pathlib.Path = pydantic.Field(
        default=pathlib.Path(".data") / "pagewatch.json",
        validation_alias="PAGEWATCH_DATA_FILE",
    )
    max_alerts: int = pydantic.Field(
        default=50, ge=1, validation_alias="PAGEWATCH_MAX_ALERTS"
    )
    merge_window_ms: int = pydantic.Field(
        default=30000, ge=0, validation_alias="PAGEWATCH_MERGE_WINDOW_MS"
    )
    max_diff_items: int = pydantic.Field(
        default=40, ge=0, validation_alias="PAGEWATCH_MAX_DIFF_ITEMS"
    )


class ServerSettings(pydantic_settings.BaseSettings):
    """HTTP server binding and watch-session bookkeeping.

    Attributes:
        watch_retention_seconds: How long a finished watch session stays
            listed before it is forgotten.
    """

    model_config = pydantic_settings.SettingsConfigDict(populate_by_name=True)

    host: str = pydantic.Field(default="0.0.0.0", validation_alias="UVICORN_HOST")
    port: int = pydantic.Field(default=3001, validation_alias="UVICORN_PORT")
    environment: str = pydantic.Field(default="development", validation_alias="ENVIRONMENT")
    watch_retention_seconds: float = pydantic.Field(
        default=600, ge=0, validation_alias="PAGEWATCH_WATCH_RETENTION_SECONDS"
    )

    @property
    def is_production(self) -> bool:
        """Whether the server runs with ``ENVIRONMENT=production``."""
        return self.environment == "production"
