"""
Alert merge engine: the single writer of the alert log.

``add_alert`` runs the full read-modify-write sequence under one
``asyncio.Lock`` so concurrent submissions never interleave:

1. normalise the payload,
2. attribute extension URLs to installed extensions,
3. merge into the most recent alert for the same URL inside the merge
   window, or insert at the front,
4. truncate to ``max_alerts``,
5. persist in one write and refresh the badge counter.

Storage failures are logged and swallowed; readers fall back to an
empty log.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any

from pagewatch.config import EngineSettings
from pagewatch.engine import attribution, merge
from pagewatch.engine.badge import BadgeCounters
from pagewatch.models.alert import Alert
from pagewatch.store.inventory import Inventory
from pagewatch.store.kv import ALERTS_KEY, JsonFileStore
from pagewatch.utils import logger
from pagewatch.utils.errors import get_error_message

log = logger.create_logger("AlertEngine")


class AlertMergeEngine:
    """Folds incoming alerts into the bounded, newest-first alert log."""

    def __init__(
        self,
        store: JsonFileStore,
        inventory: Inventory,
        counters: BadgeCounters,
        settings: EngineSettings | None = None,
        clock: Callable[[], float] = lambda: time.time() * 1000,
    ) -> None:
        self._store = store
        self._inventory = inventory
        self._counters = counters
        self._settings = settings or EngineSettings()
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get_alerts(self) -> list[Alert]:
        """Stored alerts, newest first; ``[]`` when storage is unreadable."""
        try:
            result = await self._store.get([ALERTS_KEY])
        except Exception as exc:
            log.warn("Failed to read alert log", {"error": get_error_message(exc)})
            return []
        raw = result.get(ALERTS_KEY)
        if not isinstance(raw, list):
            return []
        return [
            merge.normalize_alert(item, self._clock(), self._settings.max_diff_items)
            for item in raw
            if isinstance(item, dict)
        ]

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def _write(self, alerts: list[Alert]) -> bool:
        try:
            await self._store.set({ALERTS_KEY: [item.to_wire() for item in alerts]})
        except Exception as exc:
            log.warn("Failed to persist alert log", {"error": get_error_message(exc)})
            return False
        self._counters.alert_count = len(alerts)
        return True

    async def add_alert(self, payload: Any) -> Alert:
        """Normalise, attribute, merge and persist one alert payload.

        Returns the alert as stored (the merged record when a
        predecessor absorbed it).
        """
        settings = self._settings
        incoming = merge.normalize_alert(payload, self._clock(), settings.max_diff_items)

        async with self._lock:
            extensions = await self._inventory.get_entries()
            incoming.source_extensions = attribution.resolve_source_extensions(
                incoming.evidence.extension_urls, extensions
            )

            alerts = await self.get_alerts()
            index = merge.find_mergeable(alerts, incoming, settings.merge_window_ms)
            if index is not None:
                stored = merge.merge_alerts(alerts.pop(index), incoming, settings.max_diff_items)
                log.info("Alert merged", {"url": stored.url, "level": stored.level, "id": stored.id})
            else:
                stored = incoming
                log.info("Alert recorded", {"url": stored.url, "level": stored.level, "id": stored.id})
            alerts.insert(0, stored)
            del alerts[settings.max_alerts:]

            await self._write(alerts)
        return stored

    async def set_alerts(self, payload: Any) -> bool:
        """Replace the log (used by the viewer to delete single entries)."""
        items = payload if isinstance(payload, list) else []
        alerts = [
            merge.normalize_alert(item, self._clock(), self._settings.max_diff_items)
            for item in items
            if isinstance(item, dict)
        ]
        async with self._lock:
            return await self._write(alerts[: self._settings.max_alerts])

    async def clear_alerts(self) -> bool:
        async with self._lock:
            return await self._write([])

    async def hydrate(self) -> None:
        """Refresh the badge counter from storage."""
        self._counters.alert_count = len(await self.get_alerts())
