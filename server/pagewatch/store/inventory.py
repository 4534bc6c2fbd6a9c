"""
Installed-extension inventory.

Keeps an id → ``ExtensionRecord`` map under the ``extensions`` key.
The host browser reports its full list (``sync``) or single lifecycle
events (``upsert`` / ``remove``).  Extensions first seen after the
inventory was initialised are flagged ``is_new`` until ``clear_new``.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable
from typing import Any

import pydantic

from pagewatch.engine.badge import BadgeCounters
from pagewatch.models.inventory import ExtensionRecord
from pagewatch.store.kv import EXTENSIONS_KEY, INIT_KEY, JsonFileStore
from pagewatch.utils import logger
from pagewatch.utils.errors import get_error_message

log = logger.create_logger("Inventory")


def count_new(entries: dict[str, ExtensionRecord]) -> int:
    return sum(1 for entry in entries.values() if entry.is_new)


def normalize_extension_info(info: Any, is_new: bool, now_ms: float | None = None) -> ExtensionRecord | None:
    """Build a record from a raw host report; ``None`` when it is unusable."""
    if not isinstance(info, dict) or not info.get("id"):
        return None
    data = {key: value for key, value in info.items() if value is not None}
    data["isNew"] = is_new
    data["lastSeen"] = int(time.time() * 1000 if now_ms is None else now_ms)
    data.pop("is_new", None)
    data.pop("last_seen", None)
    try:
        return ExtensionRecord.model_validate(data)
    except pydantic.ValidationError as exc:
        log.warn("Ignoring malformed extension info", {"id": str(info.get("id")), "errors": exc.error_count()})
        return None


class Inventory:
    """Async CRUD over the extension inventory."""

    def __init__(self, store: JsonFileStore, counters: BadgeCounters, self_id: str = "") -> None:
        self._store = store
        self._counters = counters
        self._self_id = self_id
        self._lock = asyncio.Lock()

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get_state(self) -> tuple[dict[str, ExtensionRecord], bool]:
        """Return the stored records and whether the inventory was initialised."""
        try:
            result = await self._store.get([EXTENSIONS_KEY, INIT_KEY])
        except Exception as exc:
            log.warn("Failed to read inventory", {"error": get_error_message(exc)})
            return {}, False

        raw = result.get(EXTENSIONS_KEY)
        entries: dict[str, ExtensionRecord] = {}
        for ext_id, value in (raw.items() if isinstance(raw, dict) else ()):
            try:
                entries[str(ext_id)] = ExtensionRecord.model_validate(value)
            except pydantic.ValidationError:
                log.debug("Skipping malformed stored extension", {"id": str(ext_id)})
        return entries, bool(result.get(INIT_KEY, False))

    async def get_entries(self) -> list[ExtensionRecord]:
        entries, _ = await self.get_state()
        return list(entries.values())

    async def list_sorted(self) -> tuple[list[ExtensionRecord], int]:
        """Records sorted by name (case-insensitive) and the unseen count."""
        entries, _ = await self.get_state()
        ordered = sorted(entries.values(), key=lambda entry: entry.name.casefold())
        return ordered, count_new(entries)

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def _set_state(self, entries: dict[str, ExtensionRecord], initialized: bool = True) -> bool:
        try:
            await self._store.set({
                EXTENSIONS_KEY: {ext_id: entry.model_dump(mode="json", by_alias=True) for ext_id, entry in entries.items()},
                INIT_KEY: initialized,
            })
        except Exception as exc:
            log.warn("Failed to write inventory", {"error": get_error_message(exc)})
            return False
        self._counters.new_count = count_new(entries)
        return True

    def _accepts(self, info: Any) -> bool:
        if not isinstance(info, dict):
            return False
        if info.get("type", "extension") != "extension":
            return False
        return not (self._self_id and info.get("id") == self._self_id)

    async def sync(self, infos: Iterable[Any]) -> dict[str, ExtensionRecord]:
        """Replace the inventory with the host's full extension list."""
        async with self._lock:
            stored, initialized = await self.get_state()
            next_entries: dict[str, ExtensionRecord] = {}
            for info in infos:
                if not self._accepts(info):
                    continue
                prev = stored.get(str(info.get("id")))
                record = normalize_extension_info(info, prev.is_new if prev else initialized)
                if record is not None:
                    next_entries[record.id] = record
            await self._set_state(next_entries, True)
        log.info("Inventory synced", {"extensions": len(next_entries), "new": count_new(next_entries)})
        return next_entries

    async def upsert(self, info: Any, is_new: bool = True) -> ExtensionRecord | None:
        """Insert or refresh one extension, keeping an existing ``is_new`` flag."""
        if not self._accepts(info):
            return None
        async with self._lock:
            stored, _ = await self.get_state()
            prev = stored.get(str(info.get("id")))
            record = normalize_extension_info(info, prev.is_new if prev else is_new)
            if record is None:
                return None
            stored[record.id] = record
            await self._set_state(stored, True)
        return record

    async def remove(self, ext_id: str) -> bool:
        async with self._lock:
            stored, initialized = await self.get_state()
            if ext_id not in stored:
                return False
            del stored[ext_id]
            return await self._set_state(stored, initialized)

    async def clear_new(self) -> None:
        """Mark every extension as seen."""
        async with self._lock:
            stored, _ = await self.get_state()
            cleared = {ext_id: entry.model_copy(update={"is_new": False}) for ext_id, entry in stored.items()}
            await self._set_state(cleared, True)

    async def hydrate(self) -> None:
        """Refresh the badge counter from storage."""
        entries, _ = await self.get_state()
        self._counters.new_count = count_new(entries)
