"""
Message router for the PageWatch message protocol.

Every message is a JSON object with a ``type`` discriminator.  The
router is shared by the HTTP endpoint and by in-process senders (watch
sessions running inside the server), so both paths produce identical
responses.  Unknown types return ``None``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from pagewatch.engine.alert_engine import AlertMergeEngine
from pagewatch.engine.badge import BadgeCounters
from pagewatch.store.inventory import Inventory
from pagewatch.utils import logger

log = logger.create_logger("Messages")

Handler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class MessageRouter:
    """Dispatches protocol messages to the alert engine and inventory."""

    def __init__(self, engine: AlertMergeEngine, inventory: Inventory, counters: BadgeCounters) -> None:
        self._engine = engine
        self._inventory = inventory
        self._counters = counters
        self._handlers: dict[str, Handler] = {
            "pageMutation": self._page_mutation,
            "getAlerts": self._get_alerts,
            "setAlerts": self._set_alerts,
            "clearAlerts": self._clear_alerts,
            "getList": self._get_list,
            "syncInventory": self._sync_inventory,
            "extensionInstalled": self._extension_installed,
            "extensionEnabled": self._extension_changed,
            "extensionDisabled": self._extension_changed,
            "extensionUninstalled": self._extension_uninstalled,
            "clearNew": self._clear_new,
            "getBadge": self._get_badge,
        }

    @property
    def message_types(self) -> list[str]:
        return list(self._handlers)

    async def handle(self, message: Any) -> dict[str, Any] | None:
        """Answer one message, or ``None`` for unknown/missing types."""
        if not isinstance(message, dict):
            return None
        msg_type = message.get("type")
        handler = self._handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            log.debug("Unknown message type", {"type": str(message.get("type"))})
            return None
        return await handler(message)

    async def __call__(self, message: dict[str, Any]) -> dict[str, Any] | None:
        return await self.handle(message)

    # ==========================================================================
    # Alerts
    # ==========================================================================

    async def _page_mutation(self, message: dict[str, Any]) -> dict[str, Any]:
        await self._engine.add_alert(message.get("payload") or {})
        return {"ok": True}

    async def _get_alerts(self, message: dict[str, Any]) -> dict[str, Any]:
        alerts = await self._engine.get_alerts()
        return {"alerts": [item.to_wire() for item in alerts]}

    async def _set_alerts(self, message: dict[str, Any]) -> dict[str, Any]:
        await self._engine.set_alerts(message.get("alerts"))
        return {"ok": True}

    async def _clear_alerts(self, message: dict[str, Any]) -> dict[str, Any]:
        await self._engine.clear_alerts()
        return {"ok": True}

    # ==========================================================================
    # Inventory
    # ==========================================================================

    async def _get_list(self, message: dict[str, Any]) -> dict[str, Any]:
        extensions, new_count = await self._inventory.list_sorted()
        return {
            "extensions": [entry.model_dump(mode="json", by_alias=True) for entry in extensions],
            "newCount": new_count,
        }

    async def _sync_inventory(self, message: dict[str, Any]) -> dict[str, Any]:
        raw = message.get("extensions")
        entries = await self._inventory.sync(raw if isinstance(raw, list) else [])
        return {"ok": True, "newCount": sum(1 for entry in entries.values() if entry.is_new)}

    async def _extension_installed(self, message: dict[str, Any]) -> dict[str, Any]:
        await self._inventory.upsert(message.get("extension"), is_new=True)
        return {"ok": True}

    async def _extension_changed(self, message: dict[str, Any]) -> dict[str, Any]:
        await self._inventory.upsert(message.get("extension"), is_new=False)
        return {"ok": True}

    async def _extension_uninstalled(self, message: dict[str, Any]) -> dict[str, Any]:
        ext_id = message.get("id")
        if isinstance(ext_id, str) and ext_id:
            await self._inventory.remove(ext_id)
        return {"ok": True}

    async def _clear_new(self, message: dict[str, Any]) -> dict[str, Any]:
        await self._inventory.clear_new()
        return {"ok": True}

    async def _get_badge(self, message: dict[str, Any]) -> dict[str, Any]:
        badge = self._counters.badge
        return {"text": badge.text, "color": badge.color}
