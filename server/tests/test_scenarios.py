"""End-to-end runs from page mutations to the stored alert log."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from fixtures.builders import EXT_URL, PAGE_URL, FakeClock, added, element
from pagewatch.collector import classifier
from pagewatch.collector.flush_gate import FlushDecision
from pagewatch.collector.monitor import PageMonitor
from pagewatch.config import CollectorSettings
from pagewatch.engine.alert_engine import AlertMergeEngine
from pagewatch.engine.badge import BadgeCounters
from pagewatch.models.dom import PageInfo
from pagewatch.routes.messages import MessageRouter
from pagewatch.store.inventory import Inventory


@pytest.fixture()
def router(engine: AlertMergeEngine, inventory: Inventory, counters: BadgeCounters) -> MessageRouter:
    return MessageRouter(engine, inventory, counters)


@pytest.fixture()
def page_monitor(router: MessageRouter, clock: FakeClock) -> PageMonitor:
    settings = CollectorSettings()
    mon = PageMonitor(PageInfo(url=PAGE_URL, title="Example"), router, settings, clock=clock)
    mon.on_visibility_change(True)
    mon.on_load_complete(clock.now - settings.settle_after_load_ms)
    return mon


async def _settle() -> None:
    """Wait for every fire-and-forget delivery to finish."""
    pending = [task for task in asyncio.all_tasks() if task is not asyncio.current_task()]
    await asyncio.gather(*pending)


async def _flush(monitor: PageMonitor) -> FlushDecision:
    decision = monitor.flush()
    await _settle()
    return decision


async def _alerts(router: MessageRouter) -> list[dict[str, Any]]:
    response = await router.handle({"type": "getAlerts"})
    return response["alerts"]


class TestScenarios:
    """Collector, gate, router and engine wired together."""

    def test_empty_window_emits_nothing(self, page_monitor: PageMonitor, router: MessageRouter) -> None:
        async def scenario() -> tuple[FlushDecision, list[dict[str, Any]]]:
            decision = await _flush(page_monitor)
            return decision, await _alerts(router)

        decision, alerts = asyncio.run(scenario())
        assert not decision.emitted
        assert decision.discarded_because == "empty"
        assert page_monitor.window.total_changes == 0
        assert alerts == []

    def test_extension_script_is_high_and_attributed(
        self, page_monitor: PageMonitor, router: MessageRouter, extension_info: dict[str, Any]
    ) -> None:
        async def scenario() -> tuple[FlushDecision, list[dict[str, Any]]]:
            await router.handle({"type": "syncInventory", "extensions": [extension_info]})
            page_monitor.on_batch([added(element("script", {"src": EXT_URL}))])
            decision = await _flush(page_monitor)
            return decision, await _alerts(router)

        decision, alerts = asyncio.run(scenario())
        assert decision.level == "high"
        assert classifier.REASON_EXTENSION_URLS in decision.alert.reasons
        assert classifier.REASON_SCRIPTS in decision.alert.reasons

        assert len(alerts) == 1
        stored = alerts[0]
        assert stored["level"] == "high"
        assert stored["evidence"]["extensionUrls"] == [EXT_URL]
        assert [ext["id"] for ext in stored["sourceExtensions"]] == ["ext-1"]

    def test_medium_windows_merge_then_rate_limit(
        self, page_monitor: PageMonitor, router: MessageRouter, clock: FakeClock
    ) -> None:
        def feed() -> None:
            page_monitor.on_batch([added(element("script", {"src": "https://cdn.test/app.js"}))])

        async def scenario() -> tuple[list[FlushDecision], str, list[dict[str, Any]]]:
            decisions = []
            feed()
            decisions.append(await _flush(page_monitor))
            first_id = (await _alerts(router))[0]["id"]
            clock.advance(10000)
            feed()
            decisions.append(await _flush(page_monitor))
            clock.advance(5000)
            feed()
            decisions.append(await _flush(page_monitor))
            return decisions, first_id, await _alerts(router)

        decisions, first_id, alerts = asyncio.run(scenario())
        assert [d.level for d in decisions] == ["medium", "medium", "medium"]
        assert [d.emitted for d in decisions] == [True, True, False]
        assert decisions[2].discarded_because == "rate_limited"

        assert len(alerts) == 1
        merged = alerts[0]
        assert merged["id"] == first_id
        assert merged["counts"]["added"] == 2
        assert merged["evidence"]["scriptAdds"] == 2
        assert merged["timestamp"] == decisions[1].alert.timestamp
        assert len(merged["security"]["scripts"]) == 2

    def test_saturating_batch_counts_one_overflow(self, page_monitor: PageMonitor, router: MessageRouter) -> None:
        records = [added(element("script", {"src": EXT_URL})) for _ in range(3001)]

        async def scenario() -> tuple[FlushDecision, list[dict[str, Any]]]:
            page_monitor.on_batch(records)
            window = page_monitor.window
            assert window.saturated
            assert window.diff.overflow.added == 1
            assert window.counts.total == 0
            assert not window.has_extension_urls
            decision = await _flush(page_monitor)
            return decision, await _alerts(router)

        decision, alerts = asyncio.run(scenario())
        assert decision.discarded_because == "empty"
        assert alerts == []
