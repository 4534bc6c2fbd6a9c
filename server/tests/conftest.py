"""Shared fixtures for the test suite."""

from __future__ import annotations

from typing import Any

import pytest

from fixtures.builders import PAGE_URL, FakeClock
from pagewatch.collector.monitor import PageMonitor
from pagewatch.config import CollectorSettings, EngineSettings
from pagewatch.engine.alert_engine import AlertMergeEngine
from pagewatch.engine.badge import BadgeCounters
from pagewatch.models.dom import PageInfo
from pagewatch.store.inventory import Inventory
from pagewatch.store.kv import JsonFileStore


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def collector_settings() -> CollectorSettings:
    return CollectorSettings()


@pytest.fixture()
def monitor(clock: FakeClock, collector_settings: CollectorSettings) -> PageMonitor:
    """A visible, loaded and settled monitor for ``PAGE_URL``."""
    mon = PageMonitor(PageInfo(url=PAGE_URL, title="Example"), settings=collector_settings, clock=clock)
    mon.on_visibility_change(True)
    mon.on_load_complete(clock.now - collector_settings.settle_after_load_ms)
    return mon


@pytest.fixture()
def store(tmp_path) -> JsonFileStore:
    return JsonFileStore(tmp_path / "data" / "pagewatch.json")


@pytest.fixture()
def counters() -> BadgeCounters:
    return BadgeCounters()


@pytest.fixture()
def inventory(store: JsonFileStore, counters: BadgeCounters) -> Inventory:
    return Inventory(store, counters)


@pytest.fixture()
def engine(store: JsonFileStore, inventory: Inventory, counters: BadgeCounters, clock: FakeClock) -> AlertMergeEngine:
    return AlertMergeEngine(store, inventory, counters, EngineSettings(), clock=clock)


@pytest.fixture()
def extension_info() -> dict[str, Any]:
    """A raw extension report whose host permissions cover ``EXT_URL``."""
    return {
        "id": "ext-1",
        "name": "Helpful Toolbar",
        "version": "1.2.3",
        "enabled": True,
        "installType": "normal",
        "type": "extension",
        "permissions": ["tabs"],
        "hostPermissions": ["chrome-extension://abcdefghijklmnop/*", "https://*/*"],
    }
