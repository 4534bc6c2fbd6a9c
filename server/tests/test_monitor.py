"""Tests for pagewatch.collector.monitor: host lifecycle events."""

from __future__ import annotations

import asyncio

from fixtures.builders import EXT_URL, PAGE_URL, FakeClock, RecordingSender, added, element
from pagewatch.collector.monitor import PageMonitor
from pagewatch.config import CollectorSettings
from pagewatch.models.dom import PageInfo

RAW_BATCH = [
    {
        "type": "childList",
        "target": {"nodeType": "element", "tag": "BODY"},
        "addedNodes": [
            {
                "nodeType": "element",
                "tag": "SCRIPT",
                "attributes": {"src": EXT_URL},
                "classList": ["injected"],
                "nthOfType": 2,
                "parent": {"nodeType": "element", "tag": "head"},
            }
        ],
        "removedNodes": [],
        "attributeName": None,
        "oldValue": None,
    }
]


class TestVisibility:
    """Observation follows document visibility."""

    def test_starts_hidden(self) -> None:
        monitor = PageMonitor(PageInfo(url=PAGE_URL))
        assert not monitor.observing
        assert monitor.on_batch([added(element("script"))]) is False
        assert monitor.window.total_changes == 0

    def test_hidden_resets_window(self, monitor: PageMonitor) -> None:
        monitor.on_batch([added(element("iframe"))])
        assert monitor.window.total_changes == 1
        monitor.on_visibility_change(False)
        assert not monitor.observing
        assert monitor.window.total_changes == 0

    def test_visible_starts_fresh(self, monitor: PageMonitor) -> None:
        monitor.on_batch([added(element("iframe"))])
        monitor.on_visibility_change(True)
        assert monitor.observing
        assert monitor.window.total_changes == 0

    def test_hidden_cancels_pending_flush(self) -> None:
        sender = RecordingSender()

        async def scenario() -> str:
            settings = CollectorSettings(quiet_window_ms=20)
            monitor = PageMonitor(PageInfo(url=PAGE_URL), sender, settings)
            monitor.on_visibility_change(True)
            monitor.on_batch([added(element("script", {"src": EXT_URL}))])
            pending = monitor.gate.state
            monitor.on_visibility_change(False)
            await asyncio.sleep(0.08)
            return pending

        assert asyncio.run(scenario()) == "pending"
        assert sender.messages == []


class TestIngest:
    """Raw JSON batches from the page."""

    def test_valid_batch(self, monitor: PageMonitor) -> None:
        assert monitor.ingest(RAW_BATCH) is True
        window = monitor.window
        assert window.counts.added == 1
        assert list(window.evidence.extension_urls) == [EXT_URL]
        assert window.diff.added[0].selector == "head > script.injected:nth-of-type(2)"

    def test_type_only_records_still_count_towards_ceiling(self, clock: FakeClock) -> None:
        settings = CollectorSettings(max_mutations_per_window=2)
        monitor = PageMonitor(PageInfo(url=PAGE_URL), settings=settings, clock=clock)
        monitor.on_visibility_change(True)
        monitor.ingest([{"type": "childList"}, {"type": "attributes"}, {"type": "childList"}])
        assert monitor.window.saturated
        assert monitor.window.diff.overflow.added == 1

    def test_malformed_record_skipped_rest_kept(self, monitor: PageMonitor) -> None:
        clobbered_form = {
            "type": "childList",
            "target": {"nodeType": "element", "tag": "body"},
            "addedNodes": [{"nodeType": "element", "tag": "form", "id": {}}],
        }
        assert monitor.ingest([*RAW_BATCH, clobbered_form]) is True
        window = monitor.window
        assert list(window.evidence.extension_urls) == [EXT_URL]
        assert window.counts.added == 1

    def test_malformed_batch_dropped(self, monitor: PageMonitor) -> None:
        assert monitor.ingest([{"type": "bogus"}]) is False
        assert monitor.ingest("not a list") is False
        assert monitor.window.total_changes == 0


class TestDocumentLifecycle:
    """Load, navigation and shutdown."""

    def test_document_start_clears_settle(self, monitor: PageMonitor, clock: FakeClock) -> None:
        assert monitor.gate.is_settled(clock.now)
        monitor.on_batch([added(element("iframe"))])
        monitor.on_document_start("https://example.com/next")

        assert not monitor.gate.is_settled(clock.now)
        assert monitor.window.total_changes == 0
        assert monitor.page.url == "https://example.com/next"
        assert monitor.page.title == ""

    def test_document_start_forgets_last_report(self, monitor: PageMonitor, clock: FakeClock) -> None:
        monitor.on_batch([added(element("iframe", {"src": "https://ads.test/frame"}))])
        assert monitor.flush().emitted

        monitor.on_document_start("https://other.example/")
        monitor.on_visibility_change(True)
        monitor.on_load_complete(clock.now - monitor.window.settings.settle_after_load_ms)
        clock.advance(4000)
        monitor.on_batch([added(element("iframe", {"src": "https://ads.test/frame"}))])

        decision = monitor.flush()
        assert decision.level == "medium"
        assert decision.emitted

    def test_update_page(self, monitor: PageMonitor) -> None:
        monitor.update_page(title="Checkout")
        assert (monitor.page.url, monitor.page.title) == (PAGE_URL, "Checkout")
        # The collector and gate share the same page object.
        assert monitor.collector.page_origin == "https://example.com"

    def test_flush_now(self, monitor: PageMonitor) -> None:
        monitor.on_batch([added(element("script", {"src": EXT_URL}))])
        decision = monitor.flush()
        assert decision.emitted
        assert decision.alert.evidence.extension_urls == [EXT_URL]

    def test_close_stops_observing(self, monitor: PageMonitor) -> None:
        monitor.close()
        assert not monitor.observing
        assert monitor.on_batch([added(element("script"))]) is False
