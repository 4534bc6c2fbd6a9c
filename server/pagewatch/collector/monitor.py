"""
Per-document lifecycle owner for the collector pipeline.

A ``PageMonitor`` owns exactly one evidence window and wires it to the
mutation collector and the flush gate.  Hosts (the Playwright observer
or any other feed) call:

- ``on_batch`` / ``ingest`` for each mutation callback,
- ``on_visibility_change`` when the document is shown or hidden,
- ``on_load_complete`` once the document finished loading,
- ``on_document_start`` when the tab loads a new document,
- ``update_page`` when the URL or title changes.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import pydantic

from pagewatch.collector import transport
from pagewatch.collector.flush_gate import Clock, FlushDecision, FlushGate, wall_clock_ms
from pagewatch.collector.mutations import MutationCollector
from pagewatch.collector.window import EvidenceWindow
from pagewatch.config import CollectorSettings
from pagewatch.models.dom import MutationRecord, PageInfo
from pagewatch.utils import logger

log = logger.create_logger("PageMonitor")

_record_adapter = pydantic.TypeAdapter(MutationRecord)


class PageMonitor:
    """Collector, window and flush gate for one monitored document."""

    def __init__(
        self,
        page: PageInfo | None = None,
        sender: transport.MessageSender | None = None,
        settings: CollectorSettings | None = None,
        clock: Clock = wall_clock_ms,
    ) -> None:
        self.page = page or PageInfo()
        self.window = EvidenceWindow(settings)
        self.collector = MutationCollector(self.window, self.page)
        self.gate = FlushGate(self.window, self.page, sender, clock)
        self._observing = False

    @property
    def observing(self) -> bool:
        return self._observing

    def update_page(self, url: str | None = None, title: str | None = None) -> None:
        if url is not None:
            self.page.url = url
        if title is not None:
            self.page.title = title

    # ==========================================================================
    # Host events
    # ==========================================================================

    def on_visibility_change(self, visible: bool) -> None:
        """Attach with a fresh window when shown; detach when hidden."""
        self.gate.cancel()
        self.window.reset()
        if self._observing != visible:
            log.debug("Observation " + ("started" if visible else "paused"), {"url": self.page.url})
        self._observing = visible

    def on_load_complete(self, now: float | None = None) -> None:
        self.gate.mark_load_complete(now)

    def on_document_start(self, url: str) -> None:
        """Start over for a new document in the same tab."""
        self.gate.cancel()
        self.gate.start_document()
        self.window.reset()
        self.update_page(url=url, title="")

    def on_batch(self, records: Sequence[MutationRecord]) -> bool:
        """Feed one batch; returns whether it was accepted."""
        if not self._observing:
            return False
        if self.collector.process_batch(records):
            self.gate.schedule()
        return True

    def ingest(self, raw_batch: Any) -> bool:
        """Validate a JSON-decoded batch from the host and feed it.

        Records are validated one by one; malformed ones are logged and
        skipped, the rest are fed.
        """
        if not isinstance(raw_batch, list):
            log.warn("Mutation batch is not a list", {"type": type(raw_batch).__name__})
            return False

        records: list[MutationRecord] = []
        skipped = 0
        for raw in raw_batch:
            try:
                records.append(_record_adapter.validate_python(raw))
            except pydantic.ValidationError:
                skipped += 1
        if skipped:
            log.warn("Malformed mutation records skipped", {"skipped": skipped, "kept": len(records)})
        if raw_batch and not records:
            return False
        return self.on_batch(records)

    # ==========================================================================
    # Shutdown
    # ==========================================================================

    def flush(self, now: float | None = None) -> FlushDecision:
        """Evaluate the window immediately, bypassing the debounce."""
        self.gate.cancel()
        return self.gate.flush(now)

    def close(self) -> None:
        self.gate.cancel()
        self._observing = False
