"""
Flush gate: debounced evaluation of the evidence window.

State machine::

    idle --schedule()--> pending --quiet window elapses--> evaluate --> idle
                 ^            |
                 +--cancel()--+      (schedule() while pending re-arms the timer)

Evaluation discards the window unless every check passes:

1. ``empty``: no recorded changes and no extension URL.
2. ``unsettled``: page load has not settled and the level is not high.
3. ``low``: nothing actionable.
4. ``no_security_impact``: no concrete security evidence, level not high.
5. ``rate_limited``: a non-high alert within the minimum report interval.

Whatever the outcome, the window is reset; evidence never carries over
past a flush decision.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from collections.abc import Callable
from typing import Literal

from pagewatch.collector import classifier, transport
from pagewatch.collector.window import EvidenceWindow
from pagewatch.models.alert import Alert, AlertLevel
from pagewatch.models.dom import PageInfo
from pagewatch.utils import logger, url

log = logger.create_logger("FlushGate")

GateState = Literal["idle", "pending"]
DiscardReason = Literal["empty", "unsettled", "low", "no_security_impact", "rate_limited"]

Clock = Callable[[], float]


def wall_clock_ms() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000


@dataclasses.dataclass(frozen=True)
class FlushDecision:
    """Outcome of one evaluation."""

    emitted: bool
    level: AlertLevel
    discarded_because: DiscardReason | None = None
    alert: Alert | None = None


class FlushGate:
    """Decides when a window becomes an alert and hands it to the sender."""

    def __init__(
        self,
        window: EvidenceWindow,
        page: PageInfo,
        sender: transport.MessageSender | None = None,
        clock: Clock = wall_clock_ms,
    ) -> None:
        self._window = window
        self._page = page
        self._sender = sender
        self._clock = clock
        self._timer: asyncio.TimerHandle | None = None
        self._settled_at: float | None = None
        self._last_report: float | None = None

    # ==========================================================================
    # State
    # ==========================================================================

    @property
    def state(self) -> GateState:
        return "pending" if self._timer is not None else "idle"

    @property
    def last_report(self) -> float | None:
        return self._last_report

    def mark_load_complete(self, now: float | None = None) -> None:
        """Start the settle delay from *now* (defaults to the clock)."""
        at = self._clock() if now is None else now
        self._settled_at = at + self._window.settings.settle_after_load_ms

    def start_document(self) -> None:
        """Forget the settle point and the last report; a new document is loading."""
        self._settled_at = None
        self._last_report = None

    def is_settled(self, now: float) -> bool:
        return self._settled_at is not None and now >= self._settled_at

    # ==========================================================================
    # Debounce
    # ==========================================================================

    def schedule(self) -> None:
        """Arm (or re-arm) the quiet-window timer on the running loop."""
        self.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("No running event loop, flush not scheduled")
            return
        delay = self._window.settings.quiet_window_ms / 1000
        self._timer = loop.call_later(delay, self._on_quiet)

    def cancel(self) -> None:
        """Disarm a pending timer; the window is left untouched."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_quiet(self) -> None:
        self._timer = None
        self.flush()

    # ==========================================================================
    # Evaluation
    # ==========================================================================

    def flush(self, now: float | None = None) -> FlushDecision:
        """Evaluate the window, emit at most one alert and reset the window."""
        at = self._clock() if now is None else now
        try:
            decision = self._evaluate(at)
        finally:
            self._window.reset()

        if decision.emitted and decision.alert is not None:
            self._last_report = at
            log.info(
                "Alert emitted",
                {"url": decision.alert.url, "level": decision.level, "reasons": decision.alert.reasons},
            )
            if self._sender is not None:
                transport.send_and_forget(
                    self._sender,
                    {"type": "pageMutation", "payload": decision.alert.to_wire()},
                )
        else:
            log.debug("Window discarded", {"reason": decision.discarded_because, "level": decision.level})
        return decision

    def _evaluate(self, now: float) -> FlushDecision:
        window = self._window
        result = classifier.classify(window)
        level = result.level

        def discard(reason: DiscardReason) -> FlushDecision:
            return FlushDecision(emitted=False, level=level, discarded_because=reason)

        if window.total_changes == 0 and not window.has_extension_urls:
            return discard("empty")
        if not self.is_settled(now) and level != "high":
            return discard("unsettled")
        if level == "low":
            return discard("low")
        if not window.has_security_impact() and level != "high":
            return discard("no_security_impact")
        if (
            level != "high"
            and self._last_report is not None
            and now - self._last_report < window.settings.min_report_interval_ms
        ):
            return discard("rate_limited")

        return FlushDecision(emitted=True, level=level, alert=self._build_alert(now, result))

    def _build_alert(self, now: float, result: classifier.Classification) -> Alert:
        window = self._window
        hostname = url.extract_hostname(self._page.url)
        return Alert(
            url=self._page.url,
            hostname=hostname,
            title=self._page.title or hostname,
            timestamp=int(now),
            level=result.level,
            reasons=list(result.reasons),
            counts=window.counts,
            top_tags=window.top_tags(),
            evidence=window.export_evidence(),
            security=window.security,
            diff=window.diff,
        )
