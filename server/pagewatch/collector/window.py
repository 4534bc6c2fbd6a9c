"""
Evidence window: the per-document accumulator between two flushes.

One ``EvidenceWindow`` exists per monitored document.  Only the
mutation collector writes to it; the flush gate reads it, turns it
into an ``Alert`` and calls ``reset()``.  Every list is capped and
every entry that does not fit is counted in the matching overflow
counter instead.
"""

from __future__ import annotations

import dataclasses
from typing import Any

from pagewatch.config import CollectorSettings
from pagewatch.models import alert


@dataclasses.dataclass
class Evidence:
    """Structural signals counted during the window."""

    # dict keeps insertion order and acts as an ordered set.
    extension_urls: dict[str, None] = dataclasses.field(default_factory=dict)
    script_adds: int = 0
    inline_scripts: int = 0
    inline_handlers: int = 0
    iframe_adds: int = 0
    form_adds: int = 0
    link_changes: int = 0
    src_changes: int = 0
    action_changes: int = 0


class EvidenceWindow:
    """Counts, evidence, diff and security lists for the current window."""

    def __init__(self, settings: CollectorSettings | None = None) -> None:
        self._settings = settings or CollectorSettings()
        self.reset()

    @property
    def settings(self) -> CollectorSettings:
        return self._settings

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    def reset(self) -> None:
        """Drop everything gathered so far and start an empty window."""
        self.counts = alert.AlertCounts()
        self.evidence = Evidence()
        self.diff = alert.AlertDiff()
        self.security = alert.SecurityReport()
        self.tag_counts: dict[str, int] = {}
        self.mutations_seen = 0
        self.saturated = False

    # ==========================================================================
    # Recording
    # ==========================================================================

    def record_detail(self, category: str, entry: Any) -> bool:
        """Append *entry* to diff list *category*, or count it as overflow.

        Returns ``True`` when the entry was stored.
        """
        entries: list[Any] = getattr(self.diff, category)
        if len(entries) < self._settings.max_detail_entries:
            entries.append(entry)
            return True
        overflow = self.diff.overflow
        setattr(overflow, category, getattr(overflow, category) + 1)
        return False

    def push_security(self, category: str, entry: Any) -> bool:
        """Append *entry* to security list *category*, or count it as overflow."""
        entries: list[Any] = getattr(self.security, category)
        if len(entries) < self._settings.max_security_items:
            entries.append(entry)
            return True
        overflow = self.security.overflow
        setattr(overflow, category, getattr(overflow, category) + 1)
        return False

    def record_extension_url(self, value: str) -> None:
        """Remember an extension URL, keeping at most ``max_extension_urls``."""
        urls = self.evidence.extension_urls
        if value in urls or len(urls) >= self._settings.max_extension_urls:
            return
        urls[value] = None

    def track_tag(self, tag: str) -> None:
        tag = (tag or "").lower()
        if tag:
            self.tag_counts[tag] = self.tag_counts.get(tag, 0) + 1

    # ==========================================================================
    # Derived views
    # ==========================================================================

    @property
    def total_changes(self) -> int:
        return self.counts.total

    @property
    def has_extension_urls(self) -> bool:
        return bool(self.evidence.extension_urls)

    def has_security_impact(self) -> bool:
        """Whether anything concrete was captured beyond raw counts."""
        return self.security.has_items() or self.has_extension_urls

    def top_tags(self, limit: int = 3) -> list[alert.TopTag]:
        """Most frequently added tags, ties broken by first appearance."""
        ranked = sorted(self.tag_counts.items(), key=lambda item: item[1], reverse=True)
        return [alert.TopTag(tag=tag, count=count) for tag, count in ranked[:limit]]

    def export_evidence(self, max_urls: int = 3) -> alert.AlertEvidence:
        """Project the evidence counters into the exported alert shape."""
        ev = self.evidence
        return alert.AlertEvidence(
            extension_urls=list(ev.extension_urls)[:max_urls],
            script_adds=ev.script_adds,
            inline_scripts=ev.inline_scripts,
            inline_handlers=ev.inline_handlers,
            iframe_adds=ev.iframe_adds,
            form_adds=ev.form_adds,
            link_changes=ev.link_changes,
            src_changes=ev.src_changes,
            action_changes=ev.action_changes,
        )
