"""
Severity classification of an evidence window.

Pure functions only.  Rules are evaluated in a fixed order; each rule
can only raise the level and contributes at most one reason, so adding
evidence never lowers the result.
"""

from __future__ import annotations

import dataclasses

from pagewatch.collector.window import EvidenceWindow
from pagewatch.models.alert import ALERT_LEVELS, AlertLevel

MAX_REASONS = 6

REASON_EXTENSION_URLS = "Extension resource URLs were found on the page."
REASON_SCRIPTS = "Scripts were injected into the page."
REASON_IFRAMES = "Iframes were added to the page."
REASON_LINKS = "Links or media sources were changed."
REASON_FORM_ACTIONS = "Form actions were changed."
REASON_INLINE_HANDLERS = "Inline event handlers were added."
REASON_VOLUME = "Many elements were added or removed."


def level_rank(level: str) -> int:
    """Numeric rank of *level*; unknown values rank as ``low``."""
    try:
        return ALERT_LEVELS.index(level)  # type: ignore[arg-type]
    except ValueError:
        return 0


def max_level(a: str, b: str) -> AlertLevel:
    """The more severe of two levels."""
    return ALERT_LEVELS[max(level_rank(a), level_rank(b))]


@dataclasses.dataclass(frozen=True)
class Classification:
    """Derived severity and the reasons that produced it."""

    level: AlertLevel
    reasons: tuple[str, ...]


def classify(window: EvidenceWindow) -> Classification:
    """Derive the level and human-readable reasons for *window*."""
    evidence = window.evidence
    level: AlertLevel = "low"
    reasons: list[str] = []

    def raise_to(target: AlertLevel, reason: str) -> None:
        nonlocal level
        level = max_level(level, target)
        reasons.append(reason)

    if evidence.extension_urls:
        raise_to("high", REASON_EXTENSION_URLS)
    if evidence.script_adds > 0 or evidence.inline_scripts > 0:
        raise_to("medium", REASON_SCRIPTS)
    if evidence.iframe_adds > 0:
        raise_to("medium", REASON_IFRAMES)
    if evidence.link_changes > 0 or evidence.src_changes > 0:
        raise_to("medium", REASON_LINKS)
    if evidence.action_changes > 0:
        raise_to("medium", REASON_FORM_ACTIONS)
    if evidence.inline_handlers > 0:
        raise_to("medium", REASON_INLINE_HANDLERS)

    # Volume adds a reason without escalating.
    if window.counts.added + window.counts.removed >= window.settings.change_threshold:
        raise_to("low", REASON_VOLUME)

    return Classification(level=level, reasons=tuple(reasons[:MAX_REASONS]))
