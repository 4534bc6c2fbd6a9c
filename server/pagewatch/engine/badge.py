"""Badge projection: a tiny summary of unseen inventory changes and alerts."""

from __future__ import annotations

import dataclasses

NEW_EXTENSIONS_COLOUR = "#E76F51"
ALERTS_COLOUR = "#D97706"


@dataclasses.dataclass(frozen=True)
class Badge:
    text: str
    color: str


def compute_badge(new_count: int, alert_count: int) -> Badge:
    """New extensions take precedence over stored alerts."""
    if new_count > 0:
        return Badge(text=str(new_count), color=NEW_EXTENSIONS_COLOUR)
    if alert_count > 0:
        return Badge(text="!", color=ALERTS_COLOUR)
    return Badge(text="", color=NEW_EXTENSIONS_COLOUR)


@dataclasses.dataclass
class BadgeCounters:
    """Cached counters refreshed by every inventory or alert-log write."""

    new_count: int = 0
    alert_count: int = 0

    @property
    def badge(self) -> Badge:
        return compute_badge(self.new_count, self.alert_count)
