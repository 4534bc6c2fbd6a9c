"""
Alert normalisation and near-duplicate merging.

``normalize_alert`` accepts anything a sender might post (partial
dicts, wrong types, ``None``) and always returns a well-formed
``Alert``: missing counts become zeros, missing lists become empty,
malformed list entries are skipped and every list is re-capped on the
way in.

``merge_alerts`` folds a newer alert for the same URL into its
predecessor.  Lists that get cut by a ceiling add the number of dropped
entries to the category's overflow counter.
"""

from __future__ import annotations

import math
import secrets
import time
from collections.abc import Iterable, Sequence
from typing import Any, TypeVar

import pydantic

from pagewatch.collector.classifier import MAX_REASONS, max_level
from pagewatch.models import alert
from pagewatch.utils import logger
from pagewatch.utils.serialization import snake_to_camel

log = logger.create_logger("AlertMerge")

MAX_TOP_TAGS = 3
MAX_EXTENSION_URLS = 3
DEFAULT_MAX_DIFF_ITEMS = 40

SECURITY_LIMITS = {
    "scripts": 20,
    "iframes": 10,
    "forms": 10,
    "inputs": 10,
    "url_changes": 10,
    "action_changes": 10,
}

_DIFF_MODELS: dict[str, type[alert.WireModel]] = {
    "added": alert.AddedEntry,
    "removed": alert.RemovedEntry,
    "attributes": alert.AttributeEntry,
    "text": alert.TextEntry,
}

_SECURITY_MODELS: dict[str, type[alert.WireModel]] = {
    "scripts": alert.ScriptEntry,
    "iframes": alert.IframeEntry,
    "forms": alert.FormEntry,
    "inputs": alert.InputEntry,
    "url_changes": alert.UrlChangeEntry,
    "action_changes": alert.ActionChangeEntry,
}

M = TypeVar("M", bound=pydantic.BaseModel)


# ── Coercion helpers ────────────────────────────────────────────


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, (list, tuple)) else []


def _as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return default
        return int(parsed) if math.isfinite(parsed) else default
    return default


def _as_str(value: Any, default: str = "") -> str:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (str, int, float)):
        return str(value)
    return default


def _field(data: dict[str, Any], name: str) -> Any:
    """Read *name* from *data* under its camelCase or snake_case key."""
    camel = snake_to_camel(name)
    if camel in data:
        return data[camel]
    return data.get(name)


def _unique(values: Iterable[str], limit: int) -> list[str]:
    """De-duplicate preserving first occurrence, then cap."""
    return list(dict.fromkeys(values))[:limit]


def _entries(model: type[M], raw: Any) -> list[M]:
    """Validate each list item as *model*, skipping malformed ones."""
    out: list[M] = []
    for item in _as_list(raw):
        if isinstance(item, model):
            out.append(item)
            continue
        if not isinstance(item, dict):
            continue
        try:
            out.append(model.model_validate(item))
        except pydantic.ValidationError:
            log.debug("Skipping malformed entry", {"model": model.__name__})
    return out


def _capped(items: list[M], limit: int) -> tuple[list[M], int]:
    """Cut *items* to *limit*, returning the kept list and the dropped count."""
    return items[:limit], max(0, len(items) - limit)


def new_alert_id(now_ms: float | None = None) -> str:
    """Time-prefixed random id, e.g. ``1767225600000-9f2c1a7e``."""
    stamp = int(time.time() * 1000 if now_ms is None else now_ms)
    return f"{stamp}-{secrets.token_hex(4)}"


# ── Normalisation ───────────────────────────────────────────────


def _normalize_counts(raw: Any) -> alert.AlertCounts:
    data = _as_dict(raw)
    return alert.AlertCounts(**{name: max(0, _as_int(_field(data, name))) for name in alert.AlertCounts.model_fields})


def _normalize_evidence(raw: Any) -> alert.AlertEvidence:
    data = _as_dict(raw)
    urls = [u for u in (_as_str(v) for v in _as_list(_field(data, "extension_urls"))) if u]
    counters = {
        name: max(0, _as_int(_field(data, name)))
        for name in alert.AlertEvidence.model_fields
        if name != "extension_urls"
    }
    return alert.AlertEvidence(extension_urls=_unique(urls, MAX_EXTENSION_URLS), **counters)


def _normalize_diff(raw: Any, max_items: int) -> alert.AlertDiff:
    data = _as_dict(raw)
    overflow_raw = _as_dict(_field(data, "overflow"))
    lists: dict[str, list[Any]] = {}
    overflow: dict[str, int] = {}
    for category, model in _DIFF_MODELS.items():
        kept, dropped = _capped(_entries(model, _field(data, category)), max_items)
        lists[category] = kept
        overflow[category] = max(0, _as_int(_field(overflow_raw, category))) + dropped
    return alert.AlertDiff(**lists, overflow=alert.DiffOverflow(**overflow))


def _normalize_security(raw: Any) -> alert.SecurityReport:
    data = _as_dict(raw)
    overflow_raw = _as_dict(_field(data, "overflow"))
    lists: dict[str, list[Any]] = {}
    overflow: dict[str, int] = {}
    for category, model in _SECURITY_MODELS.items():
        kept, dropped = _capped(_entries(model, _field(data, category)), SECURITY_LIMITS[category])
        lists[category] = kept
        overflow[category] = max(0, _as_int(_field(overflow_raw, category))) + dropped
    return alert.SecurityReport(
        **lists,
        inline_handlers=max(0, _as_int(_field(data, "inline_handlers"))),
        overflow=alert.SecurityOverflow(**overflow),
    )


def _dedupe_extensions(entries: Iterable[alert.SourceExtension]) -> list[alert.SourceExtension]:
    by_id: dict[str, alert.SourceExtension] = {}
    for entry in entries:
        by_id[entry.id] = entry
    return list(by_id.values())


def normalize_alert(
    payload: Any,
    now_ms: float | None = None,
    max_diff_items: int = DEFAULT_MAX_DIFF_ITEMS,
) -> alert.Alert:
    """Coerce an arbitrary payload into a well-formed ``Alert``; never raises."""
    if isinstance(payload, alert.Alert):
        payload = payload.to_wire()
    data = _as_dict(payload)
    now = time.time() * 1000 if now_ms is None else now_ms

    url = _as_str(data.get("url"))
    hostname = _as_str(data.get("hostname"))
    level = data.get("level")
    timestamp = _as_int(data.get("timestamp"))

    reasons = [r for r in (_as_str(v) for v in _as_list(data.get("reasons"))) if r]

    return alert.Alert(
        id=_as_str(data.get("id")) or new_alert_id(now),
        url=url,
        hostname=hostname,
        title=_as_str(data.get("title")) or hostname or url or "Unknown",
        timestamp=timestamp if timestamp > 0 else int(now),
        level=level if level in alert.ALERT_LEVELS else "low",
        reasons=_unique(reasons, MAX_REASONS),
        counts=_normalize_counts(data.get("counts")),
        top_tags=_entries(alert.TopTag, _field(data, "top_tags"))[:MAX_TOP_TAGS],
        evidence=_normalize_evidence(data.get("evidence")),
        diff=_normalize_diff(data.get("diff"), max_diff_items),
        security=_normalize_security(data.get("security")),
        source_extensions=_dedupe_extensions(_entries(alert.SourceExtension, _field(data, "source_extensions"))),
    )


# ── Merging ─────────────────────────────────────────────────────


def merge_diff(prev: alert.AlertDiff, incoming: alert.AlertDiff, max_items: int = DEFAULT_MAX_DIFF_ITEMS) -> alert.AlertDiff:
    """Concatenate per category, re-cap, and sum overflow counters."""
    lists: dict[str, list[Any]] = {}
    overflow: dict[str, int] = {}
    for category in alert.DIFF_CATEGORIES:
        kept, dropped = _capped([*getattr(prev, category), *getattr(incoming, category)], max_items)
        lists[category] = kept
        overflow[category] = getattr(prev.overflow, category) + getattr(incoming.overflow, category) + dropped
    return alert.AlertDiff(**lists, overflow=alert.DiffOverflow(**overflow))


def merge_security(prev: alert.SecurityReport, incoming: alert.SecurityReport) -> alert.SecurityReport:
    """Concatenate per category, re-cap at category limits, sum counters."""
    lists: dict[str, list[Any]] = {}
    overflow: dict[str, int] = {}
    for category in alert.SECURITY_CATEGORIES:
        kept, dropped = _capped([*getattr(prev, category), *getattr(incoming, category)], SECURITY_LIMITS[category])
        lists[category] = kept
        overflow[category] = getattr(prev.overflow, category) + getattr(incoming.overflow, category) + dropped
    return alert.SecurityReport(
        **lists,
        inline_handlers=prev.inline_handlers + incoming.inline_handlers,
        overflow=alert.SecurityOverflow(**overflow),
    )


def _merge_evidence(prev: alert.AlertEvidence, incoming: alert.AlertEvidence) -> alert.AlertEvidence:
    counters = {
        name: getattr(prev, name) + getattr(incoming, name)
        for name in alert.AlertEvidence.model_fields
        if name != "extension_urls"
    }
    return alert.AlertEvidence(
        extension_urls=_unique([*prev.extension_urls, *incoming.extension_urls], MAX_EXTENSION_URLS),
        **counters,
    )


def merge_alerts(
    existing: alert.Alert,
    incoming: alert.Alert,
    max_diff_items: int = DEFAULT_MAX_DIFF_ITEMS,
) -> alert.Alert:
    """Fold *incoming* into *existing*; the result keeps the existing id."""
    return alert.Alert(
        id=existing.id or incoming.id,
        url=incoming.url or existing.url,
        hostname=incoming.hostname or existing.hostname,
        title=incoming.title or existing.title,
        timestamp=max(existing.timestamp, incoming.timestamp),
        level=max_level(existing.level, incoming.level),
        reasons=_unique([*existing.reasons, *incoming.reasons], MAX_REASONS),
        counts=alert.AlertCounts(
            **{
                name: getattr(existing.counts, name) + getattr(incoming.counts, name)
                for name in alert.AlertCounts.model_fields
            }
        ),
        top_tags=incoming.top_tags or existing.top_tags,
        evidence=_merge_evidence(existing.evidence, incoming.evidence),
        diff=merge_diff(existing.diff, incoming.diff, max_diff_items),
        security=merge_security(existing.security, incoming.security),
        source_extensions=_dedupe_extensions([*existing.source_extensions, *incoming.source_extensions]),
    )


def find_mergeable(alerts: Sequence[alert.Alert], incoming: alert.Alert, window_ms: int) -> int | None:
    """Index of the most recent alert for the same URL within *window_ms*."""
    for index, candidate in enumerate(alerts):
        if candidate.url == incoming.url and abs(incoming.timestamp - candidate.timestamp) < window_ms:
            return index
    return None
