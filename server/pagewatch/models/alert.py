"""Pydantic models for exported alerts.

An ``Alert`` is the classified projection of one evidence window.  It is
what the flush gate sends, what the merge engine stores, and what the
UI reads back.  Every field has a default so partial payloads still
validate; the engine's normaliser handles values of the wrong type.
"""

from __future__ import annotations

from typing import Literal

import pydantic

from pagewatch.utils.serialization import snake_to_camel

AlertLevel = Literal["low", "medium", "high"]

ALERT_LEVELS: tuple[AlertLevel, ...] = ("low", "medium", "high")

DIFF_CATEGORIES = ("added", "removed", "attributes", "text")

SECURITY_CATEGORIES = ("scripts", "iframes", "forms", "inputs", "url_changes", "action_changes")


class WireModel(pydantic.BaseModel):
    """Base for alert models: camelCase aliases, numbers accepted as text."""

    model_config = pydantic.ConfigDict(
        alias_generator=snake_to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


# ── Counts and evidence ─────────────────────────────────────────


class AlertCounts(WireModel):
    """Raw change totals observed during a window."""

    added: int = 0
    removed: int = 0
    attributes: int = 0
    text: int = 0

    @property
    def total(self) -> int:
        return self.added + self.removed + self.attributes + self.text


class AlertEvidence(WireModel):
    """Structural signals behind the alert's level."""

    extension_urls: list[str] = pydantic.Field(default_factory=list)
    script_adds: int = 0
    inline_scripts: int = 0
    inline_handlers: int = 0
    iframe_adds: int = 0
    form_adds: int = 0
    link_changes: int = 0
    src_changes: int = 0
    action_changes: int = 0


class TopTag(WireModel):
    """A tag name and how often it was added."""

    tag: str
    count: int = 0


# ── Diff entries ────────────────────────────────────────────────


class AddedEntry(WireModel):
    """An interesting element inserted into the page."""

    tag: str = ""
    selector: str = ""
    snippet: str = ""
    src: str = ""
    href: str = ""
    action: str = ""
    input_type: str = ""


class RemovedEntry(WireModel):
    """An interesting element removed from the page."""

    tag: str = ""
    selector: str = ""
    snippet: str = ""


class AttributeEntry(WireModel):
    """A watched attribute that changed value."""

    selector: str = ""
    tag: str = ""
    attribute: str = ""
    old_value: str = ""
    new_value: str = ""


class TextEntry(WireModel):
    """A text change inside a script or style element."""

    selector: str = ""
    old_value: str = ""
    new_value: str = ""


class DiffOverflow(WireModel):
    """Entries per diff category dropped because the list was full."""

    added: int = 0
    removed: int = 0
    attributes: int = 0
    text: int = 0


class AlertDiff(WireModel):
    """Capped per-category change details."""

    added: list[AddedEntry] = pydantic.Field(default_factory=list)
    removed: list[RemovedEntry] = pydantic.Field(default_factory=list)
    attributes: list[AttributeEntry] = pydantic.Field(default_factory=list)
    text: list[TextEntry] = pydantic.Field(default_factory=list)
    overflow: DiffOverflow = pydantic.Field(default_factory=DiffOverflow)


# ── Security entries ────────────────────────────────────────────


class ScriptEntry(WireModel):
    """An inserted script element."""

    type: Literal["script"] = "script"
    selector: str = ""
    src: str = ""
    inline: bool = False
    origin: str = ""
    origin_kind: str = "unknown"


class IframeEntry(WireModel):
    """An inserted iframe element."""

    type: Literal["iframe"] = "iframe"
    selector: str = ""
    src: str = ""
    origin: str = ""
    origin_kind: str = "unknown"


class FormEntry(WireModel):
    """An inserted form element."""

    type: Literal["form"] = "form"
    selector: str = ""
    action: str = ""


class InputEntry(WireModel):
    """An inserted input element."""

    type: Literal["input"] = "input"
    selector: str = ""
    input_type: str = "text"
    name: str = ""


class UrlChangeEntry(WireModel):
    """A rewrite of a URL-bearing attribute."""

    tag: str = ""
    attribute: str = ""
    selector: str = ""
    old_value: str = ""
    new_value: str = ""
    origin: str = ""
    origin_kind: str = "unknown"


class ActionChangeEntry(WireModel):
    """A rewrite of a form's ``action``."""

    selector: str = ""
    old_value: str = ""
    new_value: str = ""


class SecurityOverflow(WireModel):
    """Entries per security category dropped because the list was full."""

    scripts: int = 0
    iframes: int = 0
    forms: int = 0
    inputs: int = 0
    url_changes: int = 0
    action_changes: int = 0


class SecurityReport(WireModel):
    """High-signal items captured during a window."""

    scripts: list[ScriptEntry] = pydantic.Field(default_factory=list)
    iframes: list[IframeEntry] = pydantic.Field(default_factory=list)
    forms: list[FormEntry] = pydantic.Field(default_factory=list)
    inputs: list[InputEntry] = pydantic.Field(default_factory=list)
    url_changes: list[UrlChangeEntry] = pydantic.Field(default_factory=list)
    action_changes: list[ActionChangeEntry] = pydantic.Field(default_factory=list)
    inline_handlers: int = 0
    overflow: SecurityOverflow = pydantic.Field(default_factory=SecurityOverflow)

    def has_items(self) -> bool:
        """Whether any security list or the handler counter is non-empty."""
        return bool(
            self.inline_handlers
            or any(getattr(self, category) for category in SECURITY_CATEGORIES)
        )


# ── Attribution ─────────────────────────────────────────────────


class SourceExtension(WireModel):
    """An installed extension whose permissions match an observed origin."""

    id: str
    name: str = ""
    version: str = ""
    install_type: str = ""
    matched_origin: str = ""


# ── Alert ───────────────────────────────────────────────────────


class Alert(WireModel):
    """A reportable window of suspicious page changes."""

    id: str = ""
    url: str = ""
    hostname: str = ""
    title: str = ""
    timestamp: int = 0
    level: AlertLevel = "low"
    reasons: list[str] = pydantic.Field(default_factory=list)
    counts: AlertCounts = pydantic.Field(default_factory=AlertCounts)
    top_tags: list[TopTag] = pydantic.Field(default_factory=list)
    evidence: AlertEvidence = pydantic.Field(default_factory=AlertEvidence)
    diff: AlertDiff = pydantic.Field(default_factory=AlertDiff)
    security: SecurityReport = pydantic.Field(default_factory=SecurityReport)
    source_extensions: list[SourceExtension] = pydantic.Field(default_factory=list)

    def to_wire(self) -> dict:
        """Dump to the camelCase JSON-compatible dict used on the wire."""
        return self.model_dump(mode="json", by_alias=True)
