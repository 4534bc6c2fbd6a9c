"""
Mutation collector: folds host mutation batches into the evidence window.

Each ``process_batch`` call corresponds to one observer callback in the
page.  Records are handled in order:

- ``childList``: added elements are scanned (the node itself plus a
  bounded number of descendants per batch) for scripts, iframes, forms,
  inline handlers and extension URLs; interesting added/removed
  elements get a diff entry with selector and redacted snippet.
- ``attributes``: only the watch-list of security-relevant attributes
  is recorded; URL rewrites and form action rewrites also produce
  security entries.
- ``characterData``: only text inside ``<script>`` / ``<style>`` is
  recorded.

Once a window has seen more than ``max_mutations_per_window`` records
it saturates: one overflow marker is added and further batches are
ignored until the window is reset.
"""

from __future__ import annotations

from collections.abc import Sequence

from pagewatch.collector import selectors
from pagewatch.collector.window import EvidenceWindow
from pagewatch.models import alert
from pagewatch.models.dom import MutationRecord, NodeSnapshot, PageInfo
from pagewatch.utils import logger, text, url

log = logger.create_logger("Collector")

INTERESTING_TAGS = frozenset([
    "script",
    "iframe",
    "object",
    "embed",
    "link",
    "form",
    "input",
    "textarea",
    "select",
    "button",
    "img",
])

ATTRIBUTE_WATCH = frozenset([
    "src",
    "href",
    "action",
    "style",
    "data-src",
    "data-href",
])

URL_ATTRIBUTES = ("src", "href", "data-src", "data-href")

EXECUTABLE_TEXT_PARENTS = frozenset(["script", "style"])


def is_watched_attribute(name: str) -> bool:
    """Whether changes to attribute *name* are recorded."""
    return name in ATTRIBUTE_WATCH or name.startswith("on")


def should_capture(node: NodeSnapshot) -> bool:
    """Whether an added/removed element deserves a diff entry."""
    if not node.is_element:
        return False
    if node.tag in INTERESTING_TAGS:
        return True
    return any(node.has_attribute(name) for name in ("src", "href", "action"))


class MutationCollector:
    """Updates one ``EvidenceWindow`` from batches of mutation records."""

    def __init__(self, window: EvidenceWindow, page: PageInfo) -> None:
        self._window = window
        self._page = page
        self._descendant_budget = 0

    @property
    def window(self) -> EvidenceWindow:
        return self._window

    @property
    def page_origin(self) -> str:
        return url.origin_from_url(self._page.url)

    # ==========================================================================
    # Batch entry point
    # ==========================================================================

    def process_batch(self, records: Sequence[MutationRecord]) -> bool:
        """Fold one batch into the window.

        Returns ``True`` when the flush gate should be (re)armed, which
        is the case for every non-empty batch, including ones dropped
        by the saturation ceiling.
        """
        if not records:
            return False

        window = self._window
        if window.saturated:
            return True

        window.mutations_seen += len(records)
        if window.mutations_seen > window.settings.max_mutations_per_window:
            window.saturated = True
            window.diff.overflow.added += 1
            log.warn(
                "Mutation ceiling reached, ignoring further records this window",
                {"seen": window.mutations_seen, "url": self._page.url},
            )
            return True

        self._descendant_budget = window.settings.max_descendants
        for record in records:
            if record.type == "childList":
                self._handle_child_list(record)
            elif record.type == "attributes":
                window.counts.attributes += 1
                if record.attribute_name:
                    self._record_attribute_change(record.target, record.attribute_name, record.old_value)
            elif record.type == "characterData":
                window.counts.text += 1
                self._record_text_change(record.target, record.old_value)
        return True

    # ==========================================================================
    # childList
    # ==========================================================================

    def _handle_child_list(self, record: MutationRecord) -> None:
        window = self._window
        for node in record.added_nodes:
            if not node.is_element:
                continue
            window.counts.added += 1
            self._scan_node(node)
            self._record_added_node(node)
        for node in record.removed_nodes:
            if not node.is_element:
                continue
            window.counts.removed += 1
            self._record_removed_node(node)

    def _scan_node(self, node: NodeSnapshot) -> None:
        self._check_element(node, track_tag=True)
        for child in node.descendants:
            if self._descendant_budget <= 0:
                break
            self._check_element(child)
            self._descendant_budget -= 1

    def _check_element(self, el: NodeSnapshot, track_tag: bool = False) -> None:
        if not el.is_element:
            return
        window = self._window
        evidence = window.evidence

        if track_tag:
            window.track_tag(el.tag)

        if el.tag == "script":
            evidence.script_adds += 1
            src = el.get_attribute("src")
            if src:
                self._record_url(src)
            elif el.text_content.strip():
                evidence.inline_scripts += 1
        elif el.tag == "iframe":
            evidence.iframe_adds += 1
        elif el.tag == "form":
            evidence.form_adds += 1

        for name in URL_ATTRIBUTES:
            if el.has_attribute(name):
                self._record_url(el.get_attribute(name))
        for ref in url.css_urls(el.get_attribute("style")):
            self._record_url(ref)

        evidence.inline_handlers += sum(1 for name in el.attributes if name.startswith("on"))

    def _record_url(self, value: str | None) -> None:
        if url.is_extension_url(value):
            self._window.record_extension_url(value.strip())

    def _record_added_node(self, el: NodeSnapshot) -> None:
        if not should_capture(el):
            return
        window = self._window
        limit = window.settings.max_snippet_length
        selector = selectors.build_selector(el)

        window.record_detail(
            "added",
            alert.AddedEntry(
                tag=el.tag,
                selector=selector,
                snippet=text.sanitize_snippet(el.outer_html, limit),
                src=el.get_attribute("src"),
                href=el.get_attribute("href"),
                action=el.get_attribute("action"),
                input_type=el.get_attribute("type"),
            ),
        )

        if el.tag == "script":
            src = el.get_attribute("src")
            origin = url.origin_from_url(src, self._page.url)
            window.push_security(
                "scripts",
                alert.ScriptEntry(
                    selector=selector,
                    src=src,
                    inline=not src,
                    origin=origin,
                    origin_kind=url.origin_kind(origin, self.page_origin),
                ),
            )
        elif el.tag == "iframe":
            src = el.get_attribute("src")
            origin = url.origin_from_url(src, self._page.url)
            window.push_security(
                "iframes",
                alert.IframeEntry(
                    selector=selector,
                    src=src,
                    origin=origin,
                    origin_kind=url.origin_kind(origin, self.page_origin),
                ),
            )
        elif el.tag == "form":
            window.push_security(
                "forms",
                alert.FormEntry(selector=selector, action=el.get_attribute("action")),
            )
        elif el.tag == "input":
            window.push_security(
                "inputs",
                alert.InputEntry(
                    selector=selector,
                    input_type=(el.get_attribute("type") or "text").lower(),
                    name=el.get_attribute("name"),
                ),
            )

    def _record_removed_node(self, el: NodeSnapshot) -> None:
        if not should_capture(el):
            return
        self._window.record_detail(
            "removed",
            alert.RemovedEntry(
                tag=el.tag,
                selector=selectors.build_selector(el),
                snippet=text.sanitize_snippet(el.outer_html, self._window.settings.max_snippet_length),
            ),
        )

    # ==========================================================================
    # attributes
    # ==========================================================================

    def _record_attribute_change(self, target: NodeSnapshot, name: str, old_value: str | None) -> None:
        if not target.is_element:
            return
        name = name.lower()
        if not is_watched_attribute(name):
            return

        window = self._window
        evidence = window.evidence
        limit = window.settings.max_snippet_length
        new_value = target.attributes.get(name)
        safe_old = text.truncate(old_value or "", limit)
        safe_new = text.truncate(new_value or "", limit)
        selector = selectors.build_selector(target)

        if name == "href":
            evidence.link_changes += 1
        elif name == "src":
            evidence.src_changes += 1
        elif name == "action":
            evidence.action_changes += 1
        elif name.startswith("on"):
            evidence.inline_handlers += 1
            window.security.inline_handlers += 1

        if name in URL_ATTRIBUTES:
            self._record_url(new_value)
            origin = url.origin_from_url(new_value, self._page.url)
            window.push_security(
                "url_changes",
                alert.UrlChangeEntry(
                    tag=target.tag,
                    attribute=name,
                    selector=selector,
                    old_value=safe_old,
                    new_value=safe_new,
                    origin=origin,
                    origin_kind=url.origin_kind(origin, self.page_origin),
                ),
            )
        elif name == "action":
            window.push_security(
                "action_changes",
                alert.ActionChangeEntry(selector=selector, old_value=safe_old, new_value=safe_new),
            )
        elif name == "style":
            for ref in url.css_urls(new_value):
                self._record_url(ref)

        window.record_detail(
            "attributes",
            alert.AttributeEntry(
                selector=selector,
                tag=target.tag,
                attribute=name,
                old_value=safe_old,
                new_value=safe_new,
            ),
        )

    # ==========================================================================
    # characterData
    # ==========================================================================

    def _record_text_change(self, node: NodeSnapshot, old_value: str | None) -> None:
        if node.node_type != "text":
            return
        parent = node.parent
        if parent is None or parent.is_content_editable:
            return
        if parent.tag not in EXECUTABLE_TEXT_PARENTS:
            return
        limit = self._window.settings.max_snippet_length
        self._window.record_detail(
            "text",
            alert.TextEntry(
                selector=selectors.build_selector(parent),
                old_value=text.truncate(old_value or "", limit),
                new_value=text.truncate(node.data, limit),
            ),
        )
