"""
Playwright host for the mutation feed.

Injects an observer script into every document of a page.  The script
watches ``documentElement`` with a ``MutationObserver``, serialises each
callback's records into the ``MutationRecord`` wire format and hands
them to Python through exposed bindings, together with visibility
changes and load completion.  Only the top-level frame is observed.
"""

from __future__ import annotations

from typing import Any

from playwright import async_api

from pagewatch.collector import mutations
from pagewatch.collector.monitor import PageMonitor
from pagewatch.config import CollectorSettings
from pagewatch.utils import logger
from pagewatch.utils.errors import get_error_message

log = logger.create_logger("Observer")

BATCH_BINDING = "__pagewatchBatch"
VISIBILITY_BINDING = "__pagewatchVisibility"
LOADED_BINDING = "__pagewatchLoaded"

_OBSERVER_TEMPLATE = """
(() => {
  if (window.top !== window || window.__pagewatchInstalled) return;
  window.__pagewatchInstalled = true;

  const MAX_DESCENDANTS = __MAX_DESCENDANTS__;
  const MAX_RECORDS = __MAX_RECORDS__;
  const MAX_HTML = __MAX_HTML__;
  const MAX_TEXT = 500;
  const MAX_PARENT_DEPTH = 4;
  const ATTRIBUTE_FILTER = __ATTRIBUTE_FILTER__;
  const DESCENDANT_QUERY = "[src],[href],script,style,iframe,form";

  // Named form controls can shadow element properties, so reads go
  // through the prototypes.
  const getter = (proto, name) => Object.getOwnPropertyDescriptor(proto, name).get;
  const tagNameOf = getter(Element.prototype, "tagName");
  const parentOf = getter(Node.prototype, "parentElement");
  const childrenOf = getter(Element.prototype, "children");
  const classListOf = getter(Element.prototype, "classList");
  const outerHtmlOf = getter(Element.prototype, "outerHTML");
  const textOf = getter(Node.prototype, "textContent");
  const getAttr = (el, name) => Element.prototype.getAttribute.call(el, name);
  const tagOf = (el) => String(tagNameOf.call(el)).toLowerCase();

  const attributesOf = (el) => {
    const out = {};
    for (const name of Element.prototype.getAttributeNames.call(el)) out[name] = getAttr(el, name) || "";
    return out;
  };

  const nthOfType = (el) => {
    const parent = parentOf.call(el);
    if (!parent) return null;
    const tag = tagNameOf.call(el);
    const siblings = Array.from(childrenOf.call(parent)).filter((c) => tagNameOf.call(c) === tag);
    return siblings.length > 1 ? siblings.indexOf(el) + 1 : null;
  };

  const scriptText = (el) =>
    tagNameOf.call(el) === "SCRIPT" ? (textOf.call(el) || "").slice(0, MAX_TEXT) : "";

  const element = (el, depth, full) => {
    const snap = {
      nodeType: "element",
      tag: tagOf(el),
      attributes: attributesOf(el),
      id: getAttr(el, "id") || "",
      classList: Array.from(classListOf.call(el)),
      nthOfType: nthOfType(el),
      isContentEditable: el.isContentEditable === true,
      parent: null,
    };
    const parent = parentOf.call(el);
    if (depth < MAX_PARENT_DEPTH && parent) {
      snap.parent = element(parent, depth + 1, false);
    }
    if (full) {
      snap.outerHtml = (outerHtmlOf.call(el) || "").slice(0, MAX_HTML);
      snap.textContent = scriptText(el);
      snap.descendants = [];
      for (const child of Element.prototype.querySelectorAll.call(el, DESCENDANT_QUERY)) {
        if (snap.descendants.length >= MAX_DESCENDANTS) break;
        snap.descendants.push({
          nodeType: "element",
          tag: tagOf(child),
          attributes: attributesOf(child),
          textContent: scriptText(child),
        });
      }
    }
    return snap;
  };

  const snapshot = (node, full) => {
    if (!node) return { nodeType: "other" };
    if (node.nodeType === Node.ELEMENT_NODE) return element(node, 0, full);
    if (node.nodeType === Node.TEXT_NODE) {
      return {
        nodeType: "text",
        data: (node.data || "").slice(0, MAX_TEXT),
        parent: node.parentElement ? element(node.parentElement, 1, false) : null,
      };
    }
    return { nodeType: "other" };
  };

  const serialize = (m) => {
    const rec = {
      type: m.type,
      target: snapshot(m.target, false),
      attributeName: m.attributeName,
      oldValue: m.oldValue,
      addedNodes: [],
      removedNodes: [],
    };
    if (m.type === "childList") {
      rec.addedNodes = Array.from(m.addedNodes, (n) => snapshot(n, true));
      rec.removedNodes = Array.from(m.removedNodes, (n) => snapshot(n, true));
    }
    return rec;
  };

  const meta = () => ({ url: window.location.href, title: document.title || "" });

  const observer = new MutationObserver((records) => {
    // Past the saturation ceiling only the record type is needed.
    const batch = records.map((m, i) => (i < MAX_RECORDS ? serialize(m) : { type: m.type }));
    window.__BATCH_BINDING__(batch, meta()).catch(() => {});
  });

  let observing = false;

  const start = () => {
    if (observing || !document.documentElement) return;
    observer.observe(document.documentElement, {
      childList: true,
      subtree: true,
      attributes: true,
      attributeOldValue: true,
      characterData: true,
      characterDataOldValue: true,
      attributeFilter: ATTRIBUTE_FILTER,
    });
    observing = true;
  };

  const stop = () => {
    if (!observing) return;
    observer.disconnect();
    observing = false;
  };

  const onVisibility = (initial) => {
    const visible = document.visibilityState === "visible";
    window.__VISIBILITY_BINDING__(visible, meta(), initial === true).catch(() => {});
    if (visible) start(); else stop();
  };

  const onLoaded = () => window.__LOADED_BINDING__(meta()).catch(() => {});

  document.addEventListener("visibilitychange", () => onVisibility(false));
  if (document.documentElement) {
    onVisibility(true);
  } else {
    document.addEventListener("DOMContentLoaded", () => onVisibility(true), { once: true });
  }
  if (document.readyState === "complete") {
    onLoaded();
  } else {
    window.addEventListener("load", onLoaded, { once: true });
  }
})();
"""

# ``attributeFilter`` cannot match a prefix, so inline handlers are listed.
_OBSERVED_HANDLERS = ("onclick", "onload", "onerror")


def build_observer_script(settings: CollectorSettings | None = None) -> str:
    """Render the injected observer script with the collector limits."""
    settings = settings or CollectorSettings()
    attribute_filter = sorted(mutations.ATTRIBUTE_WATCH) + list(_OBSERVED_HANDLERS)
    quoted = ", ".join(f'"{name}"' for name in attribute_filter)
    return (
        _OBSERVER_TEMPLATE.replace("__MAX_DESCENDANTS__", str(settings.max_descendants))
        .replace("__MAX_RECORDS__", str(settings.max_mutations_per_window + 1))
        .replace("__MAX_HTML__", str(settings.max_snippet_length * 4))
        .replace("__ATTRIBUTE_FILTER__", f"[{quoted}]")
        .replace("__BATCH_BINDING__", BATCH_BINDING)
        .replace("__VISIBILITY_BINDING__", VISIBILITY_BINDING)
        .replace("__LOADED_BINDING__", LOADED_BINDING)
    )


def _apply_meta(monitor: PageMonitor, meta: Any) -> None:
    if isinstance(meta, dict):
        monitor.update_page(url=str(meta.get("url") or monitor.page.url), title=str(meta.get("title") or ""))


class PageObserver:
    """Bridges one Playwright page to one ``PageMonitor``."""

    def __init__(self, page: async_api.Page, monitor: PageMonitor) -> None:
        self._page = page
        self._monitor = monitor
        self.batches = 0

    @property
    def monitor(self) -> PageMonitor:
        return self._monitor

    async def attach(self) -> None:
        """Expose the bindings and install the observer on every document."""
        await self._page.expose_function(BATCH_BINDING, self.on_batch)
        await self._page.expose_function(VISIBILITY_BINDING, self.on_visibility)
        await self._page.expose_function(LOADED_BINDING, self.on_loaded)
        await self._page.add_init_script(build_observer_script(self._monitor.window.settings))
        self._page.on("framenavigated", self.on_frame_navigated)
        log.debug("Observer attached", {"url": self._page.url})

    # ==========================================================================
    # Binding callbacks (invoked from the page)
    # ==========================================================================

    def on_batch(self, records: Any, meta: Any = None) -> bool:
        try:
            _apply_meta(self._monitor, meta)
            accepted = self._monitor.ingest(records)
            if accepted:
                self.batches += 1
            return accepted
        except Exception as exc:
            log.warn("Failed to process mutation batch", {"error": get_error_message(exc)})
            return False

    def on_visibility(self, visible: Any, meta: Any = None, initial: Any = False) -> None:
        if initial:
            self._monitor.on_document_start(self._page.url)
        _apply_meta(self._monitor, meta)
        self._monitor.on_visibility_change(bool(visible))

    def on_loaded(self, meta: Any = None) -> None:
        _apply_meta(self._monitor, meta)
        self._monitor.on_load_complete()
        log.debug("Document loaded", {"url": self._monitor.page.url})

    def on_frame_navigated(self, frame: async_api.Frame) -> None:
        # Same-document navigations only change the URL.
        if frame == self._page.main_frame:
            self._monitor.update_page(url=frame.url)


async def attach_monitor(page: async_api.Page, monitor: PageMonitor) -> PageObserver:
    """Install the observer on *page* and feed *monitor* from it."""
    observer = PageObserver(page, monitor)
    await observer.attach()
    return observer
