"""
Browser watch sessions.

A ``WatchSession`` launches Chromium through Playwright, attaches a
``PageObserver`` to a fresh page, navigates to the requested URL and
keeps watching it for a fixed duration.  Alerts leave the page through
the session's message sender exactly as they would from an extension
content script.  Each session owns its own browser, so several can run
concurrently.
"""

from __future__ import annotations

import asyncio
import tempfile
import time
import uuid
from collections.abc import Sequence
from typing import Literal

from playwright import async_api

from pagewatch.browser import observer
from pagewatch.collector import transport
from pagewatch.collector.monitor import PageMonitor
from pagewatch.config import CollectorSettings
from pagewatch.models.dom import PageInfo
from pagewatch.models.watch import WatchStatus
from pagewatch.utils import logger
from pagewatch.utils.errors import get_error_message

log = logger.create_logger("WatchSession")

_BASE_ARGS = [
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-infobars",
]


def _now_ms() -> int:
    return int(time.time() * 1000)


class WatchSession:
    """Watches a single URL in an isolated browser."""

    def __init__(
        self,
        url: str,
        sender: transport.MessageSender | None = None,
        settings: CollectorSettings | None = None,
        headless: bool = True,
        extension_paths: Sequence[str] = (),
    ) -> None:
        self._url = url
        self._sender = sender
        self._settings = settings or CollectorSettings()
        self._headless = headless
        self._extension_paths = list(extension_paths)

        self._playwright: async_api.Playwright | None = None
        self._browser: async_api.Browser | None = None
        self._context: async_api.BrowserContext | None = None
        self._page: async_api.Page | None = None
        self._observer: observer.PageObserver | None = None
        self._profile_dir: tempfile.TemporaryDirectory[str] | None = None
        self._log_lines: list[str] = []

        self.status = WatchStatus(id=uuid.uuid4().hex[:12], url=url, started_at=_now_ms())

    @property
    def id(self) -> str:
        return self.status.id

    @property
    def monitor(self) -> PageMonitor | None:
        return self._observer.monitor if self._observer else None

    @property
    def log_lines(self) -> list[str]:
        """Log lines emitted while this session ran."""
        return list(self._log_lines)

    def snapshot(self) -> WatchStatus:
        """Current status with the live batch count."""
        batches = self._observer.batches if self._observer else self.status.batches
        return self.status.model_copy(update={"batches": batches})

    # ==========================================================================
    # Browser Lifecycle
    # ==========================================================================

    async def launch_browser(self) -> None:
        """Start Chromium and open the page that will be watched."""
        log.info("Launching browser", {"headless": self._headless, "extensions": len(self._extension_paths)})
        pw = await async_api.async_playwright().start()
        self._playwright = pw

        if self._extension_paths:
            # Extensions can only be loaded into a persistent profile.
            joined = ",".join(self._extension_paths)
            self._profile_dir = tempfile.TemporaryDirectory(prefix="pagewatch-profile-")
            self._context = await pw.chromium.launch_persistent_context(
                self._profile_dir.name,
                headless=self._headless,
                args=[*_BASE_ARGS, f"--disable-extensions-except={joined}", f"--load-extension={joined}"],
            )
        else:
            self._browser = await pw.chromium.launch(
                headless=self._headless,
                args=[*_BASE_ARGS, "--disable-extensions"],
            )
            self._context = await self._browser.new_context(java_script_enabled=True)

        self._page = await self._context.new_page()
        monitor = PageMonitor(PageInfo(url=self._url), self._sender, self._settings)
        self._observer = await observer.attach_monitor(self._page, monitor)

    async def navigate_to(
        self,
        wait_until: Literal["commit", "domcontentloaded", "load", "networkidle"] = "domcontentloaded",
        timeout: int = 60000,
    ) -> None:
        """Navigate the watched page to the session URL."""
        if not self._page:
            raise RuntimeError("No browser session active")
        log.debug("Navigating", {"url": self._url, "waitUntil": wait_until, "timeout": timeout})
        response = await self._page.goto(self._url, wait_until=wait_until, timeout=timeout)
        if response is not None and response.status >= 400:
            log.warn("Watched page returned an error status", {"url": self._url, "statusCode": response.status})

    async def run(self, duration_seconds: float) -> WatchStatus:
        """Launch, navigate and watch for *duration_seconds*, then close."""
        self._log_lines = logger.start_log_buffer()
        log.start_timer(f"watch-{self.id}")
        try:
            await self.launch_browser()
            await self.navigate_to()
            self.status.state = "watching"
            log.success("Watching page", {"id": self.id, "url": self._url, "seconds": duration_seconds})
            await asyncio.sleep(duration_seconds)
            self.status.state = "finished"
        except asyncio.CancelledError:
            self.status.state = "cancelled"
            raise
        except Exception as exc:
            self.status.state = "failed"
            self.status.error = get_error_message(exc)
            log.error("Watch session failed", {"id": self.id, "error": self.status.error})
        finally:
            self.status.finished_at = _now_ms()
            await self.close()
            log.end_timer(f"watch-{self.id}", "Watch session ended")
        return self.snapshot()

    async def close(self) -> None:
        """Close the browser and clean up all resources."""
        log.debug("Closing watch session", {"id": self.id})
        if self._observer:
            self.status.batches = self._observer.batches
            self._observer.monitor.close()
            self._observer = None
        self._page = None

        if self._context:
            try:
                await self._context.close()
            except Exception as exc:
                log.debug("Context close error (non-fatal)", {"error": str(exc)})
            self._context = None

        if self._browser:
            try:
                await self._browser.close()
            except Exception as exc:
                log.debug("Browser close error (non-fatal)", {"error": str(exc)})
            self._browser = None

        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception as exc:
                log.debug("Playwright stop error (non-fatal)", {"error": str(exc)})
            self._playwright = None

        if self._profile_dir:
            self._profile_dir.cleanup()
            self._profile_dir = None
