"""
Rendering session backed by Playwright.

Wraps a headless Chromium page behind the small surface the pipeline
needs: navigate, evaluate, content and close. All calls happen on the
thread that opened the session.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from playwright.sync_api import (
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
    sync_playwright,
)

from .config import RunConfig
from .errors import NavigationError, SnapshotError


LAUNCH_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-gpu',
    '--no-first-run',
    '--no-default-browser-check',
    '--disable-background-timer-throttling',
    '--disable-renderer-backgrounding',
    '--disable-backgrounding-occluded-windows',
]


class BrowserSession:
    """
    A single browser page owned by one snapshot run.

    Viewport, user agent and JavaScript settings made before ``open()`` are
    applied as browser context options. Only the viewport can change on an
    open session. ``close()`` may be called any number of times; the
    browser is released once.
    """

    def __init__(self, headless: bool = True):
        self.logger = logging.getLogger(__name__)
        self.headless = headless
        self.viewport = {'width': 1920, 'height': 1080}
        self.user_agent: Optional[str] = None
        self.javascript_enabled = True
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    @classmethod
    def from_config(cls, config: RunConfig, javascript_enabled: bool = True) -> "BrowserSession":
        session = cls(headless=config.headless)
        session.set_viewport(config.viewport_width, config.viewport_height)
        session.set_user_agent(config.user_agent)
        session.set_javascript_enabled(javascript_enabled)
        return session

    def set_viewport(self, width: int, height: int) -> None:
        self.viewport = {'width': width, 'height': height}
        if self._page is not None:
            self._page.set_viewport_size(self.viewport)

    def set_user_agent(self, user_agent: str) -> None:
        self._require_closed('user agent')
        self.user_agent = user_agent

    def set_javascript_enabled(self, enabled: bool) -> None:
        self._require_closed('JavaScript setting')
        self.javascript_enabled = enabled

    def open(self) -> "BrowserSession":
        if self._page is not None:
            return self
        try:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
            context_options = {
                'viewport': self.viewport,
                'java_script_enabled': self.javascript_enabled,
            }
            if self.user_agent:
                context_options['user_agent'] = self.user_agent
            self._context = self._browser.new_context(**context_options)
            self._page = self._context.new_page()
        except PlaywrightError as e:
            self.close()
            raise NavigationError(f"Failed to start browser: {e}") from e
        if not self.javascript_enabled:
            self.logger.info("Browser session opened with JavaScript disabled")
        return self

    def navigate(self, url: str, timeout_ms: int = 30000, wait_until: str = "networkidle") -> None:
        """Load a URL and wait for the given load state. Raises NavigationError."""
        page = self._require_page()
        self.logger.info(f"Loading {url} (wait_until={wait_until}, timeout={timeout_ms}ms)")
        try:
            page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationError(f"Timeout after {timeout_ms}ms loading {url}") from e
        except PlaywrightError as e:
            raise NavigationError(f"Navigation to {url} failed: {e}") from e

    def evaluate(self, script: str) -> Any:
        return self._require_page().evaluate(script)

    def content(self) -> str:
        return self._require_page().content()

    @property
    def url(self) -> str:
        return self._page.url if self._page is not None else ""

    def close(self) -> None:
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        self._page = None
        self._context = None
        try:
            if browser is not None:
                browser.close()
        except PlaywrightError as e:
            self.logger.warning(f"Error closing browser: {e}")
        finally:
            if playwright is not None:
                playwright.stop()

    def _require_closed(self, setting: str) -> None:
        # context options are fixed once the browser context exists
        if self._context is not None:
            raise SnapshotError(f"The {setting} cannot be changed after the session is open")

    def _require_page(self):
        if self._page is None:
            raise NavigationError("Browser session is not open")
        return self._page

    def __enter__(self) -> "BrowserSession":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
