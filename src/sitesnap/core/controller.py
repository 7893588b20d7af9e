"""
Snapshot Orchestrator: runs the end-to-end pipeline for one target page.

Normalize -> open session -> load page -> extract style -> discover and
fetch assets -> rewrite references -> (optionally) sanitize -> persist ->
close session. Only page loading and persisting are fatal; every other
stage degrades and the run continues.
"""

from __future__ import annotations

import time
import logging
from enum import Enum
from typing import Callable, List, Optional

import requests

from .assets import AssetDiscoverer, AssetFetcher
from .browser import BrowserSession
from .config import RunConfig
from .errors import SnapshotError
from .logger import ErrorTracker, configure_logging
from .models import AssetIndex, Bundle, RunResult, Target
from .rewriter import ReferenceRewriter
from .sanitizer import Sanitizer
from .styles import StyleExtractor
from ..utils.bundle import BundleWriter
from ..utils.urls import normalize_url


class RunState(Enum):
    IDLE = "idle"
    SESSION_OPEN = "session_open"
    PAGE_LOADED = "page_loaded"
    STYLE_EXTRACTED = "style_extracted"
    ASSETS_FETCHED = "assets_fetched"
    REFERENCES_REWRITTEN = "references_rewritten"
    SANITIZED = "sanitized"
    PERSISTED = "persisted"
    CLOSED = "closed"


SessionFactory = Callable[..., BrowserSession]


class SnapshotController:
    def __init__(self, target: Target, config: Optional[RunConfig] = None,
                 session_factory: Optional[SessionFactory] = None,
                 http_session: Optional[requests.Session] = None,
                 logger: Optional[logging.Logger] = None):
        self.target = target
        self.config = config or RunConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.session_factory = session_factory or BrowserSession.from_config
        # Everything below is owned by this run only
        self.tracker = ErrorTracker(self.logger)
        self.index = AssetIndex()
        self.styles = StyleExtractor(tracker=self.tracker)
        self.discoverer = AssetDiscoverer(tracker=self.tracker)
        self.fetcher = AssetFetcher(session=http_session, max_workers=self.config.max_workers,
                                    timeout=self.config.asset_timeout, user_agent=self.config.user_agent,
                                    tracker=self.tracker)
        self.rewriter = ReferenceRewriter(tracker=self.tracker)
        self.sanitizer = Sanitizer(tracker=self.tracker)
        self.writer = BundleWriter(target.output_dir)
        self.state = RunState.IDLE
        self.history: List[RunState] = [RunState.IDLE]

    def run(self) -> RunResult:
        """Run the pipeline. Never raises; failures are reported on the result."""
        if self.config.log_dir:
            try:
                configure_logging(self.config.log_dir)
            except OSError as e:
                self.logger.warning(f"Run logs disabled, cannot open {self.config.log_dir}: {e}")
        self.logger.info(f"Snapshot started: {self.target.url} -> {self.target.output_dir}")
        session = None
        try:
            session = self.session_factory(self.config, javascript_enabled=not self.target.sanitize)
            session.open()
            self._advance(RunState.SESSION_OPEN)

            session.navigate(self.target.url, self.config.navigation_timeout_ms, self.config.wait_until)
            base_url = session.url or self.target.url
            self._advance(RunState.PAGE_LOADED)

            assets_dir = self.writer.ensure_directories()

            css = self.styles.extract(session)
            self._advance(RunState.STYLE_EXTRACTED)

            urls = self.discoverer.discover(session)
            self.fetcher.fetch_all(urls, base_url, assets_dir, self.index)
            self._advance(RunState.ASSETS_FETCHED)

            html = session.content()
            html, css = self.rewriter.rewrite(html, css, base_url, self.index, failed=self.fetcher.failed)
            self._advance(RunState.REFERENCES_REWRITTEN)

            if self.target.sanitize:
                html = self.sanitizer.sanitize(html)
                self._advance(RunState.SANITIZED)

            html = self.writer.inject_stylesheet_link(html)
            self.writer.write(Bundle(html=html, css=css, asset_dir=assets_dir))
            self._advance(RunState.PERSISTED)

            self.logger.info(f"Snapshot complete: {self.target.url} ({len(self.index.fetched_records())} assets, "
                             f"warnings by stage: {self.tracker.stage_counts() or 'none'})")
            return self._result(True, html=html, css=css)

        except SnapshotError as e:
            self.tracker.log_error(e, context=self.state.value, url=self.target.url)
            return self._result(False, error=str(e))
        except Exception as e:
            self.tracker.log_error(e, context=self.state.value, url=self.target.url)
            return self._result(False, error=f"Unexpected error: {e}")
        finally:
            self._close(session)

    def _advance(self, state: RunState) -> None:
        self.state = state
        self.history.append(state)
        self.logger.debug(f"Snapshot state: {state.value}")

    def _close(self, session) -> None:
        if session is not None:
            try:
                session.close()
            except Exception as e:
                self.logger.warning(f"Error closing browser session: {e}")
        self._advance(RunState.CLOSED)

    def _result(self, success: bool, html: str = '', css: str = '', error: Optional[str] = None) -> RunResult:
        return RunResult(
            success=success,
            html=html,
            css=css,
            output_dir=self.target.output_dir,
            error=error,
            warnings=self.tracker.warning_messages(),
            assets_fetched=len(self.index.fetched_records()),
            assets_failed=len(self.fetcher.failed),
        )


def default_output_dir() -> str:
    return f"replica_{int(time.time() * 1000)}"


def replicate(target: str, output_dir: Optional[str] = None, sanitize: bool = False,
              config: Optional[RunConfig] = None,
              session_factory: Optional[SessionFactory] = None,
              http_session: Optional[requests.Session] = None) -> RunResult:
    """
    Snapshot a web page into a local bundle.

    Args:
        target: Host name or URL of the page (https:// is assumed if missing)
        output_dir: Bundle directory (default: replica_<epoch ms>)
        sanitize: Strip scripts, event handlers and javascript: links, and
            load the page with JavaScript disabled
        config: Browser and download settings
        session_factory: Builds the rendering session (default: Playwright)
        http_session: requests.Session used for asset downloads

    Returns:
        RunResult; this function never raises
    """
    out = str(output_dir) if output_dir else default_output_dir()
    try:
        run_target = Target(url=normalize_url(target), output_dir=out, sanitize=bool(sanitize))
        controller = SnapshotController(run_target, config=config, session_factory=session_factory,
                                        http_session=http_session)
    except Exception as e:
        logging.getLogger(__name__).error(f"Failed to set up snapshot of {target!r}: {e}")
        return RunResult(success=False, html='', css='', output_dir=out, error=str(e))
    return controller.run()
