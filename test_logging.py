#!/usr/bin/env python3
"""
Tests for run log files and incident tracking.
"""

import logging
import sys
from pathlib import Path

# Add the src directory to the path
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

from fakes import FakeBrowserSession, FakeHttpSession, session_factory
from sitesnap import RunConfig, replicate
from sitesnap.core.logger import ERROR_LOG, PACKAGE_LOGGER, RUN_LOG, ErrorTracker, configure_logging


def detach_file_handlers():
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            handler.close()
            logger.removeHandler(handler)


def test_run_with_log_dir_writes_run_logs(tmp_path):
    log_dir = tmp_path / "logs"
    session = FakeBrowserSession(
        '<html><head></head><body><img src="/img/gone.png"></body></html>',
        styles=[{'kind': 'sheet', 'href': 'https://cdn.other.com/x.css', 'error': 'SecurityError'}],
    )
    try:
        result = replicate("example.com", str(tmp_path / "out"), config=RunConfig(log_dir=str(log_dir)),
                           session_factory=session_factory(session), http_session=FakeHttpSession())
        assert result.success
        for handler in logging.getLogger(PACKAGE_LOGGER).handlers:
            handler.flush()

        run_log = (log_dir / RUN_LOG).read_text(encoding="utf-8")
        assert "Snapshot started: https://example.com" in run_log
        assert "x.css" in run_log
        assert "gone.png" in run_log
        assert (log_dir / ERROR_LOG).read_text(encoding="utf-8") == ""
    finally:
        detach_file_handlers()


def test_configure_logging_twice_adds_no_handlers(tmp_path):
    try:
        logger = configure_logging(str(tmp_path))
        count = len(logger.handlers)
        configure_logging(str(tmp_path))
        assert len(logger.handlers) == count
        logging.getLogger("sitesnap.core.assets").error("asset error line")
        for handler in logger.handlers:
            handler.flush()
        assert "asset error line" in (tmp_path / ERROR_LOG).read_text(encoding="utf-8")
    finally:
        detach_file_handlers()


def test_error_tracker_by_stage():
    tracker = ErrorTracker(logging.getLogger("sitesnap.test"))
    tracker.log_warning("stylesheet skipped", context="style")
    tracker.log_warning("asset failed", context="fetch", url="https://example.com/a.png")
    tracker.log_warning("asset failed", context="fetch", url="https://example.com/b.png")
    try:
        raise ValueError("Timeout loading page")
    except ValueError as e:
        incident = tracker.log_error(e, context="session_open", url="https://example.com")

    assert incident.fatal and incident.error_type == "ValueError"
    assert tracker.warning_messages() == ["stylesheet skipped", "asset failed", "asset failed"]
    assert tracker.count("fetch") == 2
    assert tracker.stage_counts() == {"style": 1, "fetch": 2}
    assert [i.stage for i in tracker.errors] == ["session_open"]


if __name__ == "__main__":
    import tempfile
    for test in (test_run_with_log_dir_writes_run_logs, test_configure_logging_twice_adds_no_handlers):
        with tempfile.TemporaryDirectory() as d:
            test(Path(d))
    test_error_tracker_by_stage()
    print("✓ logging tests passed")
