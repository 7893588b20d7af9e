"""
Run configuration for the snapshot pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)


@dataclass
class RunConfig:
    navigation_timeout_ms: int = 30000
    wait_until: str = "networkidle"  # load|domcontentloaded|networkidle|commit
    viewport_width: int = 1920
    viewport_height: int = 1080
    user_agent: str = DEFAULT_USER_AGENT
    headless: bool = True
    max_workers: int = 8  # concurrent asset downloads
    asset_timeout: float = 30.0
    log_dir: Optional[str] = None  # rotating run/error logs when set
