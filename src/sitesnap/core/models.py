"""
Data model for a snapshot run: the target, the asset dedup index and
the values handed back to the caller.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class Target:
    url: str            # Absolute URL (post-normalization)
    output_dir: str
    sanitize: bool = False


@dataclass
class AssetRecord:
    absolute_url: str
    local_file_name: str
    fetched: bool = False


class AssetIndex:
    """
    Dedup index mapping absolute asset URL -> AssetRecord.

    A record is reserved (fetched=False) while its download is in flight,
    then either promoted or discarded. Downloads run on worker threads, so
    every mutation goes through the lock.
    """

    def __init__(self):
        self._records: Dict[str, AssetRecord] = {}
        self._lock = threading.Lock()

    def reserve(self, absolute_url: str, local_file_name: str) -> Optional[AssetRecord]:
        """Claim a URL for download. Returns None when it is already known."""
        with self._lock:
            if absolute_url in self._records:
                return None
            record = AssetRecord(absolute_url=absolute_url, local_file_name=local_file_name)
            self._records[absolute_url] = record
            return record

    def promote(self, absolute_url: str, local_file_name: Optional[str] = None) -> None:
        with self._lock:
            record = self._records[absolute_url]
            if local_file_name:
                record.local_file_name = local_file_name
            record.fetched = True

    def discard(self, absolute_url: str) -> None:
        with self._lock:
            self._records.pop(absolute_url, None)

    def lookup(self, absolute_url: str) -> Optional[AssetRecord]:
        """Return the record only if the asset is available locally."""
        with self._lock:
            record = self._records.get(absolute_url)
            if record and record.fetched:
                return record
            return None

    def fetched_records(self) -> List[AssetRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.fetched]

    def __contains__(self, absolute_url: str) -> bool:
        with self._lock:
            return absolute_url in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


@dataclass
class Bundle:
    html: str
    css: str
    asset_dir: str


@dataclass
class RunResult:
    success: bool
    html: str
    css: str
    output_dir: str
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    assets_fetched: int = 0
    assets_failed: int = 0
