"""
Asset discovery and download utilities.

This module finds the images a rendered page depends on (img sources,
srcset candidates and computed background images) and downloads them
concurrently into the bundle's assets directory. Every URL is fetched at
most once per run; a failed download leaves no trace in the index.
"""

from __future__ import annotations

import os
import mimetypes
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Iterable, List, Optional, Set

import requests

from .models import AssetIndex
from ..utils.urls import (
    asset_filename,
    extract_css_urls,
    is_data_uri,
    is_http_url,
    parse_srcset,
    resolve_url,
)


IMAGE_SOURCES_SCRIPT = """() => {
  const values = [];
  for (const img of Array.from(document.querySelectorAll('img'))) {
    const src = img.getAttribute('src');
    if (src) values.push({attr: 'src', value: src});
    const srcset = img.getAttribute('srcset');
    if (srcset) values.push({attr: 'srcset', value: srcset});
  }
  for (const source of Array.from(document.querySelectorAll('picture source[srcset]'))) {
    values.push({attr: 'srcset', value: source.getAttribute('srcset')});
  }
  return values;
}"""

BACKGROUND_IMAGES_SCRIPT = """() => {
  const values = new Set();
  for (const el of Array.from(document.querySelectorAll('*'))) {
    const bg = window.getComputedStyle(el).backgroundImage;
    if (bg && bg !== 'none' && bg.indexOf('url(') !== -1) values.add(bg);
  }
  return Array.from(values);
}"""


class AssetDiscoverer:
    def __init__(self, tracker=None):
        self.logger = logging.getLogger(__name__)
        self.tracker = tracker

    def discover(self, session) -> Set[str]:
        """
        Return the set of (possibly relative) asset URLs referenced by the page.
        Data URIs are excluded. A failing page query contributes nothing.
        """
        urls: Set[str] = set()

        try:
            image_values = session.evaluate(IMAGE_SOURCES_SCRIPT) or []
            urls.update(self.image_urls(image_values))
        except Exception as e:
            self._warn(f"Image discovery failed: {e}")

        try:
            backgrounds = session.evaluate(BACKGROUND_IMAGES_SCRIPT) or []
            urls.update(self.background_urls(backgrounds))
        except Exception as e:
            self._warn(f"Background image discovery failed: {e}")

        self.logger.info(f"Discovered {len(urls)} asset URLs")
        return urls

    def image_urls(self, values: Iterable[dict]) -> Set[str]:
        found: Set[str] = set()
        for item in values:
            value = (item.get('value') or '').strip()
            if not value:
                continue
            candidates = parse_srcset(value) if item.get('attr') == 'srcset' else [value]
            for candidate in candidates:
                if candidate and not is_data_uri(candidate):
                    found.add(candidate)
        return found

    def background_urls(self, values: Iterable[str]) -> Set[str]:
        found: Set[str] = set()
        for value in values:
            # A layered declaration can hold several url() references
            found.update(extract_css_urls(value))
        return found

    def _warn(self, message: str) -> None:
        if self.tracker:
            self.tracker.log_warning(message, context='discovery')
        else:
            self.logger.warning(message)


class AssetFetcher:
    """
    Downloads discovered assets on a bounded thread pool.

    The batch waits for every attempt to settle; one failure never cancels
    the others, and nothing is retried.
    """

    def __init__(self, session: Optional[requests.Session] = None, max_workers: int = 8,
                 timeout: float = 30.0, user_agent: Optional[str] = None, tracker=None):
        self.logger = logging.getLogger(__name__)
        self.max_workers = max(1, max_workers)
        self.timeout = timeout
        self.tracker = tracker
        self.failed: List[str] = []
        if session is None:
            session = requests.Session()
            session.headers.update({
                'User-Agent': user_agent or 'sitesnap/1.0 (AssetFetcher)'
            })
        self.session = session

    def fetch_all(self, urls: Iterable[str], base_url: str, assets_dir: str,
                  index: Optional[AssetIndex] = None) -> AssetIndex:
        """
        Fetch every URL not yet present in the index.

        Args:
            urls: Discovered asset URLs, possibly relative
            base_url: URL the relative references are resolved against
            assets_dir: Directory the downloaded files are written to
            index: Dedup index shared with the rewriter (created if None)

        Returns:
            The populated index
        """
        if index is None:
            index = AssetIndex()

        pending = []
        for raw in sorted(set(urls)):
            try:
                absolute = resolve_url(base_url, raw)
            except ValueError as e:
                self.logger.warning(f"Unresolvable asset URL {raw!r}: {e}")
                continue
            if not is_http_url(absolute):
                self.logger.debug(f"Skipping non-HTTP asset: {absolute}")
                continue
            record = index.reserve(absolute, asset_filename(absolute))
            if record is None:
                continue
            pending.append(record)

        if not pending:
            return index

        self.logger.info(f"Fetching {len(pending)} assets with {min(self.max_workers, len(pending))} workers")
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(pending))) as ex:
            futures = [ex.submit(self._fetch_one, r.absolute_url, r.local_file_name, assets_dir, index)
                       for r in pending]
            wait(futures)

        fetched = len(index.fetched_records())
        self.logger.info(f"Asset download complete: {fetched} fetched, {len(self.failed)} failed")
        return index

    def _fetch_one(self, absolute_url: str, file_name: str, assets_dir: str, index: AssetIndex) -> bool:
        try:
            resp = self.session.get(absolute_url, timeout=self.timeout)
            if not 200 <= resp.status_code < 300:
                raise requests.HTTPError(f"HTTP {resp.status_code}", response=resp)
            if not os.path.splitext(file_name)[1]:
                file_name += self._guess_extension(resp.headers.get('Content-Type', ''))
            local_path = os.path.join(assets_dir, file_name)
            with open(local_path, 'wb') as f:
                f.write(resp.content)
            index.promote(absolute_url, file_name)
            return True
        except Exception as e:
            self._drop(absolute_url, index, e)
            return False

    def _drop(self, absolute_url: str, index: AssetIndex, error: Exception) -> None:
        index.discard(absolute_url)
        self.failed.append(absolute_url)
        message = f"Failed to download asset: {absolute_url} ({error})"
        if self.tracker:
            self.tracker.log_warning(message, context='fetch', url=absolute_url)
        else:
            self.logger.warning(message)

    def _guess_extension(self, content_type: str) -> str:
        mime = content_type.split(';')[0].strip().lower()
        if not mime:
            return ''
        if mime == 'image/jpeg':
            return '.jpg'
        return mimetypes.guess_extension(mime) or ''
