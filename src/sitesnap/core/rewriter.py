"""
Reference rewriting for the snapshot bundle.

Points image sources and background images at the downloaded copies in
assets/, or at a safe placeholder when the download did not succeed.
Markup is rewritten on a parsed tree rather than with patterns over the
serialized text. Each pass returns its input unchanged if it fails.
"""

from __future__ import annotations

import re
import logging
from typing import Collection, Optional, Tuple

from bs4 import BeautifulSoup

from .models import AssetIndex
from ..utils.urls import (
    PLACEHOLDER_IMAGE,
    asset_relpath,
    is_data_uri,
    is_relative_path,
    replace_css_urls,
    resolve_url,
)


IMAGE_SOURCE_TAGS = ['img', 'source', 'input', 'image']

# background, background-image and custom property declarations; url(...) is
# matched whole so a ';' inside a data URI does not end the value early
_BACKGROUND_DECL_RE = re.compile(
    r"(?<![\w-])(background(?:-image)?\s*:|--[\w-]+\s*:)((?:url\([^)]*\)|[^;{}])*)",
    re.I,
)


class ReferenceRewriter:
    def __init__(self, tracker=None):
        self.logger = logging.getLogger(__name__)
        self.tracker = tracker

    def rewrite(self, html: str, css: str, base_url: str, index: AssetIndex,
                failed: Collection[str] = ()) -> Tuple[str, str]:
        """
        Run every pass and return the rewritten (html, css).

        ``failed`` holds the absolute URLs whose download was attempted and
        did not succeed.
        """
        failed = set(failed)
        html = self.rewrite_sources(html, base_url, index)
        html = self.rewrite_markup_backgrounds(html, base_url, index, failed)
        css = self.rewrite_backgrounds(css, base_url, index, failed)
        return html, css

    def rewrite_sources(self, html: str, base_url: str, index: AssetIndex) -> str:
        """
        Rewrite src/srcset attributes of image elements.

        Fetched assets become assets/<name>; anything else becomes a 1x1
        transparent placeholder. Data URIs and ./ or ../ paths are kept.
        """
        try:
            soup = BeautifulSoup(html, 'lxml')
            rewritten = 0
            for tag in soup.find_all(IMAGE_SOURCE_TAGS):
                if tag.name == 'source' and (tag.parent is None or tag.parent.name != 'picture'):
                    # <video>/<audio> media, not an image
                    continue
                src = tag.get('src')
                if src is not None:
                    new_src = self._local_source(src, base_url, index)
                    if new_src != src:
                        tag['src'] = new_src
                        rewritten += 1

                srcset = tag.get('srcset')
                if srcset is not None:
                    new_srcset = self._rewrite_srcset(srcset, base_url, index)
                    if new_srcset:
                        tag['srcset'] = new_srcset
                    else:
                        del tag['srcset']

            self.logger.debug(f"Rewrote {rewritten} image sources")
            return str(soup)
        except Exception as e:
            self._warn(f"Image source rewrite failed: {e}")
            return html

    def rewrite_backgrounds(self, css: str, base_url: str, index: AssetIndex,
                            failed: Collection[str] = ()) -> str:
        """
        Rewrite url(...) references inside background declarations.

        Unavailable images become ``none``, which is valid both for a single
        background-image and for each layer of a layered value. In custom
        properties (``--hero: url(...)``) only fetched URLs and URLs in
        ``failed`` are touched; other url() values there (fonts, masks) are
        not images this run knows about.
        """
        try:
            def repl_decl(m):
                if m.group(1).startswith('--'):
                    fix = lambda raw: self._local_custom_property(raw, base_url, index, failed)
                else:
                    fix = lambda raw: self._local_background(raw, base_url, index)
                value = replace_css_urls(m.group(2), fix)
                return m.group(1) + value

            return _BACKGROUND_DECL_RE.sub(repl_decl, css)
        except Exception as e:
            self._warn(f"Background image rewrite failed: {e}")
            return css

    def rewrite_markup_backgrounds(self, html: str, base_url: str, index: AssetIndex,
                                   failed: Collection[str] = ()) -> str:
        """Apply the background pass to <style> blocks and style attributes."""
        try:
            soup = BeautifulSoup(html, 'lxml')

            for style_tag in soup.find_all('style'):
                css_text = style_tag.string or ''
                new_css = self.rewrite_backgrounds(css_text, base_url, index, failed)
                if new_css != css_text:
                    style_tag.string = new_css

            for el in soup.find_all(style=True):
                style = el.get('style', '')
                new_style = self.rewrite_backgrounds(style, base_url, index, failed)
                if new_style != style:
                    el['style'] = new_style

            return str(soup)
        except Exception as e:
            self._warn(f"Inline background rewrite failed: {e}")
            return html

    def _local_source(self, src: str, base_url: str, index: AssetIndex) -> str:
        if is_data_uri(src) or is_relative_path(src):
            return src
        local = self._lookup(src, base_url, index)
        return local if local else PLACEHOLDER_IMAGE

    def _local_background(self, raw: str, base_url: str, index: AssetIndex) -> Optional[str]:
        if not raw or is_data_uri(raw) or is_relative_path(raw):
            return None
        local = self._lookup(raw, base_url, index)
        return f"url('{local}')" if local else 'none'

    def _local_custom_property(self, raw: str, base_url: str, index: AssetIndex,
                               failed: Collection[str]) -> Optional[str]:
        if not raw or is_data_uri(raw) or is_relative_path(raw):
            return None
        local = self._lookup(raw, base_url, index)
        if local:
            return f"url('{local}')"
        try:
            absolute = resolve_url(base_url, raw)
        except ValueError:
            return None
        return 'none' if absolute in failed else None

    def _rewrite_srcset(self, srcset: str, base_url: str, index: AssetIndex) -> str:
        parts = []
        for part in srcset.split(','):
            item = part.strip()
            if not item:
                continue
            tokens = item.split()
            url_only = tokens[0]
            descriptor = ' '.join(tokens[1:])
            if is_data_uri(url_only) or is_relative_path(url_only):
                parts.append(item)
                continue
            local = self._lookup(url_only, base_url, index)
            if local:
                parts.append(f"{local} {descriptor}".strip())
        return ', '.join(parts)

    def _lookup(self, ref: str, base_url: str, index: AssetIndex) -> Optional[str]:
        try:
            absolute = resolve_url(base_url, ref)
        except ValueError:
            return None
        record = index.lookup(absolute)
        return asset_relpath(record.local_file_name) if record else None

    def _warn(self, message: str) -> None:
        if self.tracker:
            self.tracker.log_warning(message, context='rewrite')
        else:
            self.logger.warning(message)
