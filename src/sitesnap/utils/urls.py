"""
URL Utilities

This module provides URL normalization, resolution and naming helpers
for the snapshot pipeline.
"""

import hashlib
import os
import posixpath
import re
from typing import List, Optional
from urllib.parse import urljoin, urldefrag, urlparse, unquote

from requests.utils import requote_uri


PLACEHOLDER_IMAGE = (
    "data:image/svg+xml;base64,"
    "PHN2ZyB3aWR0aD0iMSIgaGVpZ2h0PSIxIiB4bWxucz0iaHR0cDovL3d3dy53My5vcmcvMjAwMC9zdmciPjwvc3ZnPg=="
)

ASSETS_DIRNAME = "assets"

_SCHEME_RE = re.compile(r'^https?://', re.I)
_CSS_URL_RE = re.compile(r"url\(\s*([^)]*?)\s*\)", re.I)


def normalize_url(identifier) -> str:
    """
    Canonicalize a user supplied target into an absolute URL.

    Anything that does not already carry an http(s) scheme gets
    ``https://`` prepended. Never raises.

    Args:
        identifier: Host name or URL typed by the user

    Returns:
        Absolute URL string
    """
    if identifier is None:
        identifier = ""
    url = str(identifier).strip()
    if _SCHEME_RE.match(url):
        return url
    return f"https://{url}"


def resolve_url(base_url: str, ref: str) -> str:
    """
    Resolve a possibly relative reference against the page URL.

    The result has no fragment and is percent-encoded the way the browser
    reports computed URLs, so `hero image.png` in markup and `hero%20image.png`
    from a computed style are the same key.
    """
    absolute = urljoin(base_url, ref.strip())
    return requote_uri(urldefrag(absolute)[0])


def is_http_url(url: str) -> bool:
    try:
        return urlparse(url).scheme in ('http', 'https')
    except ValueError:
        return False


def is_data_uri(value: str) -> bool:
    return value.strip().lower().startswith('data:')


def is_relative_path(value: str) -> bool:
    """True for explicit ./ or ../ paths, which already point into the bundle."""
    return value.startswith('./') or value.startswith('../')


def asset_filename(absolute_url: str) -> str:
    """
    Derive the local file name for an asset.

    The last path segment is kept as a readable stem and a short hash of the
    full URL is always appended, so /a/logo.png and /b/logo.png never share a
    file and the same URL always maps to the same name.

    Args:
        absolute_url: Resolved asset URL

    Returns:
        File name for the assets directory
    """
    digest = hashlib.sha1(absolute_url.encode('utf-8')).hexdigest()[:10]
    path = urlparse(absolute_url).path
    basename = posixpath.basename(unquote(path))

    stem, ext = os.path.splitext(basename)
    stem = re.sub(r'[^\w\-.]', '_', stem)
    stem = re.sub(r'_+', '_', stem).strip('_.')
    ext = re.sub(r'[^\w.]', '', ext)[:10].lower()

    if not stem:
        return f"asset-{digest}{ext}"
    return f"{stem[:60]}-{digest}{ext}"


def asset_relpath(file_name: str) -> str:
    """Path of an asset as referenced from index.html and styles.css."""
    return f"./{ASSETS_DIRNAME}/{file_name}"


def extract_css_urls(css_text: str) -> List[str]:
    """Return every url(...) target in a CSS value, in order, skipping data URIs."""
    urls = []
    for match in _CSS_URL_RE.finditer(css_text or ''):
        raw = match.group(1).strip().strip('"\'').strip()
        if not raw or is_data_uri(raw):
            continue
        urls.append(raw)
    return urls


def replace_css_urls(css_text: str, repl) -> str:
    """
    Apply ``repl(raw_url)`` to every url(...) token.

    ``repl`` returns the replacement text for the whole token, or None to
    leave it as it was.
    """
    def _sub(m):
        raw = m.group(1).strip().strip('"\'').strip()
        replacement = repl(raw)
        return m.group(0) if replacement is None else replacement

    return _CSS_URL_RE.sub(_sub, css_text)


def absolutize_css_urls(css_text: str, base_url: Optional[str]) -> str:
    """Make relative url(...) tokens absolute against the stylesheet's own URL."""
    if not base_url:
        return css_text

    def repl(raw: str) -> Optional[str]:
        if not raw or is_data_uri(raw) or raw.startswith('#'):
            return None
        try:
            absolute = urljoin(base_url, raw)
        except ValueError:
            # malformed token, kept as written
            return None
        if absolute == raw:
            return None
        return f'url("{absolute}")'

    return replace_css_urls(css_text, repl)


def parse_srcset(srcset: str) -> List[str]:
    # srcset entries are comma-separated; each entry has URL + descriptor
    candidates = []
    for part in srcset.split(','):
        item = part.strip()
        if not item:
            continue
        candidates.append(item.split()[0])
    return candidates
