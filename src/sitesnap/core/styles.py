"""
Stylesheet extraction from a rendered page.

Collects inline <style> blocks and the CSSOM rules of every other attached
stylesheet. Stylesheets the page may not read (cross-origin) are skipped;
the rest are still collected.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from ..utils.urls import absolutize_css_urls


# Reports one entry per stylesheet, in document order. Inline <style> blocks
# are reported as text; reading cssRules of a cross-origin sheet throws, in
# which case the error is reported instead of the rules.
STYLE_SCRIPT = """() => {
  const entries = [];
  for (const sheet of Array.from(document.styleSheets)) {
    const owner = sheet.ownerNode;
    if (owner && owner.tagName && owner.tagName.toLowerCase() === 'style') {
      entries.push({kind: 'inline', text: owner.textContent || ''});
      continue;
    }
    try {
      const rules = Array.from(sheet.cssRules || sheet.rules || []);
      entries.push({kind: 'sheet', href: sheet.href, rules: rules.map(r => r.cssText)});
    } catch (e) {
      entries.push({kind: 'sheet', href: sheet.href, error: String(e)});
    }
  }
  const seen = new Set(Array.from(document.styleSheets).map(s => s.ownerNode));
  for (const style of Array.from(document.querySelectorAll('style'))) {
    if (!seen.has(style) && style.textContent) {
      entries.push({kind: 'inline', text: style.textContent});
    }
  }
  return entries;
}"""


class StyleExtractor:
    def __init__(self, tracker=None):
        self.logger = logging.getLogger(__name__)
        self.tracker = tracker

    def extract(self, session) -> str:
        """
        Collect all style text applicable to the loaded document.

        Returns:
            The collected CSS, one chunk per line, or an empty string when
            extraction fails altogether.
        """
        try:
            entries = session.evaluate(STYLE_SCRIPT) or []
            chunks = self.collect(entries)
            css = '\n'.join(chunks)
            self.logger.info(f"Extracted {len(chunks)} style chunks ({len(css)} chars)")
            return css
        except Exception as e:
            self._warn(f"Style extraction failed: {e}")
            return ''

    def collect(self, entries: List[Any]) -> List[str]:
        chunks: List[str] = []
        skipped = 0
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            if entry.get('kind') == 'inline':
                text = (entry.get('text') or '').strip()
                if text:
                    chunks.append(text)
                continue

            href: Optional[str] = entry.get('href')
            if entry.get('error') is not None or entry.get('rules') is None:
                skipped += 1
                self._warn(f"Skipping unreadable stylesheet {href or '(anonymous)'}: {entry.get('error')}")
                continue
            for rule in entry['rules']:
                if rule:
                    # cssText keeps url() relative to the stylesheet, not the page
                    chunks.append(absolutize_css_urls(rule, href))

        if skipped:
            self.logger.debug(f"Skipped {skipped} unreadable stylesheets")
        return chunks

    def _warn(self, message: str) -> None:
        if self.tracker:
            self.tracker.log_warning(message, context='style')
        else:
            self.logger.warning(message)
