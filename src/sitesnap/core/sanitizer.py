"""
Active Content Sanitizer

This module strips executable content from the final snapshot markup:
script elements, inline event handler attributes and javascript: links.
"""

from bs4 import BeautifulSoup
import logging
from typing import Callable, List, Tuple


class Sanitizer:
    """
    Removes active content from snapshot markup.

    Runs three independent steps on the current string:
    - Remove every <script> element
    - Remove every on* event handler attribute
    - Replace javascript: hrefs with "#"

    A step that fails leaves its input unchanged and the next step still runs.
    """

    def __init__(self, tracker=None):
        self.logger = logging.getLogger(__name__)
        self.tracker = tracker
        self.steps: List[Tuple[str, Callable[[BeautifulSoup], int]]] = [
            ('scripts', self._remove_scripts),
            ('event handlers', self._remove_event_handlers),
            ('javascript links', self._neutralize_javascript_links),
        ]

    def sanitize(self, html: str) -> str:
        """
        Sanitize snapshot markup.

        Args:
            html: Markup after reference rewriting

        Returns:
            Markup without scripts, on* attributes or javascript: hrefs
        """
        for name, step in self.steps:
            html = self._apply(name, step, html)
        return html

    def _apply(self, name: str, step: Callable[[BeautifulSoup], int], html: str) -> str:
        try:
            soup = BeautifulSoup(html, 'lxml')
            changed = step(soup)
            if not changed:
                return html
            self.logger.debug(f"Sanitizer removed {changed} {name}")
            return str(soup)
        except Exception as e:
            message = f"Sanitizer step '{name}' failed: {e}"
            if self.tracker:
                self.tracker.log_warning(message, context='sanitize')
            else:
                self.logger.warning(message)
            return html

    def _remove_scripts(self, soup: BeautifulSoup) -> int:
        scripts = soup.find_all('script')
        for script in scripts:
            script.decompose()
        return len(scripts)

    def _remove_event_handlers(self, soup: BeautifulSoup) -> int:
        removed = 0
        for element in soup.find_all(True):
            handlers = [attr for attr in element.attrs if attr.lower().startswith('on')]
            for attr in handlers:
                del element.attrs[attr]
            removed += len(handlers)
        return removed

    def _neutralize_javascript_links(self, soup: BeautifulSoup) -> int:
        replaced = 0
        for element in soup.find_all(href=True):
            href = element['href']
            # Browsers ignore embedded tabs/newlines in the scheme
            compact = ''.join(href.split()).lower()
            if compact.startswith('javascript:'):
                element['href'] = '#'
                replaced += 1
        return replaced
