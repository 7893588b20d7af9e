"""
Offline stand-ins for the browser session and the HTTP session, used by
the tests to drive the pipeline without a network or a browser.
"""

import sys
import threading
import time
from pathlib import Path

import requests
from bs4 import BeautifulSoup

# Add the src directory to the path
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

from sitesnap.core.assets import BACKGROUND_IMAGES_SCRIPT, IMAGE_SOURCES_SCRIPT
from sitesnap.core.errors import NavigationError
from sitesnap.core.styles import STYLE_SCRIPT


class FakeBrowserSession:
    """
    Serves canned page state.

    ``styles`` is the list of stylesheet entries the page script would
    report; ``backgrounds`` the distinct computed background-image values.
    Image sources are read from the markup unless given explicitly.
    """

    def __init__(self, html, url="https://example.com/", styles=None, backgrounds=None,
                 images=None, nav_error=None, failing_scripts=()):
        self.html = html
        self.final_url = url
        self.styles = styles or []
        self.backgrounds = backgrounds or []
        self.images = images
        self.nav_error = nav_error
        self.failing_scripts = set(failing_scripts)
        self.javascript_enabled = True
        self.opened = False
        self.navigated = []
        self.close_calls = 0

    def open(self):
        self.opened = True
        return self

    def navigate(self, url, timeout_ms=30000, wait_until="networkidle"):
        self.navigated.append(url)
        if self.nav_error:
            raise self.nav_error

    @property
    def url(self):
        return self.final_url

    def evaluate(self, script):
        if script in self.failing_scripts:
            raise RuntimeError("Execution context was destroyed")
        if script == STYLE_SCRIPT:
            return self.styles
        if script == IMAGE_SOURCES_SCRIPT:
            if self.images is not None:
                return self.images
            return self._images_from_markup()
        if script == BACKGROUND_IMAGES_SCRIPT:
            return self.backgrounds
        raise AssertionError("unexpected script")

    def content(self):
        return self.html

    def close(self):
        self.close_calls += 1

    def _images_from_markup(self):
        soup = BeautifulSoup(self.html, 'lxml')
        values = []
        for img in soup.find_all('img'):
            if img.get('src'):
                values.append({'attr': 'src', 'value': img['src']})
            if img.get('srcset'):
                values.append({'attr': 'srcset', 'value': img['srcset']})
        return values


def session_factory(session):
    """Build a factory with the signature the controller expects."""
    def factory(config, javascript_enabled=True):
        session.javascript_enabled = javascript_enabled
        return session
    return factory


class FakeResponse:
    def __init__(self, status_code=200, content=b'', content_type='image/png'):
        self.status_code = status_code
        self.content = content
        self.headers = {'Content-Type': content_type}


class FakeHttpSession:
    """
    Maps URL -> (status, body[, content type]). Unknown URLs raise a
    connection error, as an unreachable host would.
    """

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.calls = []
        self._lock = threading.Lock()

    def get(self, url, timeout=None):
        with self._lock:
            self.calls.append(url)
        if url not in self.responses:
            raise requests.ConnectionError(f"Failed to resolve {url}")
        status, body, *rest = self.responses[url]
        content_type = rest[0] if rest else 'image/png'
        return FakeResponse(status, body, content_type)

    def count(self, url):
        return self.calls.count(url)


class BarrierHttpSession(FakeHttpSession):
    """
    Holds every request until ``parties`` requests are in flight at once.

    Requests made one after another break the barrier after ``timeout``
    seconds and fail. ``delays`` maps URL -> seconds to stall after the
    barrier releases.
    """

    def __init__(self, responses=None, parties=2, timeout=5.0, delays=None):
        super().__init__(responses)
        self.barrier = threading.Barrier(parties, timeout=timeout)
        self.delays = delays or {}
        self.in_flight = 0
        self.peak_in_flight = 0

    def get(self, url, timeout=None):
        with self._lock:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            self.barrier.wait()
            time.sleep(self.delays.get(url, 0))
            return super().get(url, timeout)
        finally:
            with self._lock:
                self.in_flight -= 1
