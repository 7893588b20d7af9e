#!/usr/bin/env python3
"""
End-to-end pipeline tests with a fake browser session and HTTP session.
"""

import os
import sys
from pathlib import Path

# Add the src directory to the path
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

from bs4 import BeautifulSoup

from fakes import FakeBrowserSession, FakeHttpSession, session_factory
from sitesnap import RunConfig, replicate
from sitesnap.core.controller import RunState, SnapshotController
from sitesnap.core.errors import NavigationError
from sitesnap.core.models import Target
from sitesnap.utils.urls import PLACEHOLDER_IMAGE, asset_filename


PNG = b"\x89PNG\r\n\x1a\n" + b"1" * 128

GALLERY = """<!DOCTYPE html>
<html><head><title>Gallery</title></head>
<body>
  <img id="a" src="/img/a.png">
  <img id="b" src="https://example.com/img/b.png">
  <img id="c" src="img/c.png">
</body></html>"""


def run(session, http, out_dir, sanitize=False, target="example.com"):
    return replicate(target, str(out_dir), sanitize=sanitize, config=RunConfig(max_workers=4),
                     session_factory=session_factory(session), http_session=http)


def test_partial_asset_failure(tmp_path):
    session = FakeBrowserSession(GALLERY)
    http = FakeHttpSession({
        "https://example.com/img/a.png": (200, PNG),
        "https://example.com/img/b.png": (200, PNG),
        "https://example.com/img/c.png": (404, b"", "text/html"),
    })
    result = run(session, http, tmp_path)

    assert result.success, result.error
    assert result.assets_fetched == 2 and result.assets_failed == 1
    assert len(os.listdir(tmp_path / "assets")) == 2

    html = (tmp_path / "index.html").read_text(encoding="utf-8")
    assert html == result.html
    soup = BeautifulSoup(html, "lxml")
    assert soup.find(id="a")["src"] == "./assets/" + asset_filename("https://example.com/img/a.png")
    assert soup.find(id="b")["src"] == "./assets/" + asset_filename("https://example.com/img/b.png")
    assert soup.find(id="c")["src"] == PLACEHOLDER_IMAGE
    assert html.count(PLACEHOLDER_IMAGE) == 1
    assert "https://example.com/img/" not in html
    assert soup.head.find_all(True)[-1]["href"] == "./styles.css"
    assert session.close_calls == 1


def test_image_and_background_share_one_fetch(tmp_path):
    session = FakeBrowserSession(
        '<html><head></head><body><img src="/img/hero.png"><div class="hero"></div></body></html>',
        styles=[{'kind': 'inline', 'text': '.hero { background-image: url("/img/hero.png"); }'}],
        backgrounds=['url("https://example.com/img/hero.png")'],
    )
    http = FakeHttpSession({"https://example.com/img/hero.png": (200, PNG)})
    result = run(session, http, tmp_path)

    assert result.success
    assert http.count("https://example.com/img/hero.png") == 1
    local = "./assets/" + asset_filename("https://example.com/img/hero.png")
    assert f'src="{local}"' in result.html
    assert result.css == f".hero {{ background-image: url('{local}'); }}"
    assert (tmp_path / "styles.css").read_text(encoding="utf-8") == result.css


def test_encoded_background_matches_raw_stylesheet_url(tmp_path):
    encoded = "https://example.com/img/caf%C3%A9.png"
    session = FakeBrowserSession(
        '<html><head></head><body><div class="hero"></div></body></html>',
        styles=[{'kind': 'inline', 'text': '.hero { background-image: url("/img/caf\u00e9.png"); }'}],
        backgrounds=[f'url("{encoded}")'],
    )
    http = FakeHttpSession({encoded: (200, PNG)})
    result = run(session, http, tmp_path)

    assert result.success
    assert http.calls == [encoded]
    assert result.assets_fetched == 1
    assert result.css == f".hero {{ background-image: url('./assets/{asset_filename(encoded)}'); }}"


def test_custom_property_background_is_localized(tmp_path):
    session = FakeBrowserSession(
        '<html><head></head><body><div class="hero"></div></body></html>',
        styles=[{'kind': 'inline',
                 'text': ':root { --hero: url("https://cdn.example.com/hero.png"); } '
                         '.hero { background-image: var(--hero); }'}],
        backgrounds=['url("https://cdn.example.com/hero.png")'],
    )
    http = FakeHttpSession({"https://cdn.example.com/hero.png": (200, PNG)})
    result = run(session, http, tmp_path)

    assert result.success and result.assets_fetched == 1
    assert "https://cdn.example.com/hero.png" not in result.css
    assert f"--hero: url('./assets/{asset_filename('https://cdn.example.com/hero.png')}')" in result.css


def test_failed_background_becomes_none(tmp_path):
    session = FakeBrowserSession(
        '<html><head></head><body><div class="hero"></div></body></html>',
        styles=[{'kind': 'sheet', 'href': 'https://example.com/css/site.css',
                 'rules': ['.hero { background-image: url("../img/gone.jpg"); }']}],
        backgrounds=['url("https://example.com/img/gone.jpg")'],
    )
    result = run(session, FakeHttpSession(), tmp_path)
    assert result.success
    assert result.css == ".hero { background-image: none; }"
    assert "gone.jpg" not in result.css


def test_blocked_stylesheet_does_not_abort(tmp_path):
    session = FakeBrowserSession(
        '<html><head><style>p { color: red; }</style></head><body></body></html>',
        styles=[
            {'kind': 'sheet', 'href': 'https://fonts.other.com/x.css', 'error': 'SecurityError'},
            {'kind': 'inline', 'text': 'p { color: red; }'},
        ],
    )
    result = run(session, FakeHttpSession(), tmp_path)
    assert result.success
    assert result.css == 'p { color: red; }'
    assert any('x.css' in w for w in result.warnings)


def test_sanitize_run(tmp_path):
    session = FakeBrowserSession("""<html><head><script>if (a < b) { go(); }</script></head>
        <body onload="boot()"><a href="javascript:void(0)" onclick="x()">menu</a>
        <img src="/img/a.png"></body></html>""")
    http = FakeHttpSession({"https://example.com/img/a.png": (200, PNG)})
    result = run(session, http, tmp_path, sanitize=True)

    assert result.success
    assert session.javascript_enabled is False
    soup = BeautifulSoup((tmp_path / "index.html").read_text(encoding="utf-8"), "lxml")
    assert soup.find("script") is None
    assert all(not a.startswith("on") for el in soup.find_all(True) for a in el.attrs)
    assert soup.a["href"] == "#"


def test_target_is_normalized_before_loading(tmp_path):
    session = FakeBrowserSession("<html><head></head><body></body></html>")
    http = FakeHttpSession()
    run(session, http, tmp_path, target="example.com")
    assert session.navigated == ["https://example.com"]
    assert http.calls == []


def test_navigation_timeout_is_fatal(tmp_path):
    session = FakeBrowserSession(GALLERY, nav_error=NavigationError("Timeout after 30000ms loading https://example.com"))
    http = FakeHttpSession()
    controller = SnapshotController(Target("https://example.com", str(tmp_path / "out")),
                                    session_factory=session_factory(session), http_session=http)
    result = controller.run()

    assert not result.success
    assert "Timeout" in result.error
    assert result.html == "" and result.css == ""
    assert session.close_calls == 1
    assert controller.history == [RunState.IDLE, RunState.SESSION_OPEN, RunState.CLOSED]
    assert not (tmp_path / "out").exists()
    assert http.calls == []


def test_state_history_of_a_sanitized_run(tmp_path):
    session = FakeBrowserSession("<html><head></head><body></body></html>")
    controller = SnapshotController(Target("https://example.com", str(tmp_path), sanitize=True),
                                    session_factory=session_factory(session), http_session=FakeHttpSession())
    assert controller.run().success
    assert controller.history == [
        RunState.IDLE, RunState.SESSION_OPEN, RunState.PAGE_LOADED, RunState.STYLE_EXTRACTED,
        RunState.ASSETS_FETCHED, RunState.REFERENCES_REWRITTEN, RunState.SANITIZED,
        RunState.PERSISTED, RunState.CLOSED,
    ]


def test_unwritable_output_is_fatal(tmp_path):
    blocker = tmp_path / "taken"
    blocker.write_text("file in the way")
    session = FakeBrowserSession(GALLERY)
    result = run(session, FakeHttpSession(), blocker)
    assert not result.success
    assert result.output_dir == str(blocker)
    assert session.close_calls == 1


def test_never_raises(tmp_path):
    def exploding_factory(config, javascript_enabled=True):
        raise RuntimeError("no browser here")

    result = replicate("example.com", str(tmp_path), session_factory=exploding_factory)
    assert not result.success
    assert "no browser here" in result.error

    class BrokenContent(FakeBrowserSession):
        def content(self):
            raise RuntimeError("target closed")

    session = BrokenContent("<html></html>")
    result = run(session, FakeHttpSession(), tmp_path / "b")
    assert not result.success
    assert session.close_calls == 1

    result = replicate(None, str(tmp_path / "c"), session_factory=session_factory(FakeBrowserSession("")),
                       http_session=FakeHttpSession())
    assert result.output_dir == str(tmp_path / "c")


def test_default_output_dir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = replicate("example.com", session_factory=session_factory(FakeBrowserSession(GALLERY)),
                       http_session=FakeHttpSession())
    assert result.success
    assert result.output_dir.startswith("replica_")
    assert (tmp_path / result.output_dir / "index.html").exists()


def test_runs_are_reproducible(tmp_path):
    def snapshot(out_dir):
        session = FakeBrowserSession(
            GALLERY,
            styles=[{'kind': 'inline', 'text': 'body { background: url(/img/a.png) repeat; }'}],
            backgrounds=['url("https://example.com/img/a.png")'],
        )
        http = FakeHttpSession({
            "https://example.com/img/a.png": (200, PNG),
            "https://example.com/img/b.png": (200, PNG),
        })
        assert run(session, http, out_dir).success

    snapshot(tmp_path / "one")
    snapshot(tmp_path / "two")
    for name in ("index.html", "styles.css"):
        assert (tmp_path / "one" / name).read_bytes() == (tmp_path / "two" / name).read_bytes()
    assert sorted(os.listdir(tmp_path / "one" / "assets")) == sorted(os.listdir(tmp_path / "two" / "assets"))
