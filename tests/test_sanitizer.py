"""Tests for HTML sanitization and archive-document preparation.

Everything here runs on plain strings through BeautifulSoup; no browser is
involved.
"""

from __future__ import annotations

from bs4 import BeautifulSoup

from archiver.capture.sanitizer import (
    _parse_srcset,
    is_script_url,
    prepare_document,
    sanitize_html,
)

_BASE = "https://blog.example.com/posts/hello"
_PROXY = "https://host.test"


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


# ---------------------------------------------------------------------------
# sanitize_html
# ---------------------------------------------------------------------------

class TestSanitizeHtml:
    def test_removes_script_elements(self) -> None:
        html = (
            "<html><head><script src='/app.js'></script></head>"
            "<body><p>hi</p><script>alert(1)</script></body></html>"
        )
        out = sanitize_html(html)
        assert "<script" not in out.lower()
        assert "alert(1)" not in out
        assert "<p>hi</p>" in out

    def test_removes_event_handler_attributes(self) -> None:
        out = sanitize_html('<div onclick="steal()" ONMOUSEOVER="x()" class="a">t</div>')
        div = _soup(out).find("div")
        assert div.attrs == {"class": ["a"]}

    def test_removes_javascript_urls(self) -> None:
        html = (
            '<a href=" JaVaScript:alert(1)">a</a>'
            '<a href="java\tscript:alert(2)">b</a>'
            '<iframe src="vbscript:msgbox(1)"></iframe>'
            '<form action="javascript:void(0)"></form>'
        )
        soup = _soup(sanitize_html(html))
        assert [a.get("href") for a in soup.find_all("a")] == [None, None]
        assert soup.find("iframe").get("src") is None
        assert soup.find("form").get("action") is None

    def test_keeps_safe_urls(self) -> None:
        out = sanitize_html('<a href="https://example.com/javascript:guide">x</a>')
        assert _soup(out).find("a")["href"] == "https://example.com/javascript:guide"

    def test_removes_script_marker_data_attributes(self) -> None:
        out = sanitize_html('<div data-js="init" data-script="x" data-on="y" data-id="7"></div>')
        assert _soup(out).find("div").attrs == {"data-id": "7"}

    def test_no_surviving_script_surface(self) -> None:
        html = (
            "<body onload='x()'><img src=x onerror='y()'>"
            "<svg><a xlink:href='javascript:z()'>s</a></svg>"
            "<script>1</script></body>"
        )
        soup = _soup(sanitize_html(html))
        assert soup.find("script") is None
        for tag in soup.find_all(True):
            for name, value in tag.attrs.items():
                assert not name.startswith("on")
                if isinstance(value, str):
                    assert not is_script_url(value)


class TestIsScriptUrl:
    def test_control_characters_are_ignored(self) -> None:
        assert is_script_url("\x01java\nscript:alert(1)") is True

    def test_plain_url(self) -> None:
        assert is_script_url("https://example.com/") is False


# ---------------------------------------------------------------------------
# prepare_document
# ---------------------------------------------------------------------------

class TestPrepareDocument:
    def test_adds_viewport_meta(self) -> None:
        out = prepare_document("<html><head><title>T</title></head><body></body></html>", _BASE, _PROXY)
        meta = _soup(out).find("meta", attrs={"name": "viewport"})
        assert meta["content"] == "width=device-width, initial-scale=1.0"

    def test_creates_head_when_missing(self) -> None:
        out = prepare_document("<html><body><p>x</p></body></html>", _BASE, _PROXY)
        soup = _soup(out)
        assert soup.head is not None
        assert soup.head.find("meta", attrs={"name": "viewport"}) is not None

    def test_keeps_existing_viewport(self) -> None:
        html = '<html><head><meta name="viewport" content="width=320"></head></html>'
        soup = _soup(prepare_document(html, _BASE, _PROXY))
        metas = soup.find_all("meta", attrs={"name": "viewport"})
        assert [m["content"] for m in metas] == ["width=320"]

    def test_removes_stylesheets_and_resource_hints(self) -> None:
        html = (
            "<html><head>"
            '<link rel="stylesheet" href="/a.css">'
            '<link rel="preload" href="/font.woff2">'
            '<link rel="dns-prefetch" href="//cdn.example">'
            '<link rel="icon" href="/favicon.ico">'
            "<style>p{color:red}</style>"
            "</head><body></body></html>"
        )
        soup = _soup(prepare_document(html, _BASE, _PROXY))
        assert [link["rel"] for link in soup.find_all("link")] == [["icon"]]
        assert soup.find("style") is None

    def test_proxies_cross_origin_images(self) -> None:
        html = '<img src="https://images.other.com/a.png">'
        img = _soup(prepare_document(html, _BASE, _PROXY)).find("img")
        assert img["src"] == "https://host.test/api/asset-proxy?url=https%3A%2F%2Fimages.other.com%2Fa.png"

    def test_plain_http_images_are_not_proxied(self) -> None:
        img = _soup(prepare_document('<img src="http://images.other.com/a.png">', _BASE, _PROXY)).find("img")
        assert img["src"] == "http://images.other.com/a.png"

    def test_same_origin_images_become_absolute(self) -> None:
        img = _soup(prepare_document('<img src="/local.png">', _BASE, _PROXY)).find("img")
        assert img["src"] == "https://blog.example.com/local.png"

    def test_trusted_and_data_images_are_not_proxied(self) -> None:
        html = (
            '<img id="a" src="https://cdn.jsdelivr.net/x.png">'
            '<img id="b" src="data:image/png;base64,AAAA">'
        )
        soup = _soup(prepare_document(html, _BASE, _PROXY))
        assert soup.find(id="a")["src"] == "https://cdn.jsdelivr.net/x.png"
        assert soup.find(id="b")["src"] == "data:image/png;base64,AAAA"

    def test_rewrites_srcset_candidates(self) -> None:
        html = (
            "<picture>"
            '<source srcset="https://img.other.com/a.webp 1x, https://img.other.com/b.webp 2x">'
            '<img srcset="/small.png 480w, /large.png 1080w">'
            "</picture>"
        )
        soup = _soup(prepare_document(html, _BASE, _PROXY))
        assert soup.find("source")["srcset"] == (
            "https://host.test/api/asset-proxy?url=https%3A%2F%2Fimg.other.com%2Fa.webp 1x, "
            "https://host.test/api/asset-proxy?url=https%3A%2F%2Fimg.other.com%2Fb.webp 2x"
        )
        assert soup.find("img")["srcset"] == (
            "https://blog.example.com/small.png 480w, https://blog.example.com/large.png 1080w"
        )

    def test_rewrites_relative_links(self) -> None:
        html = (
            '<a id="rel" href="/about">About</a>'
            '<a id="abs" href="https://other.com/x">X</a>'
            '<a id="frag" href="#top">Top</a>'
            '<a id="mail" href="mailto:a@b.c">Mail</a>'
        )
        soup = _soup(prepare_document(html, "https://example.com/post", _PROXY, "https://example-host/"))
        assert soup.find(id="rel")["href"] == "https://example-host/https://example.com/about"
        assert soup.find(id="abs")["href"] == "https://other.com/x"
        assert soup.find(id="frag")["href"] == "#top"
        assert soup.find(id="mail")["href"] == "mailto:a@b.c"

    def test_links_untouched_without_rewrite_base(self) -> None:
        soup = _soup(prepare_document('<a href="/about">About</a>', _BASE, _PROXY))
        assert soup.find("a")["href"] == "/about"


class TestParseSrcset:
    def test_url_with_commas_survives(self) -> None:
        srcset = "https://cdn.example/img/w_400,h_300/a.jpg 400w, /b.jpg 800w"
        assert _parse_srcset(srcset) == [
            ("https://cdn.example/img/w_400,h_300/a.jpg", "400w"),
            ("/b.jpg", "800w"),
        ]

    def test_url_without_descriptor(self) -> None:
        assert _parse_srcset("/a.jpg") == [("/a.jpg", "")]
