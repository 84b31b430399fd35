"""Tests for page rendering helpers and ``PageRenderer``.

Playwright is never launched: the renderer is given a fake pool whose
session yields a ``MagicMock`` page with ``AsyncMock`` coroutines.
"""

from __future__ import annotations

import asyncio
import contextlib
from unittest.mock import AsyncMock, MagicMock

import pytest
from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from archiver.capture.renderer import (
    PageRenderer,
    collect_stylesheets,
    extract_metadata,
    extract_root_attrs,
    page_domain,
)
from archiver.errors import NavigationError

_ARTICLE_HTML = """\
<!DOCTYPE html>
<html lang="en" class="js no-touch" style="--accent: red">
<head>
  <title>Fallback Title</title>
  <meta property="og:title" content="The Real Title">
  <meta name="author" content="Ada Lovelace">
  <meta property="article:published_time" content="2024-03-01T10:00:00Z">
  <meta name="description" content="A short summary.">
  <meta property="og:image" content="https://cdn.example.com/cover.jpg">
  <link rel="stylesheet" href="/css/first.css">
  <style>.inline { color: blue }</style>
  <link rel="icon" href="/favicon.ico">
  <link rel="stylesheet" href="https://static.example.com/second.css">
</head>
<body class="post-template" style="margin:0">
  <p>Body</p>
</body>
</html>
"""


def _soup(html: str = _ARTICLE_HTML) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

class TestExtractMetadata:
    def test_reads_open_graph_and_meta_tags(self) -> None:
        meta = extract_metadata(_soup(), "https://www.example.com/post")
        assert meta.title == "The Real Title"
        assert meta.author == "Ada Lovelace"
        assert meta.published_time == "2024-03-01T10:00:00Z"
        assert meta.description == "A short summary."
        assert meta.image == "https://cdn.example.com/cover.jpg"
        assert meta.domain == "example.com"
        assert meta.url == "https://www.example.com/post"

    def test_falls_back_to_title_and_time_element(self) -> None:
        html = (
            "<html><head><title> Plain </title>"
            '<meta property="article:author" content="Bob"></head>'
            '<body><time datetime="2023-01-02">Jan 2</time></body></html>'
        )
        meta = extract_metadata(_soup(html), "https://example.org/")
        assert meta.title == "Plain"
        assert meta.author == "Bob"
        assert meta.published_time == "2023-01-02"

    def test_missing_fields_are_empty(self) -> None:
        meta = extract_metadata(_soup("<html><body></body></html>"), "https://example.org/")
        assert (meta.title, meta.author, meta.published_time) == ("", "", "")

    def test_page_domain(self) -> None:
        assert page_domain("https://www.news.example.co.uk/a") == "news.example.co.uk"


class TestExtractRootAttrs:
    def test_html_and_body_attributes(self) -> None:
        html_attrs, body_attrs = extract_root_attrs(_soup())
        assert html_attrs.to_dict() == {"class": "js no-touch", "style": "--accent: red", "lang": "en"}
        assert body_attrs.to_dict() == {"class": "post-template", "style": "margin:0"}

    def test_missing_elements(self) -> None:
        html_attrs, body_attrs = extract_root_attrs(_soup("<p>fragment</p>"))
        assert html_attrs.lang == ""
        assert body_attrs.class_name == ""


# ---------------------------------------------------------------------------
# collect_stylesheets
# ---------------------------------------------------------------------------

class TestCollectStylesheets:
    async def test_document_order_is_kept(self) -> None:
        async def fetch(url: str):
            # The first sheet resolves last.
            if url.endswith("first.css"):
                await asyncio.sleep(0.02)
                return ".first{}"
            return ".second{}"

        css = await collect_stylesheets(_soup(), "https://www.example.com/post", fetch)
        assert css == (
            "/* From: https://www.example.com/css/first.css */\n.first{}\n\n"
            "/* Inline styles */\n.inline { color: blue }\n\n"
            "/* From: https://static.example.com/second.css */\n.second{}"
        )

    async def test_failed_sheets_are_skipped(self) -> None:
        async def fetch(url: str):
            if url.endswith("first.css"):
                raise RuntimeError("connection reset")
            return None

        css = await collect_stylesheets(_soup(), "https://www.example.com/post", fetch)
        assert css == "/* Inline styles */\n.inline { color: blue }"

    async def test_no_stylesheets(self) -> None:
        fetch = AsyncMock()
        assert await collect_stylesheets(_soup("<p>x</p>"), "https://example.com/", fetch) == ""
        fetch.assert_not_awaited()


# ---------------------------------------------------------------------------
# PageRenderer
# ---------------------------------------------------------------------------

class _FakePool:
    def __init__(self, page) -> None:
        self.page = page
        self.sessions = 0

    @contextlib.asynccontextmanager
    async def session(self):
        self.sessions += 1
        yield self.page


def _fake_page(html: str = _ARTICLE_HTML, final_url: str = "https://www.example.com/post"):
    response = MagicMock(ok=True, status=200)
    response.text = AsyncMock(return_value="p{margin:0}")
    page = MagicMock()
    page.goto = AsyncMock()
    page.content = AsyncMock(return_value=html)
    page.url = final_url
    page.context.request.get = AsyncMock(return_value=response)
    return page


class TestPageRenderer:
    async def test_render_captures_page(self) -> None:
        page = _fake_page()
        renderer = PageRenderer(_FakePool(page), navigation_timeout=8, stylesheet_timeout=5)

        rendered = await renderer.render("https://example.com/post")

        page.goto.assert_awaited_once_with(
            "https://example.com/post", wait_until="load", timeout=8000
        )
        assert rendered.base_url == "https://www.example.com/post"
        assert rendered.html == _ARTICLE_HTML
        assert rendered.metadata.domain == "example.com"
        assert rendered.html_attrs.lang == "en"
        assert "/* From: https://www.example.com/css/first.css */" in rendered.css
        assert "/* Inline styles */" in rendered.css
        page.context.request.get.assert_any_await(
            "https://static.example.com/second.css", timeout=5000
        )

    async def test_non_ok_stylesheet_is_skipped(self) -> None:
        page = _fake_page()
        page.context.request.get = AsyncMock(return_value=MagicMock(ok=False, status=404))
        rendered = await PageRenderer(_FakePool(page)).render("https://example.com/post")
        assert rendered.css == "/* Inline styles */\n.inline { color: blue }"

    async def test_navigation_timeout_raises(self) -> None:
        page = _fake_page()
        page.goto = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout 8000ms exceeded"))
        renderer = PageRenderer(_FakePool(page), navigation_timeout=8)

        with pytest.raises(NavigationError) as exc_info:
            await renderer.render("https://slow.example.com/")
        assert exc_info.value.url == "https://slow.example.com/"
        page.content.assert_not_awaited()
