"""Page rendering: navigate, snapshot the DOM, collect CSS and metadata.

Only navigation and stylesheet fetching touch the browser.  Everything else
(stylesheet discovery, metadata, root/body attributes) is read from the
rendered DOM snapshot so it can be exercised without a browser.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional
from urllib.parse import urlsplit

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from archiver.config import settings
from archiver.errors import NavigationError
from archiver.capture.browser import BrowserSessionPool
from archiver.capture.models import (
    BodyAttrs,
    HtmlAttrs,
    PageMetadata,
    RenderedPage,
    StylesheetFragment,
)
from archiver.capture.urls import resolve_url

logger = logging.getLogger(__name__)

# Returns the stylesheet text, or ``None`` when it could not be fetched.
StylesheetFetcher = Callable[[str], Awaitable[Optional[str]]]

_PUBLISHED_TIME_KEYS = (
    "article:published_time",
    "article:published",
    "datePublished",
    "publish_date",
)


# ---------------------------------------------------------------------------
# DOM snapshot helpers
# ---------------------------------------------------------------------------

def _attr(tag, name: str) -> str:
    if tag is None:
        return ""
    value = tag.get(name)
    if isinstance(value, list):
        return " ".join(value)
    return value or ""


def _meta(soup: BeautifulSoup, key: str) -> str:
    """Return the ``content`` of ``meta[property=key]`` or ``meta[name=key]``."""
    for tag in soup.find_all("meta"):
        if tag.get("property") == key or tag.get("name") == key:
            return _attr(tag, "content").strip()
    return ""


def _published_time(soup: BeautifulSoup) -> str:
    for key in _PUBLISHED_TIME_KEYS:
        value = _meta(soup, key)
        if value:
            return value
    time_tag = soup.find("time", attrs={"datetime": True})
    if time_tag is not None:
        return _attr(time_tag, "datetime")
    return ""


def page_domain(url: str) -> str:
    """Hostname of *url* with a leading ``www.`` removed."""
    hostname = urlsplit(url).hostname or ""
    return hostname[4:] if hostname.startswith("www.") else hostname


def extract_metadata(soup: BeautifulSoup, page_url: str) -> PageMetadata:
    """Read title, author, publication time and friends from the document."""
    title = _meta(soup, "og:title")
    if not title and soup.title is not None:
        title = soup.title.get_text(strip=True)
    return PageMetadata(
        title=title,
        author=_meta(soup, "author") or _meta(soup, "article:author"),
        published_time=_published_time(soup),
        domain=page_domain(page_url),
        description=_meta(soup, "description") or _meta(soup, "og:description"),
        image=_meta(soup, "og:image"),
        url=page_url,
    )


def extract_root_attrs(soup: BeautifulSoup) -> tuple[HtmlAttrs, BodyAttrs]:
    html, body = soup.find("html"), soup.find("body")
    return (
        HtmlAttrs(
            class_name=_attr(html, "class"),
            style=_attr(html, "style"),
            lang=_attr(html, "lang"),
        ),
        BodyAttrs(class_name=_attr(body, "class"), style=_attr(body, "style")),
    )


async def collect_stylesheets(
    soup: BeautifulSoup,
    base_url: str,
    fetch: StylesheetFetcher,
) -> str:
    """Return all page CSS in document order, one annotated fragment per element.

    External sheets are fetched concurrently; fragments are re-assembled by
    their original element index because later rules override earlier ones.
    """

    async def load(index: int, element) -> Optional[StylesheetFragment]:
        if element.name == "style":
            text = element.get_text()
            if not text.strip():
                return None
            return StylesheetFragment(index=index, source="inline", css=text)

        href = _attr(element, "href").strip()
        if not href:
            return None
        try:
            css_url = resolve_url(href, base_url)
            text = await fetch(css_url)
        except Exception as exc:
            logger.warning("[RENDER] Failed to load stylesheet %s: %s", href, exc)
            return None
        if text is None:
            return None
        return StylesheetFragment(index=index, source=css_url, css=text)

    elements = [
        el
        for el in soup.find_all(["link", "style"])
        if el.name == "style" or "stylesheet" in _attr(el, "rel").lower().split()
    ]
    results = await asyncio.gather(*(load(i, el) for i, el in enumerate(elements)))
    fragments = sorted((f for f in results if f is not None), key=lambda f: f.index)
    return "\n\n".join(f.annotated() for f in fragments)


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------

class PageRenderer:
    """Produces a :class:`RenderedPage` for a URL using the shared browser."""

    def __init__(
        self,
        pool: BrowserSessionPool,
        navigation_timeout: float | None = None,
        stylesheet_timeout: float | None = None,
    ) -> None:
        self.pool = pool
        self.navigation_timeout = (
            settings.navigation_timeout if navigation_timeout is None else navigation_timeout
        )
        self.stylesheet_timeout = (
            settings.stylesheet_fetch_timeout if stylesheet_timeout is None else stylesheet_timeout
        )

    def _stylesheet_fetcher(self, page: Page) -> StylesheetFetcher:
        """Fetch sheets through the page's own context (same cookies and UA)."""

        async def fetch(url: str) -> Optional[str]:
            response = await page.context.request.get(
                url, timeout=self.stylesheet_timeout * 1000
            )
            if not response.ok:
                logger.warning("[RENDER] Stylesheet %s returned %s", url, response.status)
                return None
            return await response.text()

        return fetch

    async def _navigate(self, page: Page, url: str) -> None:
        try:
            await page.goto(url, wait_until="load", timeout=self.navigation_timeout * 1000)
        except PlaywrightTimeoutError as exc:
            raise NavigationError(url, f"timed out after {self.navigation_timeout}s") from exc
        except PlaywrightError as exc:
            raise NavigationError(url, exc.message) from exc

    async def render(self, url: str) -> RenderedPage:
        """Load *url* and capture its rendered HTML, CSS and metadata.

        Raises:
            NavigationError: If the page does not load within the timeout.
        """
        async with self.pool.session() as page:
            await self._navigate(page, url)
            html = await page.content()
            base_url = page.url or url

            soup = BeautifulSoup(html, "html.parser")
            css = await collect_stylesheets(soup, base_url, self._stylesheet_fetcher(page))

        metadata = extract_metadata(soup, base_url)
        html_attrs, body_attrs = extract_root_attrs(soup)
        logger.debug(
            "[RENDER] %s: %d bytes HTML, %d bytes CSS", base_url, len(html), len(css)
        )
        return RenderedPage(
            html=html,
            css=css,
            base_url=base_url,
            metadata=metadata,
            html_attrs=html_attrs,
            body_attrs=body_attrs,
        )
