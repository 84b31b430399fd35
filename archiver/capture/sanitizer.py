"""HTML sanitization and archive-document post-processing.

``sanitize_html`` removes every executable surface from a rendered document:

  - ``<script>`` elements
  - attributes whose name starts with ``on`` (event handlers)
  - ``javascript:`` URLs in ``href``/``src`` (and form/xlink equivalents)
  - script-marker ``data-*`` attributes

The document is parsed with BeautifulSoup's ``html.parser``, which only
builds a tree; nothing in the content is ever executed.

``prepare_document`` then adapts the sanitized document for injection into
the host page: CSS is delivered separately, images go through the asset
proxy, and relative links are routed back through the host.
"""

from __future__ import annotations

import logging
import re
from typing import List, Tuple

from bs4 import BeautifulSoup

from archiver.errors import SanitizationError
from archiver.capture.urls import build_proxy_url, resolve_url, same_origin
from archiver.security.trust import is_trusted

logger = logging.getLogger(__name__)

_URL_ATTRIBUTES = ("href", "src", "action", "formaction", "xlink:href")
_SCRIPT_SCHEMES = ("javascript:", "vbscript:")
_SCRIPT_MARKER_ATTRIBUTES = ("data-script", "data-js", "data-on")

# Browsers ignore ASCII whitespace and control characters inside a URL scheme.
_SCHEME_NOISE = re.compile(r"[\x00-\x20]+")

_RESOURCE_HINTS = {"stylesheet", "preload", "prefetch", "dns-prefetch", "modulepreload", "preconnect"}
_UNREWRITTEN_LINK_PREFIXES = ("http", "#", "mailto:", "javascript:", "tel:")
_VIEWPORT = "width=device-width, initial-scale=1.0"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _parse(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html, "html.parser")
    except Exception as exc:
        raise SanitizationError(f"Could not parse rendered HTML: {exc}") from exc


def _attr_text(value) -> str:
    if isinstance(value, list):
        return " ".join(value)
    return value or ""


def is_script_url(value: str) -> bool:
    """Return ``True`` if *value* is a ``javascript:``-style URL."""
    return _SCHEME_NOISE.sub("", value).lower().startswith(_SCRIPT_SCHEMES)


def _parse_srcset(srcset: str) -> List[Tuple[str, str]]:
    """Split a ``srcset`` value into ``(url, descriptor)`` candidates.

    Follows the HTML candidate-string rules closely enough that URLs
    containing commas (common on image CDNs) survive.
    """
    candidates: List[Tuple[str, str]] = []
    pos, length = 0, len(srcset)
    while pos < length:
        while pos < length and (srcset[pos].isspace() or srcset[pos] == ","):
            pos += 1
        if pos >= length:
            break
        start = pos
        while pos < length and not srcset[pos].isspace():
            pos += 1
        url = srcset[start:pos]
        if url.endswith(","):
            candidates.append((url.rstrip(","), ""))
            continue
        start = pos
        depth = 0
        while pos < length:
            ch = srcset[pos]
            if ch == "(":
                depth += 1
            elif ch == ")" and depth:
                depth -= 1
            elif ch == "," and not depth:
                break
            pos += 1
        candidates.append((url, srcset[start:pos].strip()))
        pos += 1
    return candidates


def _proxied_image_url(url: str, base_url: str, asset_proxy_base_url: str) -> str:
    if not url or url.startswith("data:"):
        return url
    try:
        absolute = resolve_url(url, base_url)
    except ValueError:
        logger.warning("[SANITIZE] Invalid image URL left as is: %s", url)
        return url
    if same_origin(absolute, base_url) or is_trusted(absolute):
        return absolute
    if not absolute.startswith("https://"):
        return absolute
    return build_proxy_url(asset_proxy_base_url, absolute)


def _rewrite_srcset(srcset: str, base_url: str, asset_proxy_base_url: str) -> str:
    rewritten = []
    for url, descriptor in _parse_srcset(srcset):
        new_url = _proxied_image_url(url, base_url, asset_proxy_base_url)
        rewritten.append(f"{new_url} {descriptor}" if descriptor else new_url)
    return ", ".join(rewritten)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def sanitize_html(html: str) -> str:
    """Return *html* with every script surface removed.

    Raises:
        SanitizationError: If the document cannot be parsed.
    """
    soup = _parse(html)

    for script in soup.find_all("script"):
        script.decompose()

    for tag in soup.find_all(True):
        for name in list(tag.attrs):
            low = name.lower()
            if low.startswith("on") or low in _SCRIPT_MARKER_ATTRIBUTES:
                del tag.attrs[name]
            elif low in _URL_ATTRIBUTES and is_script_url(_attr_text(tag.attrs[name])):
                del tag.attrs[name]

    return str(soup)


def prepare_document(
    html: str,
    base_url: str,
    asset_proxy_base_url: str,
    link_rewrite_base_url: str | None = None,
) -> str:
    """Adapt a sanitized document for display inside the host page.

    - adds a responsive viewport ``<meta>`` when missing
    - removes stylesheet links, resource hints and ``<style>`` elements
      (the CSS travels separately)
    - routes cross-origin images through the asset proxy
    - rewrites relative ``<a href>`` to ``{link_rewrite_base_url}/{absolute}``
    """
    soup = _parse(html)

    if soup.find("meta", attrs={"name": "viewport"}) is None:
        head = soup.head
        if head is None and soup.html is not None:
            head = soup.new_tag("head")
            soup.html.insert(0, head)
        if head is not None:
            head.append(soup.new_tag("meta", attrs={"name": "viewport", "content": _VIEWPORT}))

    for link in soup.find_all("link"):
        rels = {r.lower() for r in _attr_text(link.get("rel")).split()}
        if rels & _RESOURCE_HINTS:
            link.decompose()

    for style in soup.find_all("style"):
        style.decompose()

    for img in soup.find_all("img"):
        if img.get("src"):
            img["src"] = _proxied_image_url(img["src"], base_url, asset_proxy_base_url)
        if img.get("srcset"):
            img["srcset"] = _rewrite_srcset(img["srcset"], base_url, asset_proxy_base_url)

    for source in soup.find_all("source", srcset=True):
        source["srcset"] = _rewrite_srcset(source["srcset"], base_url, asset_proxy_base_url)

    if link_rewrite_base_url:
        prefix = link_rewrite_base_url.rstrip("/")
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if not href or href.startswith(_UNREWRITTEN_LINK_PREFIXES):
                continue
            try:
                anchor["href"] = f"{prefix}/{resolve_url(href, base_url)}"
            except ValueError:
                logger.warning("[SANITIZE] Invalid link URL left as is: %s", href)

    return str(soup)
