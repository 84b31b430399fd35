"""Data models for the capture pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class HtmlAttrs:
    """``class``/``style``/``lang`` of the captured ``<html>`` element."""

    class_name: str = ""
    style: str = ""
    lang: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"class": self.class_name, "style": self.style, "lang": self.lang}


@dataclass(frozen=True)
class BodyAttrs:
    """``class``/``style`` of the captured ``<body>`` element."""

    class_name: str = ""
    style: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"class": self.class_name, "style": self.style}


@dataclass(frozen=True)
class PageMetadata:
    title: str = ""
    author: str = ""
    published_time: str = ""
    domain: str = ""
    description: str = ""
    image: str = ""
    url: str = ""


@dataclass(frozen=True)
class StylesheetFragment:
    """One ``<link rel=stylesheet>`` or ``<style>`` element's CSS.

    ``index`` is the element's position in document order.
    """

    index: int
    source: str
    css: str

    def annotated(self) -> str:
        if self.source == "inline":
            return f"/* Inline styles */\n{self.css}"
        return f"/* From: {self.source} */\n{self.css}"


@dataclass
class RenderedPage:
    """Raw output of :class:`~archiver.capture.renderer.PageRenderer`."""

    html: str
    css: str
    base_url: str
    metadata: PageMetadata
    html_attrs: HtmlAttrs = field(default_factory=HtmlAttrs)
    body_attrs: BodyAttrs = field(default_factory=BodyAttrs)


@dataclass(frozen=True)
class ArchiveResult:
    """A sanitized page ready for the host application.

    Immutable once produced; the JSON form is exactly :meth:`to_dict`.
    """

    html: str
    css: str
    title: str
    author: str
    published_time: str
    domain: str
    url: str
    extraction_time: int
    content_size: int
    html_attrs: HtmlAttrs
    body_attrs: BodyAttrs

    def to_dict(self) -> dict[str, Any]:
        return {
            "html": self.html,
            "css": self.css,
            "title": self.title,
            "author": self.author,
            "publishedTime": self.published_time,
            "domain": self.domain,
            "url": self.url,
            "extractionTime": self.extraction_time,
            "contentSize": self.content_size,
            "htmlAttrs": self.html_attrs.to_dict(),
            "bodyAttrs": self.body_attrs.to_dict(),
        }
