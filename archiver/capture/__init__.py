"""Capture pipeline package: render, sanitize and scope pages, and cache the archives."""

from archiver.capture.browser import BrowserSessionPool
from archiver.capture.cache import ArchiveCache
from archiver.capture.css import CssSecurityProcessor, rewrite_asset_urls, scope_stylesheet
from archiver.capture.models import ArchiveResult, RenderedPage
from archiver.capture.renderer import PageRenderer
from archiver.capture.sanitizer import prepare_document, sanitize_html
from archiver.capture.service import ArchiveService
from archiver.capture.sweeper import PeriodicSweeper

__all__ = [
    "ArchiveCache",
    "ArchiveResult",
    "ArchiveService",
    "BrowserSessionPool",
    "CssSecurityProcessor",
    "PageRenderer",
    "PeriodicSweeper",
    "RenderedPage",
    "prepare_document",
    "rewrite_asset_urls",
    "sanitize_html",
    "scope_stylesheet",
]
