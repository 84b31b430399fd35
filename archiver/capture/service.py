"""Archive orchestration: cache → render → sanitize → CSS → cache + stamp.

``ArchiveService`` owns the archive cache and shares the domain ledger with
the asset proxy.  Both are explicit instance state; the HTTP app builds one
service per process and a :class:`~archiver.capture.sweeper.PeriodicSweeper`
keeps them trimmed.
"""

from __future__ import annotations

import logging
import time
from urllib.parse import urlsplit

from archiver.config import settings
from archiver.capture.cache import ArchiveCache
from archiver.capture.css import CssSecurityProcessor
from archiver.capture.models import ArchiveResult
from archiver.capture.renderer import PageRenderer
from archiver.capture.sanitizer import prepare_document, sanitize_html
from archiver.security.ledger import DomainAuthorizationLedger

logger = logging.getLogger(__name__)


class ArchiveService:
    """Creates sanitized archives of third-party pages."""

    def __init__(
        self,
        renderer: PageRenderer,
        ledger: DomainAuthorizationLedger,
        cache: ArchiveCache | None = None,
        css_processor: CssSecurityProcessor | None = None,
        default_asset_proxy_base_url: str | None = None,
    ) -> None:
        self.renderer = renderer
        self.ledger = ledger
        self.cache = cache or ArchiveCache(ttl=settings.archive_cache_ttl)
        self.css_processor = css_processor or CssSecurityProcessor()
        self.default_asset_proxy_base_url = (
            default_asset_proxy_base_url or settings.default_asset_proxy_base_url
        )

    def _stamp(self, url: str, result: ArchiveResult) -> None:
        requested = urlsplit(url).hostname
        if requested:
            self.ledger.stamp(requested)
        if result.domain:
            self.ledger.stamp(result.domain)

    async def create_archive(
        self,
        url: str,
        asset_proxy_base_url: str | None = None,
        link_rewrite_base_url: str | None = None,
    ) -> ArchiveResult:
        """Render *url* and return its sanitized, scoped archive.

        Results are cached by URL for ``settings.archive_cache_ttl`` seconds.
        The page's domain is stamped in the ledger before returning so the
        asset proxy will serve its fonts and images.

        Raises:
            NavigationError: The page did not load in time.
            SanitizationError: The rendered HTML could not be parsed.
        """
        start = time.monotonic()

        cached = self.cache.get(url)
        if cached is not None:
            self._stamp(url, cached)
            logger.info("[ARCHIVE] %s | cache hit", url)
            return cached

        proxy_base = asset_proxy_base_url or self.default_asset_proxy_base_url

        try:
            page = await self.renderer.render(url)
            html = sanitize_html(page.html)
            html = prepare_document(html, page.base_url, proxy_base, link_rewrite_base_url)
            css = await self.css_processor.process(page.css, page.base_url, proxy_base)
        except Exception:
            logger.exception("[ARCHIVE] Failed to archive %s", url)
            raise

        result = ArchiveResult(
            html=html,
            css=css,
            title=page.metadata.title,
            author=page.metadata.author,
            published_time=page.metadata.published_time,
            domain=page.metadata.domain,
            url=url,
            extraction_time=int((time.monotonic() - start) * 1000),
            content_size=len(html.encode("utf-8")),
            html_attrs=page.html_attrs,
            body_attrs=page.body_attrs,
        )

        self.cache.set(url, result)
        self._stamp(url, result)
        logger.info("[ARCHIVE] %s | %dms", url, result.extraction_time)
        logger.debug(
            "[ARCHIVE] %s | description=%r image=%s",
            url, page.metadata.description, page.metadata.image or "(none)",
        )
        return result
