"""Process-wide headless browser shared by every archive request.

The browser is launched on first use.  Concurrent first callers wait on the
same lock, so exactly one Chromium process is ever spawned.  Each request
then gets its own context (separate cookies and storage) and page, which are
always closed when the request ends.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, AsyncIterator, Callable

from playwright.async_api import Browser, Page, Playwright, async_playwright

from archiver.config import settings

logger = logging.getLogger(__name__)


class BrowserSessionPool:
    """Lazily launched, shared Chromium with per-request isolated sessions.

    Args:
        headless: Launch without a visible window.
        device: Name of a Playwright device descriptor used for every context.
        starter: Returns an object whose ``start()`` coroutine yields a
            :class:`Playwright`.  Overridable so tests need no browser.
    """

    def __init__(
        self,
        headless: bool | None = None,
        device: str | None = None,
        starter: Callable[[], Any] = async_playwright,
    ) -> None:
        self.headless = settings.headless if headless is None else headless
        self.device = device or settings.browser_device
        self._starter = starter
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()
        self.launches = 0

    async def get_browser(self) -> Browser:
        """Return the shared browser, launching it exactly once."""
        browser = self._browser
        if browser is not None and browser.is_connected():
            return browser

        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser
            if self._browser is not None:
                logger.warning("[BROWSER] Shared browser disconnected, relaunching")
                self._browser = None

            if self._playwright is None:
                self._playwright = await self._starter().start()
            logger.info("[BROWSER] Launching Chromium (headless=%s)", self.headless)
            self._browser = await self._playwright.chromium.launch(headless=self.headless)
            self.launches += 1
            return self._browser

    def _context_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if self._playwright is not None:
            descriptor = self._playwright.devices.get(self.device)
            if descriptor:
                options.update(
                    {k: v for k, v in descriptor.items() if k != "default_browser_type"}
                )
            else:
                logger.warning("[BROWSER] Unknown device %r, using defaults", self.device)
        # Pages must run their scripts to render; the output is stripped afterwards.
        options["java_script_enabled"] = True
        return options

    @contextlib.asynccontextmanager
    async def session(self) -> AsyncIterator[Page]:
        """Yield a fresh page in its own browser context.

        The page and context are closed on every exit path.  Errors raised
        while closing are logged and swallowed so they never replace the
        error that ended the session.
        """
        browser = await self.get_browser()
        context = await browser.new_context(**self._context_options())
        page: Page | None = None
        try:
            page = await context.new_page()
            yield page
        finally:
            if page is not None:
                try:
                    await page.close()
                except Exception as exc:
                    logger.debug("[BROWSER] Ignoring page close error: %s", exc)
            try:
                await context.close()
            except Exception as exc:
                logger.debug("[BROWSER] Ignoring context close error: %s", exc)

    async def close(self) -> None:
        """Shut down the browser and the Playwright driver."""
        async with self._lock:
            if self._browser is not None:
                with contextlib.suppress(Exception):
                    await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                with contextlib.suppress(Exception):
                    await self._playwright.stop()
                self._playwright = None
