"""FastAPI application factory.

Lifespan
--------
On startup the app builds the process-wide collaborators and stores them on
``app.state``:

    pool        : shared headless browser (launched lazily on first archive)
    ledger      : domain authorization ledger shared by service and proxy
    service     : :class:`~archiver.capture.service.ArchiveService`
    asset_proxy : :class:`~archiver.proxy.assets.AssetProxy`
    sweeper     : background task trimming the archive cache and the ledger

On shutdown the sweeper is cancelled, the proxy's HTTP client is closed and
the browser is shut down.

Routers
-------
    /api/archive     : create a sanitized archive (POST) + CORS preflight
    /api/asset-proxy : re-serve an authorized font or image
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from archiver import __version__
from archiver.config import settings
from archiver.capture.browser import BrowserSessionPool
from archiver.capture.cache import ArchiveCache
from archiver.capture.renderer import PageRenderer
from archiver.capture.service import ArchiveService
from archiver.capture.sweeper import PeriodicSweeper
from archiver.log import configure_logging
from archiver.proxy.assets import AssetProxy
from archiver.security.ledger import DomainAuthorizationLedger

from archiver.api.routers import archive as archive_router
from archiver.api.routers import assets as assets_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build shared state on startup and tear it down on shutdown."""
    pool = BrowserSessionPool()
    ledger = DomainAuthorizationLedger(ttl=settings.domain_authorization_ttl)
    cache = ArchiveCache(ttl=settings.archive_cache_ttl)
    service = ArchiveService(PageRenderer(pool), ledger, cache=cache)
    asset_proxy = AssetProxy(ledger)
    sweeper = PeriodicSweeper(settings.sweep_interval, cache, ledger)

    app.state.pool = pool
    app.state.ledger = ledger
    app.state.service = service
    app.state.asset_proxy = asset_proxy
    app.state.sweeper = sweeper

    sweeper.start()
    try:
        yield
    finally:
        await sweeper.stop()
        await asset_proxy.aclose()
        await pool.close()


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    configure_logging()
    app = FastAPI(
        title="Archiver API",
        description=(
            "Renders third-party pages in a headless browser and returns them "
            "as sanitized, selector-scoped HTML + CSS, with an authorized "
            "proxy for their fonts and images."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        max_age=86400,
    )

    app.include_router(archive_router.router, prefix="/api", tags=["archive"])
    app.include_router(assets_router.router, prefix="/api", tags=["asset-proxy"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn archiver.api.app:app --reload
app = create_app()
