"""Archive endpoint.

Routes
------
POST    /api/archive?url=https://...     → sanitized ArchiveResult JSON
        Body (optional): {"url": "...", "linkRewriteBaseUrl": "..."}
OPTIONS /api/archive                     → 204 (CORS preflight)

Responses carry a Content-Security-Policy that forbids script, objects and
frames, plus CDN cache directives.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlsplit

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from archiver.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()

ARCHIVE_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; script-src 'none'; style-src 'self' 'unsafe-inline'; "
        "object-src 'none'; frame-src 'none'; font-src 'self' data: https:; "
        "img-src 'self' data: https:;"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Cache-Control": "public, max-age=900, s-maxage=86400, stale-while-revalidate=604800",
}


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class ArchiveRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: Optional[str] = None
    link_rewrite_base_url: Optional[str] = Field(default=None, alias="linkRewriteBaseUrl")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _asset_proxy_base_url(request: Request) -> str:
    if settings.asset_proxy_base_url:
        return settings.asset_proxy_base_url.rstrip("/")
    return str(request.base_url).rstrip("/")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.options("/archive", status_code=204)
def archive_options() -> Response:
    return Response(status_code=204)


@router.post("/archive")
async def create_archive_endpoint(
    request: Request,
    body: Optional[ArchiveRequest] = None,
    url: Optional[str] = None,
    link_rewrite_base_url: Optional[str] = Query(default=None, alias="linkRewriteBaseUrl"),
) -> JSONResponse:
    """Render *url*, strip its scripts, scope its CSS and return the archive."""
    target = url or (body.url if body else None)
    link_base = link_rewrite_base_url or (body.link_rewrite_base_url if body else None)

    if not target:
        return _error(400, "Missing url parameter")
    try:
        parts = urlsplit(target)
    except ValueError:
        return _error(400, "Invalid URL")
    if parts.scheme != "https":
        return _error(403, "Only HTTPS URLs allowed")
    if not parts.hostname:
        return _error(400, "Invalid URL")

    service = request.app.state.service
    try:
        archive = await service.create_archive(
            target,
            asset_proxy_base_url=_asset_proxy_base_url(request),
            link_rewrite_base_url=link_base,
        )
    except Exception:
        logger.error("[API] Archive creation failed for %s", target)
        return _error(500, "Failed to create archive")

    return JSONResponse(archive.to_dict(), headers=ARCHIVE_HEADERS)
