"""Asset proxy endpoint.

Routes
------
GET /api/asset-proxy?url=https://...   → raw asset bytes, or {"error": ...}
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from archiver.errors import AssetProxyError
from archiver.proxy.assets import ASSET_CSP, CACHE_CONTROL

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/asset-proxy", response_model=None)
async def asset_proxy_endpoint(
    request: Request, url: Optional[str] = None
) -> Response:
    """Re-serve an authorized font or image with a long-lived cache header."""
    proxy = request.app.state.asset_proxy
    try:
        asset = await proxy.fetch(url)
    except AssetProxyError as exc:
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)
    except Exception:
        logger.exception("[API] Asset proxy error for %s", url)
        return JSONResponse(
            {"error": "Internal server error while proxying asset"}, status_code=500
        )

    return Response(
        content=asset.content,
        media_type=asset.content_type,
        headers={
            "Cache-Control": CACHE_CONTROL,
            "Content-Security-Policy": ASSET_CSP,
            "X-Content-Type-Options": "nosniff",
        },
    )
