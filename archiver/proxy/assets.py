"""Asset proxy: fetch and re-serve authorized third-party fonts and images.

Request pipeline
----------------
1. ``https`` only.
2. Classify the asset from its URL extension (font / image / unknown).
3. Authorize the asset domain against the trust policy and the ledger.
4. Fetch with a short overall timeout and a type-appropriate ``Accept``.
   Redirects are followed by hand, and every hop passes steps 1 and 3 again.
5. Check the upstream ``content-type`` matches the claimed class.  Unknown
   assets may be anything except a document a browser would run script in.
6. Enforce the per-class size ceiling before (and while) reading the body.

Every rejection is an :class:`~archiver.errors.AssetProxyError` carrying the
HTTP status for the client.  Nothing about the upstream failure beyond the
status is exposed.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from urllib.parse import urljoin, urlsplit

import httpx

from archiver.config import settings
from archiver.errors import AssetProxyError
from archiver.security.ledger import DomainAuthorizationLedger
from archiver.security.trust import normalise_hostname

logger = logging.getLogger(__name__)

_BROWSER_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)

FONT_EXTENSIONS = (".woff2", ".woff", ".ttf", ".otf", ".eot")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".avif", ".bmp", ".ico")

_OCTET_STREAMS = {"application/octet-stream", "binary/octet-stream"}
_DOCUMENT_TYPES = {"text/html", "application/xhtml+xml", "text/xml", "application/xml"}

MAX_REDIRECTS = 5

CACHE_CONTROL = "public, max-age=31536000"
ASSET_CSP = "default-src 'none'; style-src 'unsafe-inline'; sandbox"


class AssetType(str, enum.Enum):
    FONT = "font"
    IMAGE = "image"
    UNKNOWN = "unknown"


def classify_asset(url: str) -> AssetType:
    """Return the :class:`AssetType` implied by the path extension of *url*."""
    try:
        path = urlsplit(url).path.lower()
    except ValueError:
        return AssetType.UNKNOWN
    if path.endswith(FONT_EXTENSIONS):
        return AssetType.FONT
    if path.endswith(IMAGE_EXTENSIONS):
        return AssetType.IMAGE
    return AssetType.UNKNOWN


def accept_header(asset_type: AssetType) -> str:
    if asset_type is AssetType.FONT:
        return "font/woff2,font/woff;q=0.8,*/*;q=0.1"
    if asset_type is AssetType.IMAGE:
        return "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8"
    return "*/*"


def default_content_type(asset_type: AssetType) -> str:
    if asset_type is AssetType.FONT:
        return "font/woff2"
    if asset_type is AssetType.IMAGE:
        return "image/jpeg"
    return "application/octet-stream"


def is_content_type_valid(asset_type: AssetType, content_type: str) -> bool:
    """Return ``True`` if *content_type* is consistent with *asset_type*.

    Fonts are served under a zoo of types (``font/*``, ``application/font-woff``,
    ``application/vnd.ms-fontobject``, octet-stream), so anything that is not
    clearly an image or a text document is accepted.  Images must be ``image/*``
    or a generic byte stream.  Unknown assets only refuse HTML and XML documents.
    """
    mime = content_type.split(";", 1)[0].strip().lower()
    if asset_type is AssetType.FONT:
        return not (mime.startswith("image/") or mime.startswith("text/"))
    if asset_type is AssetType.IMAGE:
        return not mime or mime.startswith("image/") or mime in _OCTET_STREAMS
    return mime not in _DOCUMENT_TYPES


def max_size(asset_type: AssetType) -> int:
    if asset_type is AssetType.IMAGE:
        return settings.image_max_bytes
    return settings.font_max_bytes


@dataclass(frozen=True)
class ProxiedAsset:
    content: bytes
    content_type: str
    asset_type: AssetType


class AssetProxy:
    """Authorized, validated fetcher behind ``GET /api/asset-proxy``.

    Owns a shared :class:`httpx.AsyncClient`; call :meth:`aclose` on shutdown.
    """

    def __init__(
        self,
        ledger: DomainAuthorizationLedger,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self.ledger = ledger
        self.timeout = settings.asset_fetch_timeout if timeout is None else timeout
        self._client = client or httpx.AsyncClient()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _authorize(self, url: str) -> None:
        """Raise ``AssetProxyError`` unless *url* is https on an authorized domain."""
        try:
            parts = urlsplit(url)
        except ValueError:
            raise AssetProxyError(400, "Invalid asset URL") from None
        if parts.scheme != "https" or not parts.hostname:
            raise AssetProxyError(403, "Only HTTPS URLs allowed")

        domain = normalise_hostname(parts.hostname)
        if not self.ledger.is_authorized(domain):
            logger.info("[PROXY] Rejected unauthorized domain %s", domain)
            raise AssetProxyError(403, "Asset domain not recently extracted")

    async def fetch(self, asset_url: str | None) -> ProxiedAsset:
        """Fetch *asset_url* if it passes every gate, else raise ``AssetProxyError``."""
        if not asset_url:
            raise AssetProxyError(400, "Missing asset URL parameter")

        self._authorize(asset_url)
        asset_type = classify_asset(asset_url)

        try:
            return await asyncio.wait_for(
                self._download(asset_url, asset_type), timeout=self.timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("[PROXY] Timed out fetching %s", asset_url)
            raise AssetProxyError(408, "Asset fetch timed out") from None
        except httpx.HTTPError as exc:
            logger.warning("[PROXY] Upstream error for %s: %s", asset_url, exc)
            raise AssetProxyError(502, "Failed to fetch asset") from exc

    async def _download(self, asset_url: str, asset_type: AssetType) -> ProxiedAsset:
        headers = {
            "User-Agent": _BROWSER_UA,
            "Accept": accept_header(asset_type),
            "Accept-Encoding": "gzip, deflate, br",
        }
        url = asset_url
        for _ in range(MAX_REDIRECTS + 1):
            async with self._client.stream(
                "GET", url, headers=headers, follow_redirects=False
            ) as response:
                if response.is_redirect:
                    target = urljoin(url, response.headers["location"])
                    logger.debug("[PROXY] %s redirected to %s", url, target)
                    self._authorize(target)
                    url = target
                    continue
                return await self._read(response, url, asset_type)

        logger.warning("[PROXY] Too many redirects for %s", asset_url)
        raise AssetProxyError(502, "Too many redirects")

    async def _read(
        self, response: httpx.Response, url: str, asset_type: AssetType
    ) -> ProxiedAsset:
        if not response.is_success:
            logger.warning("[PROXY] Upstream %s for %s", response.status_code, url)
            raise AssetProxyError(
                response.status_code, f"Failed to fetch asset: {response.status_code}"
            )

        content_type = response.headers.get("content-type", "")
        if not is_content_type_valid(asset_type, content_type):
            logger.warning(
                "[PROXY] Content type %r does not match %s for %s",
                content_type, asset_type.value, url,
            )
            raise AssetProxyError(400, f"Not a valid {asset_type.value} file")

        limit = max_size(asset_type)
        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > limit:
            raise AssetProxyError(413, f"{asset_type.value} file too large")

        body = bytearray()
        async for chunk in response.aiter_bytes():
            body.extend(chunk)
            if len(body) > limit:
                raise AssetProxyError(413, f"{asset_type.value} file too large")

        return ProxiedAsset(
            content=bytes(body),
            content_type=content_type or default_content_type(asset_type),
            asset_type=asset_type,
        )
