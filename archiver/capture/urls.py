"""URL helpers shared by the HTML and CSS rewriters."""

from __future__ import annotations

from urllib.parse import quote, urljoin, urlsplit

PROXY_PATH = "/api/asset-proxy"


def resolve_url(url: str, base_url: str) -> str:
    """Return *url* made absolute against *base_url*.

    Raises:
        ValueError: If either URL cannot be parsed.
    """
    absolute = urljoin(base_url, url.strip())
    parts = urlsplit(absolute)
    if not parts.scheme:
        raise ValueError(f"Cannot resolve {url!r} against {base_url!r}")
    return absolute


def build_proxy_url(asset_proxy_base_url: str, absolute_url: str) -> str:
    """Return the asset-proxy URL that re-serves *absolute_url*."""
    return f"{asset_proxy_base_url.rstrip('/')}{PROXY_PATH}?url={quote(absolute_url, safe='')}"


def same_origin(a: str, b: str) -> bool:
    pa, pb = urlsplit(a), urlsplit(b)
    return (pa.scheme, pa.hostname, pa.port) == (pb.scheme, pb.hostname, pb.port)
