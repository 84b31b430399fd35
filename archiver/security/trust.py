"""Static allow-lists for origins that may be loaded without the asset proxy.

Matching is exact-or-proper-subdomain only: neither ``evil-fonts.gstatic.com``
nor ``fonts.gstatic.com.attacker.io`` matches ``fonts.gstatic.com``.
"""

from __future__ import annotations

from typing import Iterable
from urllib.parse import urlsplit

# CDNs that sanitized pages may load directly.
TRUSTED_CDNS: tuple[str, ...] = (
    # Google services
    "fonts.googleapis.com",
    "fonts.gstatic.com",
    "ajax.googleapis.com",
    # Major CDNs
    "cdn.jsdelivr.net",
    "cdnjs.cloudflare.com",
    "unpkg.com",
    # Font services
    "use.typekit.net",
    "fonts.bunny.net",
    # Cloud providers
    "cloudfront.net",
    "github.githubassets.com",
    "assets.vercel.com",
)

# Subscription font services that check the requesting host; never proxied.
PREMIUM_FONT_HOSTS: tuple[str, ...] = (
    "typekit.net",
    "fonts.net",
    "fonts.com",
    "typography.com",
    "myfonts.net",
    "fontawesome.com",
)


def normalise_hostname(hostname_or_url: str) -> str:
    """Return the lower-cased hostname with ``www.`` and any trailing dot removed.

    Accepts either a bare hostname or an absolute URL.
    """
    value = hostname_or_url.strip()
    if "://" in value:
        try:
            value = urlsplit(value).hostname or ""
        except ValueError:
            return ""
    value = value.lower().rstrip(".")
    if value.startswith("www."):
        value = value[4:]
    return value


def _matches(hostname: str, entries: Iterable[str]) -> bool:
    if not hostname:
        return False
    for entry in entries:
        if hostname == entry or hostname.endswith("." + entry):
            return True
    return False


def is_trusted(hostname_or_url: str) -> bool:
    """Return ``True`` if *hostname_or_url* belongs to a trusted CDN."""
    return _matches(normalise_hostname(hostname_or_url), TRUSTED_CDNS)


def is_premium_font_host(hostname_or_url: str) -> bool:
    """Return ``True`` if *hostname_or_url* is a known subscription font host."""
    return _matches(normalise_hostname(hostname_or_url), PREMIUM_FONT_HOSTS)


def matches_any(hostname_or_url: str, entries: Iterable[str]) -> bool:
    """Exact-or-subdomain match of *hostname_or_url* against arbitrary *entries*."""
    return _matches(normalise_hostname(hostname_or_url), entries)
