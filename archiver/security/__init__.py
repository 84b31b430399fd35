"""Origin trust policy and domain authorization ledger."""

from archiver.security.ledger import DomainAuthorizationLedger
from archiver.security.trust import (
    PREMIUM_FONT_HOSTS,
    TRUSTED_CDNS,
    is_premium_font_host,
    is_trusted,
    normalise_hostname,
)

__all__ = [
    "DomainAuthorizationLedger",
    "PREMIUM_FONT_HOSTS",
    "TRUSTED_CDNS",
    "is_premium_font_host",
    "is_trusted",
    "normalise_hostname",
]
