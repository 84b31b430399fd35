"""Centralised settings for the archiver.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).

The trusted-CDN and premium-font tables are not configurable;
they live in :mod:`archiver.security.trust`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Browser / rendering
    # ------------------------------------------------------------------
    headless: bool = field(default_factory=lambda: _env_bool("BROWSER_HEADLESS", "true"))
    browser_device: str = field(
        default_factory=lambda: os.environ.get("BROWSER_DEVICE", "Desktop Chrome")
    )
    navigation_timeout: float = field(
        default_factory=lambda: float(os.environ.get("NAVIGATION_TIMEOUT", "8.0"))
    )
    stylesheet_fetch_timeout: float = field(
        default_factory=lambda: float(os.environ.get("STYLESHEET_FETCH_TIMEOUT", "5.0"))
    )

    # ------------------------------------------------------------------
    # CSS processing
    # ------------------------------------------------------------------
    css_validation_timeout: float = field(
        default_factory=lambda: float(os.environ.get("CSS_VALIDATION_TIMEOUT", "5.0"))
    )
    css_max_validate_bytes: int = field(
        default_factory=lambda: int(os.environ.get("CSS_MAX_VALIDATE_BYTES", str(2 * 1024 * 1024)))
    )

    # ------------------------------------------------------------------
    # Cache / authorization windows (seconds)
    # ------------------------------------------------------------------
    archive_cache_ttl: float = field(
        default_factory=lambda: float(os.environ.get("ARCHIVE_CACHE_TTL", "900"))
    )
    domain_authorization_ttl: float = field(
        default_factory=lambda: float(os.environ.get("DOMAIN_AUTHORIZATION_TTL", "900"))
    )
    sweep_interval: float = field(
        default_factory=lambda: float(os.environ.get("SWEEP_INTERVAL", "900"))
    )

    # ------------------------------------------------------------------
    # Asset proxy
    # ------------------------------------------------------------------
    asset_fetch_timeout: float = field(
        default_factory=lambda: float(os.environ.get("ASSET_FETCH_TIMEOUT", "2.0"))
    )
    font_max_bytes: int = field(
        default_factory=lambda: int(os.environ.get("FONT_MAX_BYTES", str(5 * 1024 * 1024)))
    )
    image_max_bytes: int = field(
        default_factory=lambda: int(os.environ.get("IMAGE_MAX_BYTES", str(10 * 1024 * 1024)))
    )
    default_asset_proxy_base_url: str = field(
        default_factory=lambda: os.environ.get(
            "DEFAULT_ASSET_PROXY_BASE_URL", "http://localhost:3000"
        )
    )
    # When set, wins over the base URL derived from the incoming request.
    asset_proxy_base_url: str = field(
        default_factory=lambda: os.environ.get("ASSET_PROXY_BASE_URL", "")
    )

    # ------------------------------------------------------------------
    # HTTP server
    # ------------------------------------------------------------------
    host: str = field(default_factory=lambda: os.environ.get("ARCHIVER_HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.environ.get("ARCHIVER_PORT", "3002")))
    cors_origins: list[str] = field(
        default_factory=lambda: [
            o.strip()
            for o in os.environ.get("CORS_ORIGINS", "*").split(",")
            if o.strip()
        ]
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))


# Module-level singleton: import this everywhere:
#   from archiver.config import settings
settings = Settings()
