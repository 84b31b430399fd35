"""Logging setup shared by the HTTP app and the CLI."""

from __future__ import annotations

import logging

from archiver.config import settings

_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install a single stream handler on the ``archiver`` logger.

    Safe to call more than once; later calls only adjust the level.
    """
    logger = logging.getLogger("archiver")
    logger.setLevel((level or settings.log_level).upper())
    if not any(getattr(h, "_archiver", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._archiver = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
