"""Exception hierarchy shared by the capture pipeline and the asset proxy."""

from __future__ import annotations


class ArchiveError(Exception):
    """Base class for failures that abort an archive request."""


class NavigationError(ArchiveError):
    """The page could not be loaded within the navigation timeout."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Navigation to {url} failed: {reason}")
        self.url = url
        self.reason = reason


class SanitizationError(ArchiveError):
    """The rendered document could not be parsed for sanitization."""


class AssetProxyError(Exception):
    """A proxied asset request was rejected.

    ``status_code`` is the HTTP status returned to the client and ``message``
    is the only detail the client ever sees.
    """

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
