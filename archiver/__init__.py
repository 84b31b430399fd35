"""Secure page archiver: render, sanitize, scope and proxy third-party pages."""

__version__ = "0.1.0"
