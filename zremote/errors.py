"""Exceptions raised by the remote-api client."""

from __future__ import annotations


class LinkConnectionError(RuntimeError):
    """Raised when the link cannot be established after exhausting retries."""


class ClosedError(RuntimeError):
    """Raised when sending on a link or channel that is already closed."""


class InvalidLocatorError(ValueError):
    """Raised when a locator does not resolve to a ws:// or wss:// endpoint."""


class RemoteError(RuntimeError):
    """Raised when the remote-api plugin answers a request with an error."""
