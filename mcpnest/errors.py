"""Client error types for MCPNest LiveView interactions."""

from __future__ import annotations

from typing import Any


class MCPNestClientError(Exception):
    """Base error for MCPNest client failures."""


class MCPNestAuthError(MCPNestClientError):
    """No usable CSRF token could be scraped from the config page."""


class MCPNestNetworkError(MCPNestClientError):
    """Network transport to MCPNest failed."""


class MCPNestConnectError(MCPNestNetworkError):
    """The channel socket failed before reaching the open state."""


class MCPNestProtocolError(MCPNestClientError):
    """A correlated reply reported an error, or a required identifier is missing."""

    def __init__(self, message: str, reason: Any = None) -> None:
        super().__init__(message)
        self.reason = reason


class MCPNestTimeout(MCPNestClientError):
    """Timeout while communicating with MCPNest."""


class MCPNestExtractionError(MCPNestClientError):
    """Config payload was not found in the render tree or is not valid JSON."""


class MCPNestSessionClosed(MCPNestClientError):
    """The session was closed while, or before, an operation ran."""
