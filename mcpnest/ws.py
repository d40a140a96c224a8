"""WebSocket helpers for the MCPNest LiveView channel."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from .errors import (
    MCPNestConnectError,
    MCPNestTimeout,
)


async def connect_websocket(
    url: str,
    *,
    headers: Mapping[str, str] | None = None,
    origin: str | None = None,
    user_agent: str | None = None,
    ping_interval: int | None = 20,
    timeout: float = 15.0,
) -> ClientConnection:
    """Connect to a LiveView socket endpoint.

    Args:
        url: Full ``wss://`` URL including query parameters
        headers: Extra upgrade request headers
        origin: Value of the ``Origin`` header
        user_agent: Value of the ``User-Agent`` header
        ping_interval: Interval for protocol-level ping frames, None disables
        timeout: Connection timeout
    """
    try:
        return await asyncio.wait_for(
            websockets.connect(
                url,
                additional_headers=dict(headers or {}),
                origin=origin,
                user_agent_header=user_agent,
                ping_interval=ping_interval,
                close_timeout=5,
                max_size=None,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise MCPNestTimeout("WebSocket connection timed out") from err
    except (InvalidHandshake, InvalidURI) as err:
        raise MCPNestConnectError("WebSocket handshake failed") from err
    except (OSError, WebSocketException) as err:
        raise MCPNestConnectError("WebSocket connection failed") from err
