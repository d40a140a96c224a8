"""WebSocket client wrapper for the MCPNest LiveView channel."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from .errors import MCPNestClientError, MCPNestConnectError
from .protocol import Frame, decode_frame, encode_frame
from .ws import connect_websocket

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

_LOGGER = logging.getLogger(__name__)


class MCPNestWsMessageType(Enum):
    """Normalized WebSocket message types."""

    TEXT = "text"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class MCPNestWsMessage:
    """Normalized WebSocket message payload."""

    type: MCPNestWsMessageType
    data: str | None = None


class MCPNestWsClient:
    """Wrapper around websockets library for the LiveView channel."""

    def __init__(self) -> None:
        self._ws: ClientConnection | None = None

    async def connect(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        origin: str | None = None,
        user_agent: str | None = None,
        ping_interval: int | None = None,
        timeout: float = 15.0,
    ) -> None:
        """Open the channel socket."""
        self._ws = await connect_websocket(
            url,
            headers=headers,
            origin=origin,
            user_agent=user_agent,
            ping_interval=ping_interval,
            timeout=timeout,
        )

    @property
    def is_open(self) -> bool:
        """True while frames can be sent on the socket."""
        return self._ws is not None and self._ws.state is State.OPEN

    async def close(self, *, timeout: float = 2.0) -> None:
        """Close the socket, aborting the transport if the close handshake stalls."""
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await asyncio.wait_for(ws.close(), timeout=timeout)
        except TimeoutError:
            _LOGGER.warning("WebSocket close timed out, aborting transport")
            ws.transport.abort()

    async def send_frame(self, frame: Frame) -> None:
        """Send a channel frame."""
        if self._ws is None:
            raise MCPNestConnectError("WebSocket is not connected")
        try:
            await self._ws.send(encode_frame(frame))
        except ConnectionClosed as err:
            raise MCPNestConnectError("WebSocket closed while sending") from err

    def __aiter__(self) -> AsyncIterator[MCPNestWsMessage]:
        if self._ws is None:
            raise MCPNestConnectError("WebSocket is not connected")
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[MCPNestWsMessage]:
        if self._ws is None:
            raise MCPNestConnectError("WebSocket is not connected")

        try:
            async for msg in self._ws:
                normalized = self._normalize_message(msg)
                if normalized is None:
                    continue
                yield normalized
        except ConnectionClosed:
            yield MCPNestWsMessage(type=MCPNestWsMessageType.CLOSED)
        except Exception:
            _LOGGER.debug("WebSocket iteration failed", exc_info=True)
            yield MCPNestWsMessage(type=MCPNestWsMessageType.ERROR)
        else:
            # Normal iteration completion means the peer closed gracefully.
            yield MCPNestWsMessage(type=MCPNestWsMessageType.CLOSED)

    @staticmethod
    def _normalize_message(msg: Any) -> MCPNestWsMessage | None:
        """Normalize received data; binary frames are not part of the protocol."""
        if isinstance(msg, bytes):
            return None
        if isinstance(msg, str):
            return MCPNestWsMessage(MCPNestWsMessageType.TEXT, msg)
        return MCPNestWsMessage(MCPNestWsMessageType.TEXT, str(msg))

    @staticmethod
    def decode_frame(message: MCPNestWsMessage) -> Frame:
        """Decode a TEXT message into a channel frame."""
        if message.type is not MCPNestWsMessageType.TEXT:
            raise MCPNestClientError("Only TEXT messages can be decoded")
        if not isinstance(message.data, str):
            raise MCPNestClientError("Message data is not a string")
        return decode_frame(message.data)
