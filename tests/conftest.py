"""Pytest configuration and fixtures for mcpnest tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Iterable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from mcpnest.errors import MCPNestConnectError
from mcpnest.protocol import HEARTBEAT_EVENT, REPLY_EVENT, Frame, encode_frame
from mcpnest.ws_client import MCPNestWsClient, MCPNestWsMessage, MCPNestWsMessageType

PAGE_HTML = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta name="csrf-token" content="csrf-abc123">
  </head>
  <body>
    <div id="phx-F1a2b3c4" data-phx-main data-phx-session="SFMyNTY.session"
         data-phx-static="SFMyNTY.static"></div>
  </body>
</html>
"""

ELEMENT_ID = "phx-F1a2b3c4"
TOPIC = f"lv:{ELEMENT_ID}"

Responder = Callable[[Frame], Iterable[Any]]


@pytest.fixture
def mock_session() -> MagicMock:
    """Create a mock aiohttp ClientSession."""
    import aiohttp

    return MagicMock(spec=aiohttp.ClientSession)


@pytest.fixture
def page_session(mock_session: MagicMock) -> MagicMock:
    """Mock aiohttp session serving an authenticated config page."""
    mock_session.get.return_value = create_mock_response(
        status=200, text_data=PAGE_HTML
    )
    return mock_session


def create_mock_response(
    status: int = 200,
    json_data: dict[str, Any] | None = None,
    text_data: str | None = None,
    read_data: bytes | None = None,
) -> AsyncMock:
    """Create a configured mock response.

    Args:
        status: HTTP status code
        json_data: Data to return from json() call
        text_data: Data to return from text() call
        read_data: Data to return from read() call

    Returns:
        Configured AsyncMock response
    """
    response = AsyncMock()
    response.status = status

    if json_data is not None:
        response.json.return_value = json_data
    if text_data is not None:
        response.text.return_value = text_data
    if read_data is not None:
        response.read.return_value = read_data

    response.__aenter__.return_value = response
    response.__aexit__.return_value = None

    return response


def reply_frame(frame: Frame, status: str, response: dict[str, Any]) -> list[Any]:
    """Build the wire form of a server reply to ``frame``."""
    return [
        frame.join_ref,
        frame.ref,
        frame.topic,
        REPLY_EVENT,
        {"status": status, "response": response},
    ]


def replying(status: str = "ok", response: dict[str, Any] | None = None) -> Responder:
    """Responder answering every correlated frame with the same reply."""

    def _respond(frame: Frame) -> list[list[Any]]:
        if frame.event == HEARTBEAT_EVENT:
            return []
        return [reply_frame(frame, status, response or {})]

    return _respond


class FakeChannel:
    """In-memory stand-in for MCPNestWsClient."""

    def __init__(self, responder: Responder | None = None) -> None:
        self.responder = responder
        self.sent: list[Frame] = []
        self.url: str | None = None
        self.connect_kwargs: dict[str, Any] = {}
        self.close_calls = 0
        self.open = False
        self._inbox: asyncio.Queue[MCPNestWsMessage | None] = asyncio.Queue()

    async def connect(self, url: str, **kwargs: Any) -> None:
        self.url = url
        self.connect_kwargs = kwargs
        self.open = True

    @property
    def is_open(self) -> bool:
        return self.open

    async def close(self, *, timeout: float = 2.0) -> None:
        self.close_calls += 1
        self.open = False
        self._inbox.put_nowait(None)

    async def send_frame(self, frame: Frame) -> None:
        if not self.open:
            raise MCPNestConnectError("WebSocket is not connected")
        self.sent.append(frame)
        if self.responder is not None:
            for reply in self.responder(frame):
                self.push(reply)

    def push(self, raw: Any) -> None:
        """Queue an inbound frame (list) or raw text."""
        data = raw if isinstance(raw, str) else json.dumps(raw)
        self._inbox.put_nowait(MCPNestWsMessage(MCPNestWsMessageType.TEXT, data))

    def push_frame(self, frame: Frame) -> None:
        self._inbox.put_nowait(
            MCPNestWsMessage(MCPNestWsMessageType.TEXT, encode_frame(frame))
        )

    def push_closed(self) -> None:
        self.open = False
        self._inbox.put_nowait(MCPNestWsMessage(MCPNestWsMessageType.CLOSED))

    def __aiter__(self):
        return self._iter_messages()

    async def _iter_messages(self):
        while True:
            message = await self._inbox.get()
            if message is None:
                return
            yield message

    decode_frame = staticmethod(MCPNestWsClient.decode_frame)


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()
