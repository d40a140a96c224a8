"""Protocol session for the MCPNest LiveView channel.

This module owns one authenticated channel for the lifetime of a CLI
invocation. It handles:
- Token scraping from the config page (once per session)
- Socket connection and the LiveView join handshake
- Correlated request/reply calls keyed by (topic, ref)
- Periodic keep-alive frames

Session states: "idle" -> "tokens_fetched" -> "connected" -> "joined",
"closed" from anywhere via close(), "failed" from any non-terminal state.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp

from .errors import (
    MCPNestAuthError,
    MCPNestClientError,
    MCPNestConnectError,
    MCPNestProtocolError,
    MCPNestSessionClosed,
    MCPNestTimeout,
)
from .http import MCPNestHttpClient, PageTokens
from .protocol import (
    DEFAULT_HOST,
    SAVE_CONFIG_EVENT,
    USER_AGENT,
    Frame,
    build_event_frame,
    build_heartbeat_frame,
    build_join_frame,
    build_socket_headers,
    build_socket_url,
    liveview_topic,
    socket_origin,
)
from .ws_client import MCPNestWsClient, MCPNestWsMessageType

_LOGGER = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 30.0
REPLY_TIMEOUT = 10.0


class MCPNestSession:
    """One authenticated LiveView channel session.

    Usage:
        session = MCPNestSession(cookie)
        await session.connect()
        rendered = await session.join()
        reply = await session.submit_event("save_config", value)
        await session.close()
    """

    def __init__(
        self,
        cookie: str,
        *,
        host: str = DEFAULT_HOST,
        http_session: aiohttp.ClientSession | None = None,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        reply_timeout: float = REPLY_TIMEOUT,
        connect_timeout: float = 15.0,
        request_timeout: float = 10.0,
    ) -> None:
        """Initialize session.

        Args:
            cookie: Authentication cookie header value, never persisted
            host: MCPNest host
            http_session: Optional aiohttp session used for the token fetch
            heartbeat_interval: Keep-alive period (seconds)
            reply_timeout: Deadline for each correlated reply (seconds)
            connect_timeout: Socket open timeout (seconds)
            request_timeout: Config page request timeout (seconds)
        """
        self.host = host
        self._cookie = cookie
        self._http_session = http_session

        self._heartbeat_interval = heartbeat_interval
        self._reply_timeout = reply_timeout
        self._connect_timeout = connect_timeout
        self._request_timeout = request_timeout

        self._state = "idle"
        self._connection_state = "disconnected"
        self._closed = False

        # Protocol state
        self._tokens: PageTokens | None = None
        self._ref = 0
        self._join_ref: str | None = None
        self._topic: str | None = None
        self._pending: dict[tuple[str, str], asyncio.Future[dict[str, Any]]] = {}

        # Transport
        self._ws: MCPNestWsClient | None = None
        self._listen_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def state(self) -> str:
        return self._state

    @property
    def connection_state(self) -> str:
        """One of "disconnected", "connecting", "connected"."""
        return self._connection_state

    @property
    def tokens(self) -> PageTokens | None:
        return self._tokens

    @property
    def join_ref(self) -> str | None:
        return self._join_ref

    @property
    def topic(self) -> str | None:
        """Joined channel topic, None until a join succeeds."""
        return self._topic

    @property
    def pending_requests(self) -> frozenset[tuple[str, str]]:
        """(topic, ref) keys of correlated calls awaiting a reply."""
        return frozenset(self._pending)

    async def connect(self) -> None:
        """Scrape tokens if needed and open the channel socket.

        Raises:
            MCPNestAuthError: No CSRF token on the config page
            MCPNestNetworkError: Token fetch or socket open failed
            MCPNestTimeout: Token fetch or socket open timed out
        """
        self._ensure_usable()
        if self._state not in ("idle", "tokens_fetched"):
            raise MCPNestProtocolError(f"Cannot connect in state {self._state}")

        try:
            if self._tokens is None:
                _LOGGER.debug("[%s] Fetching fresh tokens", self.host)
                tokens = await self._fetch_tokens()
                if not tokens.csrf_token:
                    raise MCPNestAuthError(
                        "Failed to fetch CSRF token from page. "
                        "Make sure you are logged in and cookies are valid."
                    )
                self._tokens = tokens
                self._set_state("tokens_fetched")

            await self._open_socket(self._tokens.csrf_token or "")
        except MCPNestClientError:
            self._mark_failed()
            raise

    async def join(self) -> dict[str, Any]:
        """Join the LiveView channel and return the rendered reply payload.

        Raises:
            MCPNestProtocolError: No element id was scraped, or the server
                replied with an error status
            MCPNestTimeout: No reply within the reply timeout
        """
        self._ensure_usable()
        if self._state != "connected":
            raise MCPNestProtocolError(f"Cannot join in state {self._state}")

        tokens = self._tokens or PageTokens()
        try:
            if not tokens.element_id:
                raise MCPNestProtocolError("Failed to extract LiveView element id from page")

            topic = liveview_topic(tokens.element_id)
            _LOGGER.debug("[%s] Joining topic %s", self.host, topic)

            self._join_ref = self._next_ref()
            frame = build_join_frame(
                join_ref=self._join_ref,
                ref=self._next_ref(),
                topic=topic,
                host=self.host,
                csrf_token=tokens.csrf_token or "",
                session_token=tokens.session,
                static_token=tokens.static,
            )
            response = await self._request(frame)
        except MCPNestClientError:
            self._mark_failed()
            raise

        self._topic = topic
        self._set_state("joined")
        _LOGGER.info("[%s] Joined %s", self.host, topic)
        return response

    async def submit_event(
        self, event: str, value: str, *, event_type: str = "form"
    ) -> dict[str, Any]:
        """Push an event on the joined channel and return the reply response."""
        self._ensure_usable()
        if self._state != "joined" or self._topic is None or self._join_ref is None:
            raise MCPNestProtocolError("Cannot submit event before joining the channel")

        frame = build_event_frame(
            join_ref=self._join_ref,
            ref=self._next_ref(),
            topic=self._topic,
            event=event,
            value=value,
            event_type=event_type,
        )
        try:
            return await self._request(frame)
        except MCPNestClientError:
            self._mark_failed()
            raise

    async def save_config(self, value: str) -> dict[str, Any]:
        """Submit the config form with an already encoded field value."""
        return await self.submit_event(SAVE_CONFIG_EVENT, value)

    async def close(self) -> None:
        """Tear down the session. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        _LOGGER.debug("[%s] Closing session", self.host)

        for task in (self._heartbeat_task, self._listen_task):
            if task is None or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._heartbeat_task = None
        self._listen_task = None

        self._fail_pending(MCPNestSessionClosed("Session closed"))

        if self._ws is not None:
            await self._ws.close()
            self._ws = None

        self._set_connection_state("disconnected")
        self._set_state("closed")

    # -------------------------------------------------------------------------
    # Internal: State
    # -------------------------------------------------------------------------

    def _set_state(self, state: str) -> None:
        if self._state != state:
            _LOGGER.debug("[%s] State: %s → %s", self.host, self._state, state)
            self._state = state

    def _set_connection_state(self, state: str) -> None:
        if self._connection_state != state:
            _LOGGER.debug(
                "[%s] Connection: %s → %s", self.host, self._connection_state, state
            )
            self._connection_state = state

    def _mark_failed(self) -> None:
        if not self._closed:
            self._set_state("failed")

    def _ensure_usable(self) -> None:
        if self._closed:
            raise MCPNestSessionClosed("Session is closed")
        if self._state == "failed":
            raise MCPNestSessionClosed("Session has failed; close it and start a new one")

    def _next_ref(self) -> str:
        ref = str(self._ref)
        self._ref += 1
        return ref

    # -------------------------------------------------------------------------
    # Internal: Connection
    # -------------------------------------------------------------------------

    async def _fetch_tokens(self) -> PageTokens:
        if self._http_session is not None:
            client = MCPNestHttpClient(
                self._http_session, self.host, request_timeout=self._request_timeout
            )
            return await client.fetch_page_tokens(self._cookie)

        async with aiohttp.ClientSession() as http_session:
            client = MCPNestHttpClient(
                http_session, self.host, request_timeout=self._request_timeout
            )
            return await client.fetch_page_tokens(self._cookie)

    async def _open_socket(self, csrf_token: str) -> None:
        self._set_connection_state("connecting")
        ws_client = MCPNestWsClient()
        try:
            await ws_client.connect(
                build_socket_url(self.host, csrf_token),
                headers=build_socket_headers(self._cookie),
                origin=socket_origin(self.host),
                user_agent=USER_AGENT,
                timeout=self._connect_timeout,
            )
        except MCPNestClientError as err:
            _LOGGER.error("[%s] WebSocket error: %s", self.host, err)
            self._set_connection_state("disconnected")
            raise

        self._ws = ws_client
        self._set_connection_state("connected")
        self._set_state("connected")
        _LOGGER.debug("[%s] Connected to websocket", self.host)

        self._listen_task = asyncio.create_task(self._listen())
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    def _handle_transport_lost(self) -> None:
        """Channel went away without close() being called."""
        self._set_connection_state("disconnected")
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None
        self._fail_pending(MCPNestConnectError("Channel closed by server"))

    # -------------------------------------------------------------------------
    # Internal: Correlated calls
    # -------------------------------------------------------------------------

    async def _send(self, frame: Frame) -> None:
        if self._ws is None or not self._ws.is_open:
            raise MCPNestConnectError("Channel is not open")
        _LOGGER.debug(
            "[%s] Sending %s on %s ref=%s", self.host, frame.event, frame.topic, frame.ref
        )
        await self._ws.send_frame(frame)

    async def _request(self, frame: Frame) -> dict[str, Any]:
        """Send a frame and wait for the reply carrying the same (topic, ref)."""
        if frame.ref is None:
            raise MCPNestProtocolError("Correlated frames need a message ref")

        key = (frame.topic, frame.ref)
        future: asyncio.Future[dict[str, Any]] = (
            asyncio.get_running_loop().create_future()
        )
        self._pending[key] = future
        try:
            await self._send(frame)
            payload = await asyncio.wait_for(future, timeout=self._reply_timeout)
        except TimeoutError as err:
            _LOGGER.debug(
                "[%s] No reply to %s on %s ref=%s",
                self.host,
                frame.event,
                frame.topic,
                frame.ref,
            )
            raise MCPNestTimeout(
                f"No reply to {frame.event} on {frame.topic} "
                f"within {self._reply_timeout}s"
            ) from err
        finally:
            self._pending.pop(key, None)

        if payload.get("status") == "ok":
            response = payload.get("response")
            return response if isinstance(response, dict) else {}

        _LOGGER.error("[%s] %s rejected: %s", self.host, frame.event, payload)
        raise MCPNestProtocolError(
            f"{frame.event} failed: {json.dumps(payload)}",
            reason=payload.get("response", payload),
        )

    def _fail_pending(self, error: MCPNestClientError) -> None:
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)

    def _dispatch(self, frame: Frame) -> None:
        """Resolve the pending call a reply frame belongs to."""
        if not frame.is_reply or frame.ref is None:
            _LOGGER.debug("[%s] Ignoring %s on %s", self.host, frame.event, frame.topic)
            return

        future = self._pending.pop((frame.topic, frame.ref), None)
        if future is None or future.done():
            _LOGGER.debug(
                "[%s] Ignoring reply without pending call: %s ref=%s",
                self.host,
                frame.topic,
                frame.ref,
            )
            return
        future.set_result(frame.payload)

    # -------------------------------------------------------------------------
    # Internal: Message Listener
    # -------------------------------------------------------------------------

    async def _listen(self) -> None:
        """Dispatch inbound frames one at a time, in arrival order."""
        ws = self._ws
        if ws is None:
            return

        message_count = 0
        try:
            async for msg in ws:
                if msg.type is MCPNestWsMessageType.TEXT:
                    message_count += 1
                    try:
                        frame = ws.decode_frame(msg)
                    except (ValueError, MCPNestClientError) as err:
                        _LOGGER.warning("[%s] Invalid frame: %s", self.host, err)
                        continue
                    _LOGGER.debug(
                        "[%s] Received %s on %s status=%s",
                        self.host,
                        frame.event,
                        frame.topic,
                        frame.payload.get("status", "no status"),
                    )
                    self._dispatch(frame)

                elif msg.type is MCPNestWsMessageType.CLOSED:
                    _LOGGER.debug("[%s] WebSocket closed", self.host)
                    break

                elif msg.type is MCPNestWsMessageType.ERROR:
                    _LOGGER.error("[%s] WebSocket error", self.host)
                    break

        except asyncio.CancelledError:
            _LOGGER.debug(
                "[%s] Listener cancelled (%d messages)", self.host, message_count
            )
            raise
        finally:
            if not self._closed:
                self._handle_transport_lost()

    # -------------------------------------------------------------------------
    # Internal: Keepalive
    # -------------------------------------------------------------------------

    async def _heartbeat_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._heartbeat_interval)
                await self._send_heartbeat()
        except asyncio.CancelledError:
            _LOGGER.debug("[%s] Keepalive cancelled", self.host)
            raise

    async def _send_heartbeat(self) -> bool:
        """Send one keep-alive frame; dropped when the socket is not open."""
        if self._ws is None or not self._ws.is_open:
            _LOGGER.debug("[%s] Heartbeat dropped: channel not open", self.host)
            return False

        try:
            await self._ws.send_frame(build_heartbeat_frame(self._next_ref()))
        except MCPNestClientError as err:
            _LOGGER.debug("[%s] Heartbeat send failed: %s", self.host, err)
            return False
        return True
