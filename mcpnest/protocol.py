"""Protocol helpers for MCPNest LiveView channel frames.

Frames on the wire are JSON arrays of five elements:
``[join_ref, ref, topic, event, payload]``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final
from urllib.parse import quote, urlencode

DEFAULT_HOST: Final = "mcpnest.dev"
CONFIG_PATH: Final = "/config"
SOCKET_PATH: Final = "/live/websocket"
PROTOCOL_VSN: Final = "2.0.0"

PHOENIX_CHANNEL: Final = "phoenix"
LIVEVIEW_TOPIC_PREFIX: Final = "lv:"

HEARTBEAT_EVENT: Final = "heartbeat"
JOIN_EVENT: Final = "phx_join"
REPLY_EVENT: Final = "phx_reply"
PUSH_EVENT: Final = "event"

SAVE_CONFIG_EVENT: Final = "save_config"

USER_AGENT: Final = (
    "Mozilla/5.0 (X11; Linux x86_64; rv:145.0) Gecko/20100101 Firefox/145.0"
)
PAGE_ACCEPT: Final = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

# encodeURIComponent leaves these unescaped in addition to alphanumerics and "-_."
_URI_COMPONENT_SAFE: Final = "!~*'()"


@dataclass(frozen=True, slots=True)
class Frame:
    """A single channel frame."""

    join_ref: str | None
    ref: str | None
    topic: str
    event: str
    payload: dict[str, Any]

    def to_wire(self) -> list[Any]:
        """Return the five-element array sent over the socket."""
        return [self.join_ref, self.ref, self.topic, self.event, self.payload]

    @property
    def is_reply(self) -> bool:
        return self.event == REPLY_EVENT


def encode_frame(frame: Frame) -> str:
    """Serialize a frame to its JSON text form."""
    return json.dumps(frame.to_wire())


def decode_frame(data: str | list[Any]) -> Frame:
    """Parse an inbound frame.

    Raises:
        ValueError: If the data is not a well-formed five-element frame.
    """
    raw = json.loads(data) if isinstance(data, str) else data
    if not isinstance(raw, list) or len(raw) != 5:
        raise ValueError("Frame must be a five-element array")

    join_ref, ref, topic, event, payload = raw
    if not isinstance(topic, str) or not isinstance(event, str):
        raise ValueError("Frame topic and event must be strings")
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValueError(f"Frame payload must be an object, got {type(payload).__name__}")

    return Frame(
        join_ref=None if join_ref is None else str(join_ref),
        ref=None if ref is None else str(ref),
        topic=topic,
        event=event,
        payload=payload,
    )


def liveview_topic(element_id: str) -> str:
    """Return the channel topic for a LiveView root element."""
    return f"{LIVEVIEW_TOPIC_PREFIX}{element_id}"


def build_heartbeat_frame(ref: str) -> Frame:
    """Construct a fire-and-forget keep-alive frame."""
    return Frame(None, ref, PHOENIX_CHANNEL, HEARTBEAT_EVENT, {})


def build_join_frame(
    *,
    join_ref: str,
    ref: str,
    topic: str,
    host: str,
    csrf_token: str,
    session_token: str | None,
    static_token: str | None,
) -> Frame:
    """Construct the LiveView join frame for the config page."""
    return Frame(
        join_ref,
        ref,
        topic,
        JOIN_EVENT,
        {
            "url": page_url(host),
            "params": {
                "_csrf_token": csrf_token,
                "_mounts": 0,
                "_mount_attempts": 0,
            },
            "session": session_token or "",
            "static": static_token or "",
            "sticky": False,
        },
    )


def build_event_frame(
    *,
    join_ref: str,
    ref: str,
    topic: str,
    event: str,
    value: str,
    event_type: str = "form",
) -> Frame:
    """Construct a LiveView event push (e.g. a synthetic form submit)."""
    return Frame(
        join_ref,
        ref,
        topic,
        PUSH_EVENT,
        {
            "type": event_type,
            "event": event,
            "value": value,
            "meta": {},
        },
    )


def encode_form_value(field: str, document: Mapping[str, Any]) -> str:
    """Encode a JSON document as a single urlencoded form field.

    The JSON is indented by two spaces, percent-encoded like
    ``encodeURIComponent`` and spaces are sent as ``+``.
    """
    encoded = quote(json.dumps(document, indent=2), safe=_URI_COMPONENT_SAFE)
    return f"{field}={encoded.replace('%20', '+')}"


def page_url(host: str) -> str:
    return f"https://{host}{CONFIG_PATH}"


def build_socket_url(host: str, csrf_token: str) -> str:
    """Build the channel socket URL including the mount query parameters."""
    params = urlencode(
        {
            "_csrf_token": csrf_token,
            "_mounts": "0",
            "_mount_attempts": "0",
            "_live_referer": "undefined",
            "vsn": PROTOCOL_VSN,
        }
    )
    return f"wss://{host}{SOCKET_PATH}?{params}"


def build_socket_headers(cookie: str) -> dict[str, str]:
    """Extra headers sent with the socket upgrade request.

    ``User-Agent`` and ``Origin`` are passed to the socket library separately;
    the version and extension headers are generated by it.
    """
    return {
        "Accept": "*/*",
        "Accept-Language": "en-US,en;q=0.5",
        "Sec-GPC": "1",
        "Pragma": "no-cache",
        "Cache-Control": "no-cache",
        "Cookie": cookie,
    }


def socket_origin(host: str) -> str:
    return f"https://{host}"
