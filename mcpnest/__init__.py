"""Client for the MCPNest LiveView config page."""

__version__ = "0.1.0"

from .client import MCPNestClient, WriteResult
from .config import ConversionResult, RejectedServer, convert_config, expand_env_placeholders
from .errors import (
    MCPNestAuthError,
    MCPNestClientError,
    MCPNestConnectError,
    MCPNestExtractionError,
    MCPNestNetworkError,
    MCPNestProtocolError,
    MCPNestSessionClosed,
    MCPNestTimeout,
)
from .http import MCPNestHttpClient, PageTokens, parse_page_tokens
from .protocol import Frame, decode_frame, encode_frame
from .render import extract_config_payload, find_payload, unescape_entities
from .session import MCPNestSession
from .ws import connect_websocket
from .ws_client import MCPNestWsClient, MCPNestWsMessage, MCPNestWsMessageType

__all__ = [
    "ConversionResult",
    "Frame",
    "MCPNestAuthError",
    "MCPNestClient",
    "MCPNestClientError",
    "MCPNestConnectError",
    "MCPNestExtractionError",
    "MCPNestHttpClient",
    "MCPNestNetworkError",
    "MCPNestProtocolError",
    "MCPNestSession",
    "MCPNestSessionClosed",
    "MCPNestTimeout",
    "MCPNestWsClient",
    "MCPNestWsMessage",
    "MCPNestWsMessageType",
    "PageTokens",
    "RejectedServer",
    "WriteResult",
    "__version__",
    "connect_websocket",
    "convert_config",
    "decode_frame",
    "encode_frame",
    "expand_env_placeholders",
    "extract_config_payload",
    "find_payload",
    "parse_page_tokens",
    "unescape_entities",
]
