"""Convert a Claude-style ``mcpServers`` config into the MCPNest schema.

MCPNest only runs stdio servers launched through ``npx`` or ``uvx``. Each
entry is either rewritten to the restricted field set or rejected with a
reason and a suggestion.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Final

_LOGGER = logging.getLogger(__name__)

ALLOWED_COMMANDS: Final = ("npx", "uvx")
ALLOWED_FIELDS: Final = ("command", "args", "transport", "env")
DEFAULT_TRANSPORT: Final = "stdio"

_PLACEHOLDER_RE = re.compile(r"\$\{([^}]+)\}")


@dataclass(frozen=True, slots=True)
class RejectedServer:
    """A server entry that cannot be saved to MCPNest."""

    name: str
    reason: str
    suggestion: str


@dataclass(slots=True)
class ConversionResult:
    """Outcome of converting one config document."""

    valid: dict[str, dict[str, Any]] = field(default_factory=dict)
    invalid: list[RejectedServer] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        """Config document holding only the accepted servers."""
        return {"mcpServers": dict(self.valid)}


def expand_env_placeholders(
    value: str, environ: Mapping[str, str] | None = None
) -> str:
    """Expand ``${NAME}`` and ``${NAME:-default}`` references.

    An empty variable counts as undefined. Undefined references without a
    default expand to the empty string and log a warning.
    """
    env = os.environ if environ is None else environ

    def _replace(match: re.Match[str]) -> str:
        expr = match.group(1)
        name, has_default, default = expr.partition(":-")
        resolved = env.get(name)
        if resolved:
            return resolved
        if has_default and default:
            return default
        if has_default:
            _LOGGER.warning(
                "Environment variable '%s' is undefined and no default provided", name
            )
        else:
            _LOGGER.warning("Environment variable '%s' is undefined", name)
        return ""

    return _PLACEHOLDER_RE.sub(_replace, value)


def _reject_reason(server: Mapping[str, Any]) -> tuple[str, str] | None:
    server_type = server.get("type")
    if server_type in ("http", "sse"):
        return (
            f"{server_type.upper()} transport not supported by MCPNest",
            "Use stdio-based alternative or deploy server separately",
        )

    if server.get("url") or server.get("headers"):
        return (
            "HTTP/SSE fields detected (url/headers)",
            "MCPNest only supports stdio transport",
        )

    command = server.get("command")
    if not command:
        return (
            "Missing required field: command",
            'Add command field with value "npx" or "uvx"',
        )

    if command not in ALLOWED_COMMANDS:
        command = str(command)
        if "/" in command or "\\" in command:
            suggestion = 'Package as npm/PyPI package and use "npx" or "uvx" command'
        else:
            suggestion = f'Use "npx" or "uvx" instead of "{command}"'
        return f"Command '{command}' not allowed", suggestion

    return None


def _convert_server(
    server: Mapping[str, Any], environ: Mapping[str, str] | None
) -> dict[str, Any]:
    converted: dict[str, Any] = {"command": server["command"]}

    if server.get("args") is not None:
        converted["args"] = server["args"]

    transport = server.get("transport")
    if isinstance(transport, Mapping) and transport.get("type"):
        converted["transport"] = dict(transport)
    else:
        converted["transport"] = {"type": DEFAULT_TRANSPORT}

    env = server.get("env")
    converted["env"] = {}
    if isinstance(env, Mapping):
        for key, value in env.items():
            if isinstance(value, str):
                converted["env"][key] = expand_env_placeholders(value, environ)
            else:
                converted["env"][key] = value

    return converted


def convert_config(
    config: Any, *, environ: Mapping[str, str] | None = None
) -> ConversionResult:
    """Validate and rewrite every server entry of ``config``.

    Args:
        config: Parsed config document with a ``mcpServers`` mapping
        environ: Lookup used for placeholder expansion, defaults to os.environ
    """
    result = ConversionResult()

    servers = config.get("mcpServers") if isinstance(config, Mapping) else None
    if not isinstance(servers, Mapping):
        result.warnings.append("Configuration must contain mcpServers object")
        return result

    for name, server in servers.items():
        if not isinstance(server, Mapping):
            result.invalid.append(
                RejectedServer(
                    name=name,
                    reason="Server entry must be an object",
                    suggestion='Provide an object with a "command" field',
                )
            )
            continue

        rejection = _reject_reason(server)
        if rejection is not None:
            reason, suggestion = rejection
            result.invalid.append(RejectedServer(name, reason, suggestion))
            continue

        result.valid[name] = _convert_server(server, environ)

        # "type" is folded into transport without a warning
        dropped = [
            key for key in server if key != "type" and key not in ALLOWED_FIELDS
        ]
        if dropped:
            result.warnings.append(
                f"Server '{name}': Removed invalid fields: {', '.join(dropped)}"
            )

    _LOGGER.debug(
        "Converted config: %d valid, %d invalid, %d warnings",
        len(result.valid),
        len(result.invalid),
        len(result.warnings),
    )
    return result
