"""Read and write the MCPNest config over a LiveView session."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, TextIO

from .config import ConversionResult, convert_config
from .errors import MCPNestExtractionError
from .protocol import encode_form_value
from .render import extract_config_payload
from .session import MCPNestSession

_LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_ALL_REJECTED = 2
EXIT_FATAL = 3


@dataclass(slots=True)
class WriteResult:
    """Outcome of a config write."""

    exit_code: int
    conversion: ConversionResult
    response: dict[str, Any] = field(default_factory=dict)


def _plural(count: int) -> str:
    return "" if count == 1 else "s"


def print_conversion_report(result: ConversionResult, stream: TextIO) -> None:
    """Write the human readable validation summary."""
    valid_count = len(result.valid)
    invalid_count = len(result.invalid)

    print("\n⚠ Validation Results:", file=stream)
    if valid_count:
        print(
            f"  ✓ {valid_count} server{_plural(valid_count)} validated successfully",
            file=stream,
        )
    if invalid_count:
        print(f"  ✗ {invalid_count} server{_plural(invalid_count)} rejected:", file=stream)
        print("", file=stream)
        for rejected in result.invalid:
            print(f'    • "{rejected.name}": {rejected.reason}', file=stream)
            print(f"      Suggestion: {rejected.suggestion}", file=stream)
            print("", file=stream)
    if result.warnings:
        print("  ⚠ Warnings:", file=stream)
        for warning in result.warnings:
            print(f"    • {warning}", file=stream)
        print("", file=stream)


class MCPNestClient:
    """High-level MCPNest config client.

    Usage:
        async with MCPNestClient(cookie) as client:
            config = await client.read_config()
    """

    def __init__(self, cookie: str, **session_kwargs: Any) -> None:
        self.session = MCPNestSession(cookie, **session_kwargs)

    async def __aenter__(self) -> MCPNestClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self.session.close()

    async def read_config(self) -> Any:
        """Connect, join and return the parsed config document.

        Raises:
            MCPNestExtractionError: The config is missing from the render
                tree or is not valid JSON
        """
        await self.session.connect()
        response = await self.session.join()

        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("Join response keys: %s", list(response))
            _LOGGER.debug("Join response: %s", json.dumps(response, indent=2)[:1000])

        payload = extract_config_payload(response)
        if payload is None:
            raise MCPNestExtractionError("Could not extract configuration from response")
        try:
            config = json.loads(payload)
        except json.JSONDecodeError as err:
            raise MCPNestExtractionError(
                f"Extracted configuration is not valid JSON: {err}"
            ) from err
        return config

    async def write_config(
        self,
        config: Any,
        *,
        environ: Mapping[str, str] | None = None,
        report: TextIO | None = None,
    ) -> WriteResult:
        """Convert ``config`` and save the accepted servers.

        Nothing is sent when every server is rejected.
        """
        conversion = convert_config(config, environ=environ)
        stream = report if report is not None else sys.stderr
        print_conversion_report(conversion, stream)

        valid_count = len(conversion.valid)
        if valid_count == 0:
            print("  No valid servers to save. Aborting.", file=stream)
            return WriteResult(exit_code=EXIT_ALL_REJECTED, conversion=conversion)

        print(
            f"  Proceeding with {valid_count} valid server{_plural(valid_count)}...\n",
            file=stream,
        )

        document = conversion.to_document()
        _LOGGER.debug("Config being saved: %s", json.dumps(document, indent=2))

        await self.session.connect()
        await self.session.join()
        response = await self.session.save_config(
            encode_form_value("config_json", document)
        )
        _LOGGER.debug("Save response: %s", json.dumps(response))

        exit_code = EXIT_PARTIAL if conversion.invalid else EXIT_OK
        return WriteResult(exit_code=exit_code, conversion=conversion, response=response)
