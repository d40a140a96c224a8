"""Command line interface: ``mcpnest read`` and ``mcpnest write``."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from collections.abc import Mapping, Sequence
from typing import Any

from . import __version__
from .client import EXIT_FATAL, EXIT_OK, MCPNestClient
from .errors import MCPNestClientError

_LOGGER = logging.getLogger(__name__)

COOKIE_ENV = "MCPNEST_COOKIE"
DEBUG_ENV = "DEBUG"
EXIT_USAGE = 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcpnest", description="CLI for MCPNest configuration management"
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "--debug", action="store_true", help=f"Verbose diagnostics (or set {DEBUG_ENV})"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    cookie_help = f"Cookie string for authentication (or use {COOKIE_ENV} env var)"

    read = commands.add_parser("read", help="Read current MCP configuration from MCPNest")
    read.add_argument("-c", "--cookies", help=cookie_help)

    write = commands.add_parser("write", help="Write MCP configuration to MCPNest")
    write.add_argument("-c", "--cookies", help=cookie_help)
    write.add_argument(
        "-f",
        "--file",
        help="JSON file containing the configuration (reads from stdin if omitted)",
    )
    return parser


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _load_config(path: str | None) -> Any:
    """Read and parse the config document from a file or stdin."""
    if path:
        with open(path, encoding="utf-8") as handle:
            data = handle.read()
    else:
        if sys.stdin.isatty():
            raise ValueError(
                "No input provided. Use -f option to specify a file or pipe JSON to stdin"
            )
        data = sys.stdin.read()
    return json.loads(data)


async def _read(cookie: str) -> int:
    async with MCPNestClient(cookie) as client:
        config = await client.read_config()
    sys.stdout.write(json.dumps(config, indent=2) + "\n")
    sys.stdout.flush()
    return EXIT_OK


async def _write(cookie: str, config: Any, environ: Mapping[str, str]) -> int:
    async with MCPNestClient(cookie) as client:
        result = await client.write_config(config, environ=environ)
    if result.conversion.valid:
        if result.conversion.invalid:
            print("Configuration saved successfully (with rejections)", file=sys.stderr)
        else:
            print("Configuration saved successfully", file=sys.stderr)
    return result.exit_code


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and return the process exit code."""
    args = _build_parser().parse_args(argv)
    _configure_logging(args.debug or bool(os.environ.get(DEBUG_ENV)))

    cookie = args.cookies or os.environ.get(COOKIE_ENV)
    if not cookie:
        print(
            f"Error: No cookies provided. Use -c option or set {COOKIE_ENV} "
            "environment variable",
            file=sys.stderr,
        )
        return EXIT_USAGE

    try:
        if args.command == "read":
            return asyncio.run(_read(cookie))

        config = _load_config(args.file)
        return asyncio.run(_write(cookie, config, os.environ))
    except (MCPNestClientError, OSError, ValueError) as err:
        _LOGGER.debug("Command failed", exc_info=True)
        print(f"Error: {err}", file=sys.stderr)
        return EXIT_FATAL
