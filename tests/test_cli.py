"""Test the mcpnest command line entry point."""

from __future__ import annotations

import io
import json
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mcpnest.cli import main
from mcpnest.client import WriteResult
from mcpnest.config import ConversionResult, RejectedServer
from mcpnest.errors import MCPNestAuthError, MCPNestTimeout


def stub_client(**methods) -> MagicMock:
    client = MagicMock()
    client.__aenter__.return_value = client
    client.__aexit__.return_value = None
    for name, value in methods.items():
        setattr(client, name, value)
    return client


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MCPNEST_COOKIE", raising=False)
    monkeypatch.delenv("DEBUG", raising=False)


class TestRead:
    """mcpnest read."""

    def test_missing_cookie(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["read"]) == 1
        assert "No cookies provided" in capsys.readouterr().err

    def test_prints_config(self, capsys: pytest.CaptureFixture[str]) -> None:
        client = stub_client(read_config=AsyncMock(return_value={"mcpServers": {}}))

        with patch("mcpnest.cli.MCPNestClient", return_value=client) as factory:
            assert main(["read", "-c", "_mcpnest_key=abc"]) == 0

        factory.assert_called_once_with("_mcpnest_key=abc")
        captured = capsys.readouterr()
        assert json.loads(captured.out) == {"mcpServers": {}}
        assert captured.out == '{\n  "mcpServers": {}\n}\n'

    def test_cookie_from_environment(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setenv("MCPNEST_COOKIE", "env-cookie")
        client = stub_client(read_config=AsyncMock(return_value={}))

        with patch("mcpnest.cli.MCPNestClient", return_value=client) as factory:
            assert main(["read"]) == 0

        factory.assert_called_once_with("env-cookie")

    @pytest.mark.parametrize(
        "error", [MCPNestAuthError("no csrf token"), MCPNestTimeout("join timed out")]
    )
    def test_fatal_error(
        self, error: Exception, capsys: pytest.CaptureFixture[str]
    ) -> None:
        client = stub_client(read_config=AsyncMock(side_effect=error))

        with patch("mcpnest.cli.MCPNestClient", return_value=client):
            assert main(["read", "-c", "c"]) == 3

        captured = capsys.readouterr()
        assert captured.out == ""
        assert f"Error: {error}" in captured.err


class TestWrite:
    """mcpnest write."""

    def test_from_file(self, tmp_path, capsys: pytest.CaptureFixture[str]) -> None:
        document = {"mcpServers": {"a": {"command": "npx"}}}
        path = tmp_path / "config.json"
        path.write_text(json.dumps(document), encoding="utf-8")
        result = WriteResult(
            exit_code=1,
            conversion=ConversionResult(
                valid={"a": {"command": "npx"}},
                invalid=[RejectedServer("b", "reason", "suggestion")],
            ),
        )
        client = stub_client(write_config=AsyncMock(return_value=result))

        with patch("mcpnest.cli.MCPNestClient", return_value=client):
            assert main(["write", "-c", "c", "-f", str(path)]) == 1

        client.write_config.assert_awaited_once_with(document, environ=os.environ)
        assert "Configuration saved successfully (with rejections)" in (
            capsys.readouterr().err
        )

    def test_from_stdin(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("sys.stdin", io.StringIO('{"mcpServers": {}}'))
        result = WriteResult(exit_code=2, conversion=ConversionResult())
        client = stub_client(write_config=AsyncMock(return_value=result))

        with patch("mcpnest.cli.MCPNestClient", return_value=client):
            assert main(["write", "-c", "c"]) == 2

        client.write_config.assert_awaited_once_with(
            {"mcpServers": {}}, environ=os.environ
        )

    def test_invalid_json(self, tmp_path, capsys: pytest.CaptureFixture[str]) -> None:
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")

        with patch("mcpnest.cli.MCPNestClient") as factory:
            assert main(["write", "-c", "c", "-f", str(path)]) == 3

        factory.assert_not_called()
        assert capsys.readouterr().err.startswith("Error: ")

    def test_missing_file(self, tmp_path) -> None:
        with patch("mcpnest.cli.MCPNestClient") as factory:
            assert main(["write", "-c", "c", "-f", str(tmp_path / "nope.json")]) == 3
        factory.assert_not_called()
