"""Tests for ``mcpcore tools`` CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from mcpcore.cli import main
from mcpcore.protocol.models import CallToolResult, Tool


@pytest.fixture
def mock_client() -> Iterator[MagicMock]:
    with patch("mcpcore.cli_commands._connect.MCPClient") as mock_client_cls:
        mock_instance = MagicMock()
        mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
        mock_instance.__aexit__ = AsyncMock(return_value=False)
        mock_client_cls.from_ref.return_value = mock_instance
        yield mock_instance


class TestToolsList:
    def test_list_tools(self, mock_client: MagicMock) -> None:
        mock_client.list_tools = AsyncMock(
            return_value=[
                Tool(
                    name="read_file",
                    description="Read a file",
                    input_schema={"type": "object", "required": ["path"]},
                )
            ]
        )

        runner = CliRunner()
        result = runner.invoke(main, ["tools", "list", "python -m files"])

        assert result.exit_code == 0
        assert "read_file" in result.output
        assert "path" in result.output

    def test_list_no_tools(self, mock_client: MagicMock) -> None:
        mock_client.list_tools = AsyncMock(return_value=[])

        result = CliRunner().invoke(main, ["tools", "list", "python -m files"])

        assert result.exit_code == 0
        assert "No tools registered" in result.output

    def test_list_error(self, mock_client: MagicMock) -> None:
        mock_client.__aenter__ = AsyncMock(side_effect=RuntimeError("fail"))

        result = CliRunner().invoke(main, ["tools", "list", "bad-server"])

        assert result.exit_code == 1
        assert "Discovery error" in result.output

    def test_url_transport(self) -> None:
        with patch("mcpcore.cli_commands._connect.MCPClient") as mock_client_cls:
            mock_instance = MagicMock()
            mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
            mock_instance.__aexit__ = AsyncMock(return_value=False)
            mock_instance.list_tools = AsyncMock(return_value=[])
            mock_client_cls.from_ref.return_value = mock_instance

            CliRunner().invoke(
                main, ["tools", "list", "http://localhost:8000/sse", "--transport", "sse"]
            )

            ref = mock_client_cls.from_ref.call_args.args[0]
            assert ref.transport == "sse"
            assert ref.url == "http://localhost:8000/sse"


class TestToolsCall:
    def test_call_prints_content(self, mock_client: MagicMock) -> None:
        mock_client.call_tool = AsyncMock(return_value=CallToolResult.from_text("hi there"))

        result = CliRunner().invoke(
            main, ["tools", "call", "python -m files", "echo", "--args", '{"text": "hi there"}']
        )

        assert result.exit_code == 0
        assert "hi there" in result.output
        mock_client.call_tool.assert_awaited_once_with("echo", {"text": "hi there"})

    def test_error_result_exits_nonzero(self, mock_client: MagicMock) -> None:
        mock_client.call_tool = AsyncMock(
            return_value=CallToolResult.from_text("Tool execution failed: boom", is_error=True)
        )

        result = CliRunner().invoke(main, ["tools", "call", "python -m files", "explode"])

        assert result.exit_code == 1
        assert "boom" in result.output

    def test_bad_json_args(self, mock_client: MagicMock) -> None:
        result = CliRunner().invoke(
            main, ["tools", "call", "python -m files", "echo", "--args", "{not json"]
        )
        assert result.exit_code == 2
        assert "not valid JSON" in result.output


class TestToolsConfig:
    @pytest.fixture
    def client_cls(self) -> Iterator[MagicMock]:
        with patch("mcpcore.cli_commands._connect.MCPClient") as mock_client_cls:
            mock_instance = MagicMock()
            mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
            mock_instance.__aexit__ = AsyncMock(return_value=False)
            mock_instance.list_tools = AsyncMock(return_value=[])
            mock_client_cls.from_ref.return_value = mock_instance
            yield mock_client_cls

    @pytest.fixture
    def config_file(self, tmp_path: Path) -> Path:
        path = tmp_path / "client.yaml"
        path.write_text(
            "request_timeout: 7\n"
            "servers:\n"
            "  - name: files\n"
            "    command: python -m files\n"
            "  - name: remote\n"
            "    transport: sse\n"
            "    url: http://localhost:8000/sse\n",
            encoding="utf-8",
        )
        return path

    def test_server_name_resolved_from_config(
        self, client_cls: MagicMock, config_file: Path
    ) -> None:
        result = CliRunner().invoke(main, ["tools", "list", "remote", "--config", str(config_file)])

        assert result.exit_code == 0
        ref, settings = client_cls.from_ref.call_args.args
        assert ref.name == "remote"
        assert ref.transport == "sse"
        assert ref.url == "http://localhost:8000/sse"
        assert settings.request_timeout == 7
        assert "request_timeout" not in client_cls.from_ref.call_args.kwargs

    def test_timeout_flag_overrides_config(self, client_cls: MagicMock, config_file: Path) -> None:
        result = CliRunner().invoke(
            main, ["tools", "list", "files", "--config", str(config_file), "--timeout", "2.5"]
        )

        assert result.exit_code == 0
        assert client_cls.from_ref.call_args.kwargs == {"request_timeout": 2.5}

    def test_without_config_settings_are_none(self, client_cls: MagicMock) -> None:
        CliRunner().invoke(main, ["tools", "list", "python -m files"])

        ref, settings = client_cls.from_ref.call_args.args
        assert ref.command == "python -m files"
        assert settings is None

    def test_unknown_server_name(self, client_cls: MagicMock, config_file: Path) -> None:
        result = CliRunner().invoke(main, ["tools", "list", "missing", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "No server named 'missing'" in result.output
        client_cls.from_ref.assert_not_called()

    def test_invalid_config_file(self, client_cls: MagicMock, tmp_path: Path) -> None:
        path = tmp_path / "client.yaml"
        path.write_text("servers: [1, 2\n", encoding="utf-8")

        result = CliRunner().invoke(main, ["tools", "list", "files", "--config", str(path)])

        assert result.exit_code == 1
        assert "YAML parse error" in result.output
