"""Tests for settings models and the YAML loader."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from mcpcore.config import ClientSettings, ServerRef, ServerSettings, load_settings
from mcpcore.errors import ConfigError


class TestServerRef:
    def test_stdio_needs_command(self) -> None:
        with pytest.raises(ValidationError, match="command"):
            ServerRef(name="x")

    def test_sse_needs_url(self) -> None:
        with pytest.raises(ValidationError, match="url"):
            ServerRef(name="x", transport="sse", command="ignored")

    def test_unknown_transport(self) -> None:
        with pytest.raises(ValidationError):
            ServerRef(name="x", transport="carrier-pigeon", url="x")


class TestLoadSettings:
    def test_server_settings(self, tmp_path: Path) -> None:
        path = tmp_path / "server.yaml"
        path.write_text(
            "name: files\n"
            "version: '2.0'\n"
            "log_level: debug\n"
            "include_default_tools: false\n"
            "capabilities:\n"
            "  tools: {listChanged: true}\n"
        )
        settings = load_settings(path, ServerSettings)
        assert settings.name == "files"
        assert settings.log_level == "DEBUG"
        assert settings.capabilities is not None
        assert settings.capabilities.tools is not None
        assert settings.capabilities.tools.list_changed is True
        assert settings.supported_versions == ["2024-11-05", "2025-03-26"]

    def test_env_expansion(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOOLS_TOKEN", "s3cret")
        path = tmp_path / "client.yaml"
        path.write_text(
            "request_timeout: 5\n"
            "servers:\n"
            "  - name: remote\n"
            "    transport: sse\n"
            "    url: https://tools.example.com/sse\n"
            "    headers:\n"
            "      Authorization: Bearer ${TOOLS_TOKEN}\n"
        )
        settings = load_settings(path, ClientSettings)
        assert settings.request_timeout == 5
        assert settings.server("remote").headers == {"Authorization": "Bearer s3cret"}

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_settings(path, ServerSettings).name == "mcpcore"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Cannot read"):
            load_settings(tmp_path / "nope.yaml", ServerSettings)

    def test_bad_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("name: [unclosed\n")
        with pytest.raises(ConfigError, match="YAML parse error"):
            load_settings(path, ServerSettings)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(path, ServerSettings)

    def test_validation_error(self, tmp_path: Path) -> None:
        path = tmp_path / "client.yaml"
        path.write_text("request_timeout: -1\n")
        with pytest.raises(ConfigError):
            load_settings(path, ClientSettings)


class TestClientSettings:
    def test_unknown_server(self) -> None:
        with pytest.raises(ConfigError, match="ghost"):
            ClientSettings().server("ghost")
