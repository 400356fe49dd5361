"""Settings models and the YAML loader for servers and clients.

Example server file::

    name: files
    version: "1.2.0"
    instructions: Read-only access to the shared drive.
    include_default_tools: true
    capabilities:
      tools: {listChanged: true}
      logging: {}

Example client file::

    request_timeout: 10
    servers:
      - name: files
        command: python -m files_server
      - name: remote
        transport: sse
        url: https://tools.example.com/sse
        headers:
          Authorization: Bearer ${TOOLS_TOKEN}
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, TypeVar

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from mcpcore.errors import ConfigError
from mcpcore.protocol.models import (
    SUPPORTED_PROTOCOL_VERSIONS,
    ClientCapabilities,
    Implementation,
    ServerCapabilities,
)

_S = TypeVar("_S", bound=BaseModel)

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ServerRef(BaseModel):
    """How a client reaches one MCP server."""

    name: str
    transport: Literal["stdio", "sse", "websocket"] = "stdio"
    command: str | None = None
    url: str | None = None
    env: dict[str, str] = {}
    headers: dict[str, str] = {}

    @model_validator(mode="after")
    def _check_target(self) -> ServerRef:
        if self.transport == "stdio" and not self.command:
            msg = f"Server {self.name!r}: stdio transport needs 'command'"
            raise ValueError(msg)
        if self.transport != "stdio" and not self.url:
            msg = f"Server {self.name!r}: {self.transport} transport needs 'url'"
            raise ValueError(msg)
        return self


class ServerSettings(BaseModel):
    name: str = "mcpcore"
    version: str = "0.1.0"
    supported_versions: list[str] = Field(default_factory=lambda: list(SUPPORTED_PROTOCOL_VERSIONS))
    capabilities: ServerCapabilities | None = None
    instructions: str | None = None
    include_default_tools: bool = True
    log_level: LogLevel = "INFO"

    @field_validator("supported_versions")
    @classmethod
    def _not_empty(cls, value: list[str]) -> list[str]:
        if not value:
            msg = "supported_versions must list at least one protocol version"
            raise ValueError(msg)
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class ClientSettings(BaseModel):
    client_info: Implementation = Implementation(name="mcpcore", version="0.1.0")
    capabilities: ClientCapabilities = Field(default_factory=ClientCapabilities)
    request_timeout: float = Field(default=30.0, gt=0)
    servers: list[ServerRef] = []

    def server(self, name: str) -> ServerRef:
        for ref in self.servers:
            if ref.name == name:
                return ref
        msg = f"No server named {name!r} in client settings"
        raise ConfigError(msg)


def load_settings(path: str | Path, model: type[_S]) -> _S:
    """Read a YAML settings file, expand ``$VAR`` references, and validate.

    Raises:
        ConfigError: If the file cannot be read, parsed, or validated.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read {path}: {exc}"
        raise ConfigError(msg) from exc

    expanded = os.path.expandvars(raw)

    try:
        data: Any = yaml.safe_load(expanded)
    except yaml.YAMLError as exc:
        msg = f"YAML parse error in {path}: {exc}"
        raise ConfigError(msg) from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"{path} must contain a mapping"
        raise ConfigError(msg)

    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
