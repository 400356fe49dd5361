"""Registry — named tools, resources, and prompts with their handlers.

Keys are unique per kind.  Registering an existing key raises
:class:`~mcpcore.errors.RegistrationError` unless ``replace=True`` is
passed; a replaced entry keeps its original position so listings stay in
registration order.

Usage::

    registry = Registry()

    @registry.tool(input_schema={
        "type": "object",
        "properties": {"text": {"type": "string"}},
        "required": ["text"],
    })
    def echo(arguments: dict[str, Any]) -> str:
        "Echo the given text."
        return arguments["text"]

    names = [t.name for t in registry.list_tools()]
"""

from __future__ import annotations

import inspect
import logging
import threading
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any, TypeVar, Union

from jsonschema import SchemaError
from jsonschema.validators import validator_for

from mcpcore.errors import RegistrationError
from mcpcore.protocol.models import (
    Prompt,
    PromptArgument,
    Resource,
    Tool,
    empty_object_schema,
)

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Union[Any, Awaitable[Any]]]
ResourceHandler = Callable[[str], Union[Any, Awaitable[Any]]]
PromptHandler = Callable[[dict[str, str]], Union[Any, Awaitable[Any]]]

_D = TypeVar("_D")
_F = TypeVar("_F", bound=Callable[..., Any])


class RegistryKind(str, Enum):
    TOOLS = "tools"
    RESOURCES = "resources"
    PROMPTS = "prompts"


@dataclass(frozen=True)
class ToolDefinition:
    """A callable tool: name, description, object input schema, and handler."""

    name: str
    handler: ToolHandler
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=empty_object_schema)

    def __post_init__(self) -> None:
        if not self.name:
            msg = "Tool name must not be empty"
            raise ValueError(msg)
        if self.input_schema.get("type") != "object":
            msg = f"Tool {self.name!r} input schema must have type 'object'"
            raise ValueError(msg)
        try:
            validator_for(self.input_schema).check_schema(self.input_schema)
        except SchemaError as exc:
            msg = f"Tool {self.name!r} has an invalid input schema: {exc.message}"
            raise ValueError(msg) from exc

    @cached_property
    def validator(self) -> Any:
        """A jsonschema validator for this tool's arguments."""
        return validator_for(self.input_schema)(self.input_schema)

    def to_tool(self) -> Tool:
        return Tool(name=self.name, description=self.description, input_schema=self.input_schema)


@dataclass(frozen=True)
class ResourceDefinition:
    """A readable resource addressed by ``uri``."""

    uri: str
    name: str
    handler: ResourceHandler
    description: str | None = None
    mime_type: str | None = None

    def __post_init__(self) -> None:
        if not self.uri:
            msg = "Resource uri must not be empty"
            raise ValueError(msg)
        if not self.name:
            msg = f"Resource {self.uri!r} needs a name"
            raise ValueError(msg)

    def to_resource(self) -> Resource:
        return Resource(
            uri=self.uri, name=self.name, description=self.description, mime_type=self.mime_type
        )


@dataclass(frozen=True)
class PromptDefinition:
    """A parameterized message template with ordered argument specs."""

    name: str
    handler: PromptHandler
    description: str | None = None
    arguments: tuple[PromptArgument, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            msg = "Prompt name must not be empty"
            raise ValueError(msg)
        seen: set[str] = set()
        for argument in self.arguments:
            if argument.name in seen:
                msg = f"Prompt {self.name!r} declares argument {argument.name!r} twice"
                raise ValueError(msg)
            seen.add(argument.name)

    @property
    def required_arguments(self) -> list[str]:
        return [a.name for a in self.arguments if a.required]

    def to_prompt(self) -> Prompt:
        return Prompt(name=self.name, description=self.description, arguments=list(self.arguments))


class Registry:
    """Thread-safe store of tool, resource, and prompt definitions."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tools: dict[str, ToolDefinition] = {}
        self._resources: dict[str, ResourceDefinition] = {}
        self._prompts: dict[str, PromptDefinition] = {}
        self._listeners: list[Callable[[RegistryKind], None]] = []

    # -- change listeners ---------------------------------------------------

    def add_change_listener(self, listener: Callable[[RegistryKind], None]) -> None:
        """Call *listener* with the affected kind after every mutation."""
        with self._lock:
            self._listeners.append(listener)

    def remove_change_listener(self, listener: Callable[[RegistryKind], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, kind: RegistryKind) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(kind)
            except Exception:
                logger.exception("Registry change listener failed for %s", kind.value)

    # -- generic helpers ----------------------------------------------------

    def _register(
        self,
        store: dict[str, _D],
        kind: RegistryKind,
        key: str,
        definition: _D,
        replace: bool,
    ) -> _D:
        with self._lock:
            if key in store and not replace:
                raise RegistrationError(kind.value[:-1].capitalize(), key)
            store[key] = definition
        logger.info("Registered %s: %s", kind.value[:-1], key)
        self._notify(kind)
        return definition

    def _unregister(self, store: dict[str, Any], kind: RegistryKind, key: str) -> bool:
        with self._lock:
            removed = store.pop(key, None) is not None
        if removed:
            logger.info("Unregistered %s: %s", kind.value[:-1], key)
            self._notify(kind)
        return removed

    def _snapshot(self, store: dict[str, _D]) -> Iterator[_D]:
        with self._lock:
            entries = tuple(store.values())
        return iter(entries)

    # -- tools --------------------------------------------------------------

    def register_tool(self, definition: ToolDefinition, *, replace: bool = False) -> ToolDefinition:
        return self._register(self._tools, RegistryKind.TOOLS, definition.name, definition, replace)

    def unregister_tool(self, name: str) -> bool:
        return self._unregister(self._tools, RegistryKind.TOOLS, name)

    def get_tool(self, name: str) -> ToolDefinition | None:
        with self._lock:
            return self._tools.get(name)

    def list_tools(self) -> Iterator[ToolDefinition]:
        return self._snapshot(self._tools)

    def tool(
        self,
        name: str | None = None,
        *,
        description: str | None = None,
        input_schema: dict[str, Any] | None = None,
        replace: bool = False,
    ) -> Callable[[_F], _F]:
        """Decorator registering a function as a tool."""

        def decorator(func: _F) -> _F:
            self.register_tool(
                ToolDefinition(
                    name=name or func.__name__,
                    handler=func,
                    description=description if description is not None else _summary(func),
                    input_schema=input_schema or empty_object_schema(),
                ),
                replace=replace,
            )
            return func

        return decorator

    # -- resources ----------------------------------------------------------

    def register_resource(
        self, definition: ResourceDefinition, *, replace: bool = False
    ) -> ResourceDefinition:
        return self._register(
            self._resources, RegistryKind.RESOURCES, definition.uri, definition, replace
        )

    def unregister_resource(self, uri: str) -> bool:
        return self._unregister(self._resources, RegistryKind.RESOURCES, uri)

    def get_resource(self, uri: str) -> ResourceDefinition | None:
        with self._lock:
            return self._resources.get(uri)

    def list_resources(self) -> Iterator[ResourceDefinition]:
        return self._snapshot(self._resources)

    def resource(
        self,
        uri: str,
        *,
        name: str | None = None,
        description: str | None = None,
        mime_type: str | None = None,
        replace: bool = False,
    ) -> Callable[[_F], _F]:
        """Decorator registering a function as the reader of *uri*."""

        def decorator(func: _F) -> _F:
            self.register_resource(
                ResourceDefinition(
                    uri=uri,
                    name=name or func.__name__,
                    handler=func,
                    description=description if description is not None else _summary(func) or None,
                    mime_type=mime_type,
                ),
                replace=replace,
            )
            return func

        return decorator

    # -- prompts ------------------------------------------------------------

    def register_prompt(
        self, definition: PromptDefinition, *, replace: bool = False
    ) -> PromptDefinition:
        return self._register(self._prompts, RegistryKind.PROMPTS, definition.name, definition, replace)

    def unregister_prompt(self, name: str) -> bool:
        return self._unregister(self._prompts, RegistryKind.PROMPTS, name)

    def get_prompt(self, name: str) -> PromptDefinition | None:
        with self._lock:
            return self._prompts.get(name)

    def list_prompts(self) -> Iterator[PromptDefinition]:
        return self._snapshot(self._prompts)

    def prompt(
        self,
        name: str | None = None,
        *,
        description: str | None = None,
        arguments: list[PromptArgument] | None = None,
        replace: bool = False,
    ) -> Callable[[_F], _F]:
        """Decorator registering a function as a prompt."""

        def decorator(func: _F) -> _F:
            self.register_prompt(
                PromptDefinition(
                    name=name or func.__name__,
                    handler=func,
                    description=description if description is not None else _summary(func) or None,
                    arguments=tuple(arguments or ()),
                ),
                replace=replace,
            )
            return func

        return decorator


def _summary(func: Callable[..., Any]) -> str:
    """First docstring line of *func*, or an empty string."""
    doc = inspect.getdoc(func)
    return doc.splitlines()[0] if doc else ""
