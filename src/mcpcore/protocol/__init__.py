"""Protocol layer — JSON-RPC envelopes, MCP payloads, and the message codec."""

from mcpcore.protocol.codec import decode, encode
from mcpcore.protocol.models import (
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    CallToolParams,
    CallToolResult,
    ClientCapabilities,
    EmbeddedResource,
    GetPromptParams,
    GetPromptResult,
    ImageContent,
    Implementation,
    InitializeParams,
    InitializeResult,
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
    Prompt,
    PromptArgument,
    PromptMessage,
    PromptsCapability,
    ReadResourceParams,
    ReadResourceResult,
    Resource,
    ResourceContents,
    ResourcesCapability,
    ServerCapabilities,
    TextContent,
    Tool,
    ToolsCapability,
)

__all__ = [
    "LATEST_PROTOCOL_VERSION",
    "SUPPORTED_PROTOCOL_VERSIONS",
    "CallToolParams",
    "CallToolResult",
    "ClientCapabilities",
    "EmbeddedResource",
    "GetPromptParams",
    "GetPromptResult",
    "ImageContent",
    "Implementation",
    "InitializeParams",
    "InitializeResult",
    "JsonRpcError",
    "JsonRpcNotification",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "Message",
    "Prompt",
    "PromptArgument",
    "PromptMessage",
    "PromptsCapability",
    "ReadResourceParams",
    "ReadResourceResult",
    "Resource",
    "ResourceContents",
    "ResourcesCapability",
    "ServerCapabilities",
    "TextContent",
    "Tool",
    "ToolsCapability",
    "decode",
    "encode",
]
