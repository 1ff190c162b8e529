"""
chatbridge Core Module

Canonical chunk/node models, conversation input, errors, configuration,
cancellation and the provider HTTP client.
"""

from .models import (
    # Enums
    StopReason,
    NodeType,

    # Nodes / chunks
    RawTextNode,
    ThinkingNode,
    ToolUseStartNode,
    ToolUseNode,
    TokenUsageNode,
    MainTextFinishedNode,
    Node,
    ChatChunk,
    TokenUsage,

    # Tools / requests
    ToolDefinition,
    ToolMeta,
    PendingToolCall,
    Capabilities,
    RequestOptions,
    WireRequest,
)

from .conversation import (
    Role,
    ChatMessage,
    Conversation,
    ToolCallInput,
    FunctionCall,
)

from .errors import (
    ErrorType,
    ErrorDetails,
    ChatBridgeError,

    # Infra errors
    InfraError,
    ConnectionFailedError,
    ReadTimeoutError,
    UpstreamError,
    RateLimitedError,
    UpstreamErrorEvent,
    EmptyStreamError,
    StreamCancelledError,
    FallbackExhaustedError,

    # Semantic errors
    SemanticError,
    ClientRequestError,
    InvalidAPIKeyError,
    ConfigurationError,
    InvalidResponseError,

    # Factory
    handle_http_error,
    handle_transport_error,
    is_fallback_eligible,
)

from .config import ProviderType, ProviderConfig
from .cancellation import CancellationToken

__all__ = [
    "StopReason",
    "NodeType",
    "RawTextNode",
    "ThinkingNode",
    "ToolUseStartNode",
    "ToolUseNode",
    "TokenUsageNode",
    "MainTextFinishedNode",
    "Node",
    "ChatChunk",
    "TokenUsage",
    "ToolDefinition",
    "ToolMeta",
    "PendingToolCall",
    "Capabilities",
    "RequestOptions",
    "WireRequest",
    "Role",
    "ChatMessage",
    "Conversation",
    "ToolCallInput",
    "FunctionCall",
    "ErrorType",
    "ErrorDetails",
    "ChatBridgeError",
    "InfraError",
    "ConnectionFailedError",
    "ReadTimeoutError",
    "UpstreamError",
    "RateLimitedError",
    "UpstreamErrorEvent",
    "EmptyStreamError",
    "StreamCancelledError",
    "FallbackExhaustedError",
    "SemanticError",
    "ClientRequestError",
    "InvalidAPIKeyError",
    "ConfigurationError",
    "InvalidResponseError",
    "handle_http_error",
    "handle_transport_error",
    "is_fallback_eligible",
    "ProviderType",
    "ProviderConfig",
    "CancellationToken",
]
