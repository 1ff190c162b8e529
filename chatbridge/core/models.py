"""
chatbridge - Core Data Models

Canonical chunk and node vocabulary shared by every provider adapter.
Decoders produce these shapes; nothing outside a provider's own decoder
or request builder ever sees that provider's wire format.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union


# ============================================================
# Enums
# ============================================================

class StopReason(str, Enum):
    """Terminal classification of why a model turn ended."""
    END_TURN = "end_turn"
    MAX_TOKENS = "max_tokens"
    TOOL_USE_REQUESTED = "tool_use_requested"
    SAFETY = "safety"
    RECITATION = "recitation"
    MALFORMED_FUNCTION_CALL = "malformed_function_call"
    UNSPECIFIED = "unspecified"


class NodeType(str, Enum):
    """Node discriminator tags."""
    RAW_TEXT = "raw_text"
    THINKING = "thinking"
    TOOL_USE_START = "tool_use_start"
    TOOL_USE = "tool_use"
    TOKEN_USAGE = "token_usage"
    MAIN_TEXT_FINISHED = "main_text_finished"


# ============================================================
# Nodes
# ============================================================

class _NodeDict:
    """Serialization shared by every node kind."""

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            result[f.name] = value.value if isinstance(value, Enum) else value
        return result


@dataclass(frozen=True)
class RawTextNode(_NodeDict):
    """Literal assistant text fragment."""
    id: int
    content: str
    type: NodeType = field(default=NodeType.RAW_TEXT, init=False)


@dataclass(frozen=True)
class ThinkingNode(_NodeDict):
    """Reasoning summary, opaque text."""
    id: int
    summary: str
    type: NodeType = field(default=NodeType.THINKING, init=False)


@dataclass(frozen=True)
class ToolUseStartNode(_NodeDict):
    """Announces a tool invocation before the full tool_use node."""
    id: int
    tool_use_id: str
    tool_name: str
    input_json: str = "{}"
    mcp_server_name: Optional[str] = None
    mcp_tool_name: Optional[str] = None
    type: NodeType = field(default=NodeType.TOOL_USE_START, init=False)


@dataclass(frozen=True)
class ToolUseNode(_NodeDict):
    """A complete tool invocation; tool_use_id correlates with a later result."""
    id: int
    tool_use_id: str
    tool_name: str
    input_json: str = "{}"
    mcp_server_name: Optional[str] = None
    mcp_tool_name: Optional[str] = None
    type: NodeType = field(default=NodeType.TOOL_USE, init=False)


@dataclass(frozen=True)
class TokenUsageNode(_NodeDict):
    id: int
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    cache_read_input_tokens: Optional[int] = None
    cache_creation_input_tokens: Optional[int] = None
    type: NodeType = field(default=NodeType.TOKEN_USAGE, init=False)


@dataclass(frozen=True)
class MainTextFinishedNode(_NodeDict):
    """Full concatenated assistant text for the turn."""
    id: int
    content: str
    type: NodeType = field(default=NodeType.MAIN_TEXT_FINISHED, init=False)


Node = Union[
    RawTextNode,
    ThinkingNode,
    ToolUseStartNode,
    ToolUseNode,
    TokenUsageNode,
    MainTextFinishedNode,
]


# ============================================================
# Chunks
# ============================================================

@dataclass(frozen=True)
class ChatChunk:
    """
    One emitted unit of a response stream.

    Only the last chunk of a turn carries a stop_reason.
    """
    text: str = ""
    nodes: Tuple[Node, ...] = ()
    stop_reason: Optional[StopReason] = None

    @property
    def is_final(self) -> bool:
        return self.stop_reason is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "nodes": [node.to_dict() for node in self.nodes],
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
        }


# ============================================================
# Usage
# ============================================================

USAGE_FIELDS = (
    "input_tokens",
    "output_tokens",
    "cache_read_input_tokens",
    "cache_creation_input_tokens",
)


@dataclass
class TokenUsage:
    """
    Monotonic usage accumulator.

    A present value overwrites the previous one; an absent value never
    clears what was already observed.
    """
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    cache_read_input_tokens: Optional[int] = None
    cache_creation_input_tokens: Optional[int] = None

    def update(self, **values: Any) -> None:
        for name in USAGE_FIELDS:
            value = _as_count(values.get(name))
            if value is not None:
                setattr(self, name, value)

    @property
    def has_any(self) -> bool:
        return any(getattr(self, name) is not None for name in USAGE_FIELDS)

    def to_node(self, node_id: int) -> TokenUsageNode:
        return TokenUsageNode(
            id=node_id,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cache_read_input_tokens=self.cache_read_input_tokens,
            cache_creation_input_tokens=self.cache_creation_input_tokens,
        )


def _as_count(value: Any) -> Optional[int]:
    # bool is an int subclass; never treat it as a count
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


# ============================================================
# Tools
# ============================================================

@dataclass(frozen=True)
class ToolDefinition:
    """Provider-agnostic tool declaration."""
    name: str
    description: str = ""
    input_schema: Optional[Dict[str, Any]] = None
    input_schema_json: Optional[str] = None
    mcp_server_name: Optional[str] = None
    mcp_tool_name: Optional[str] = None


@dataclass(frozen=True)
class ToolMeta:
    """MCP origin of a tool, attached to the tool_use nodes it produces."""
    mcp_server_name: Optional[str] = None
    mcp_tool_name: Optional[str] = None


ToolMetaMap = Mapping[str, ToolMeta]


@dataclass(frozen=True)
class PendingToolCall:
    """A tool call awaiting its result during one repair pass."""
    call_id: str
    tool_name: str = ""
    arguments: str = ""


# ============================================================
# Capabilities / Requests
# ============================================================

@dataclass(frozen=True)
class Capabilities:
    """What the caller is prepared to receive."""
    supports_tool_use_start: bool = False
    supports_parallel_tool_use: bool = False

    @classmethod
    def from_flags(cls, **flags: Any) -> Capabilities:
        return cls(
            supports_tool_use_start=bool(
                flags.get("supports_tool_use_start", flags.get("supportToolUseStart", False))
            ),
            supports_parallel_tool_use=bool(
                flags.get("supports_parallel_tool_use", flags.get("supportParallelToolUse", False))
            ),
        )


@dataclass(frozen=True)
class WireRequest:
    """A ready-to-send provider request."""
    url: str
    headers: Dict[str, str]
    body: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "headers": dict(self.headers), "body": self.body}

    def body_json(self) -> str:
        return json.dumps(self.body, ensure_ascii=False)


@dataclass(frozen=True)
class RequestOptions:
    """
    Feature surface of one request attempt.

    Fallback attempts narrow these flags; builders read them and never
    branch on anything else.
    """
    stream: bool = True
    include_tools: bool = True
    include_tool_choice: bool = True
    include_usage: bool = False
    minimal_defaults: bool = False
    parallel_tool_calls: bool = False
