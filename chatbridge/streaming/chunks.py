"""
chatbridge - Decoder State and Chunk Emission

Per-decode state shared by every provider decoder: the node id counter,
accumulated text, usage, stop reason and frame counters. One DecodeState
lives for exactly one decode call and is never shared.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Mapping, Optional, Tuple

from ..core.cancellation import CancellationToken, check_cancelled
from ..core.errors import EmptyStreamError
from ..core.models import (
    Capabilities,
    ChatChunk,
    MainTextFinishedNode,
    RawTextNode,
    StopReason,
    ThinkingNode,
    TokenUsage,
    ToolMeta,
    ToolUseNode,
    ToolUseStartNode,
)
from ..observability.logging import get_logger
from .sse import Frame, frame_parts


logger = get_logger("chatbridge.streaming")

DONE_SENTINEL = "[DONE]"
EMPTY_TOOL_INPUT = "{}"


@dataclass(frozen=True)
class DecodeOptions:
    """Caller-side inputs of one decode call."""
    supports_tool_use_start: bool = False
    tool_meta: Mapping[str, ToolMeta] = field(default_factory=dict)
    cancel: Optional[CancellationToken] = None

    @classmethod
    def from_capabilities(
        cls,
        capabilities: Optional[Capabilities] = None,
        tool_meta: Optional[Mapping[str, ToolMeta]] = None,
        cancel: Optional[CancellationToken] = None
    ) -> "DecodeOptions":
        caps = capabilities or Capabilities()
        return cls(
            supports_tool_use_start=caps.supports_tool_use_start,
            tool_meta=dict(tool_meta or {}),
            cancel=cancel,
        )


def normalize_tool_input(value: Any) -> str:
    """
    Tool arguments as JSON text.

    Dicts are serialized; strings must already hold a JSON object.
    Anything empty, unparseable or not an object becomes "{}".
    """
    if isinstance(value, dict):
        try:
            return json.dumps(value, ensure_ascii=False, allow_nan=False)
        except ValueError:
            logger.warning("Discarding tool arguments with non-finite numbers")
            return EMPTY_TOOL_INPUT
    if not isinstance(value, str) or not value.strip():
        return EMPTY_TOOL_INPUT
    text = value.strip()
    try:
        parsed = json.loads(text, parse_constant=_reject_constant)
    except ValueError:
        logger.warning("Discarding tool arguments that are not valid JSON", length=len(text))
        return EMPTY_TOOL_INPUT
    if not isinstance(parsed, dict):
        logger.warning("Discarding tool arguments that are not a JSON object", length=len(text))
        return EMPTY_TOOL_INPUT
    return text


def _reject_constant(name: str):
    raise ValueError(f"non-standard JSON constant {name}")


def as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def as_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


class DecodeState:
    """
    Mutable state of one decode pass.

    Node ids start at 1 and increase by one per emitted node.
    """

    def __init__(self, provider: str, options: Optional[DecodeOptions] = None):
        self.provider = provider
        self.options = options or DecodeOptions()
        self.node_id = 0
        self.full_text = ""
        self.usage = TokenUsage()
        self.stop_reason: Optional[StopReason] = None
        self.saw_tool_use = False
        self.data_events = 0
        self.parsed_chunks = 0
        self.emitted_chunks = 0

    def next_id(self) -> int:
        self.node_id += 1
        return self.node_id

    def check_cancelled(self):
        check_cancelled(self.options.cancel, self.provider)

    def set_stop_reason(self, reason: StopReason):
        self.stop_reason = reason

    # ============================================================
    # Content chunks
    # ============================================================

    def text_chunk(self, text: str) -> ChatChunk:
        self.full_text += text
        self.emitted_chunks += 1
        return ChatChunk(text=text, nodes=(RawTextNode(id=self.next_id(), content=text),))

    def thinking_chunk(self, summary: str) -> ChatChunk:
        self.emitted_chunks += 1
        return ChatChunk(nodes=(ThinkingNode(id=self.next_id(), summary=summary),))

    def tool_use_chunks(self, tool_use_id: str, tool_name: str, tool_input: Any) -> List[ChatChunk]:
        """
        tool_use_start (when the caller supports it) followed by tool_use.

        Calls without a name produce nothing. A missing id falls back to
        tool-<next node id>.
        """
        tool_name = tool_name.strip()
        if not tool_name:
            return []

        tool_use_id = tool_use_id.strip() or f"tool-{self.node_id + 1}"
        input_json = normalize_tool_input(tool_input)
        meta = self.options.tool_meta.get(tool_name) or ToolMeta()
        fields = dict(
            tool_use_id=tool_use_id,
            tool_name=tool_name,
            input_json=input_json,
            mcp_server_name=meta.mcp_server_name,
            mcp_tool_name=meta.mcp_tool_name,
        )

        chunks = []
        if self.options.supports_tool_use_start:
            chunks.append(ChatChunk(nodes=(ToolUseStartNode(id=self.next_id(), **fields),)))
        chunks.append(ChatChunk(nodes=(ToolUseNode(id=self.next_id(), **fields),)))

        self.saw_tool_use = True
        self.emitted_chunks += len(chunks)
        return chunks

    # ============================================================
    # Closing
    # ============================================================

    def ensure_not_empty(self):
        """Raise when nothing observable was decoded."""
        if self.emitted_chunks == 0 and not self.usage.has_any and not self.saw_tool_use:
            raise EmptyStreamError(self.provider, self.data_events, self.parsed_chunks)

    def resolved_stop_reason(self) -> StopReason:
        if self.stop_reason is not None:
            return self.stop_reason
        return StopReason.TOOL_USE_REQUESTED if self.saw_tool_use else StopReason.END_TURN

    def closing_chunks(self) -> List[ChatChunk]:
        """Usage chunk (if any usage is known) and the single terminal chunk."""
        self.check_cancelled()

        chunks = []
        if self.usage.has_any:
            chunks.append(ChatChunk(nodes=(self.usage.to_node(self.next_id()),)))

        final_nodes: Tuple = ()
        if self.full_text:
            final_nodes = (MainTextFinishedNode(id=self.next_id(), content=self.full_text),)
        chunks.append(ChatChunk(nodes=final_nodes, stop_reason=self.resolved_stop_reason()))

        logger.info(
            "Decode finished",
            data_events=self.data_events,
            parsed_chunks=self.parsed_chunks,
            emitted_chunks=self.emitted_chunks,
            text_chars=len(self.full_text),
            saw_tool_use=self.saw_tool_use,
            stop_reason=chunks[-1].stop_reason.value,
        )
        return chunks


async def iter_json_frames(
    frames: AsyncIterable[Frame],
    state: DecodeState
) -> AsyncIterator[Tuple[str, Any]]:
    """
    Parsed (event name, payload) pairs from raw frames.

    Blank frames are ignored, [DONE] ends the stream and frames that are
    not valid JSON are skipped. Cancellation is checked before each frame.
    """
    async for frame in frames:
        state.check_cancelled()
        event_name, data = frame_parts(frame)
        data = data.strip()
        if not data:
            continue
        state.data_events += 1
        if data == DONE_SENTINEL:
            break
        try:
            payload = json.loads(data)
        except ValueError:
            logger.debug("Skipping malformed frame", provider=state.provider, length=len(data))
            continue
        state.parsed_chunks += 1
        yield event_name, payload


class ChunkDecoder(ABC):
    """One provider family's response decoder."""

    provider: str = ""

    @abstractmethod
    def decode_stream(
        self,
        frames: AsyncIterable[Frame],
        options: Optional[DecodeOptions] = None
    ) -> AsyncIterator[ChatChunk]:
        """Decode SSE frames into canonical chunks."""

    @abstractmethod
    def decode_json(
        self,
        document: Any,
        options: Optional[DecodeOptions] = None
    ) -> AsyncIterator[ChatChunk]:
        """Decode a single non-streaming JSON body into canonical chunks."""

    @abstractmethod
    def extract_text(self, document: Any) -> str:
        """Assistant text of a non-streaming JSON body, or ""."""
