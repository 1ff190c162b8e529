"""
chatbridge - Streaming Module

Per-provider decoders that turn SSE frames or a single JSON body into the
canonical chunk sequence:
- SSE framing
- Shared decode state and chunk emission
- Positional tool call accumulation
- One decoder per provider family
"""

from .sse import Frame, SSEEvent, iter_response_events, iter_sse_events
from .chunks import (
    ChunkDecoder,
    DecodeOptions,
    DecodeState,
    iter_json_frames,
    normalize_tool_input,
)
from .tool_calls import ToolCallAccumulator, ToolCallStreamTracker
from .openai import OpenAIChatDecoder
from .responses import ResponsesDecoder
from .anthropic import AnthropicDecoder
from .gemini import GeminiDecoder, sanitize_tool_hint

__all__ = [
    # SSE
    "Frame",
    "SSEEvent",
    "iter_sse_events",
    "iter_response_events",
    # Decode state
    "ChunkDecoder",
    "DecodeOptions",
    "DecodeState",
    "iter_json_frames",
    "normalize_tool_input",
    # Tool calls
    "ToolCallAccumulator",
    "ToolCallStreamTracker",
    # Decoders
    "OpenAIChatDecoder",
    "ResponsesDecoder",
    "AnthropicDecoder",
    "GeminiDecoder",
    "sanitize_tool_hint",
]
