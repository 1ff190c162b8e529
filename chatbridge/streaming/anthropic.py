"""
chatbridge - Anthropic Messages Decoder

Anthropic streams an explicit content block lifecycle:

    message_start
    content_block_start  (text | thinking | tool_use)
    content_block_delta  (text_delta | thinking_delta | input_json_delta)
    content_block_stop
    message_delta        (stop_reason, usage)
    message_stop

Text deltas are emitted as they arrive. Thinking and tool_use blocks are
buffered and emitted when their block closes.
"""

from typing import Any, AsyncIterable, AsyncIterator, Dict, Optional

from ..core.errors import UpstreamErrorEvent
from ..core.models import ChatChunk, StopReason
from .chunks import (
    ChunkDecoder,
    DecodeOptions,
    DecodeState,
    as_dict,
    as_list,
    as_text,
    iter_json_frames,
)
from .sse import Frame


PROVIDER = "anthropic"

STOP_REASON_MAP = {
    "end_turn": StopReason.END_TURN,
    "stop_sequence": StopReason.END_TURN,
    "pause_turn": StopReason.END_TURN,
    "max_tokens": StopReason.MAX_TOKENS,
    "tool_use": StopReason.TOOL_USE_REQUESTED,
    "refusal": StopReason.SAFETY,
}


def map_stop_reason(reason: str) -> StopReason:
    return STOP_REASON_MAP.get(reason.strip().lower(), StopReason.UNSPECIFIED)


def usage_values(usage: Any) -> Dict[str, Any]:
    usage = as_dict(usage)
    return {
        "input_tokens": usage.get("input_tokens"),
        "output_tokens": usage.get("output_tokens"),
        "cache_read_input_tokens": usage.get("cache_read_input_tokens"),
        "cache_creation_input_tokens": usage.get("cache_creation_input_tokens"),
    }


def _message_text(message: Any) -> str:
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    if isinstance(content, str):
        return content.strip()
    text = "".join(
        block["text"]
        for block in as_list(content)
        if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
    )
    return text if text.strip() else ""


class _OpenBlock:
    """The content block currently between start and stop."""

    def __init__(self, block_type: str = "", tool_use_id: str = "", tool_name: str = "", tool_input: Any = None):
        self.block_type = block_type
        self.tool_use_id = tool_use_id
        self.tool_name = tool_name
        self.tool_input = tool_input
        self.buffer = ""


class AnthropicDecoder(ChunkDecoder):
    """Decoder for the /messages endpoint."""

    provider = PROVIDER

    async def decode_stream(
        self,
        frames: AsyncIterable[Frame],
        options: Optional[DecodeOptions] = None
    ) -> AsyncIterator[ChatChunk]:
        state = DecodeState(self.provider, options)
        block = _OpenBlock()

        async for event_name, payload in iter_json_frames(frames, state):
            if not isinstance(payload, dict):
                continue
            event_type = as_text(payload.get("type")) or event_name

            usage = as_dict(payload.get("message")).get("usage") or payload.get("usage")
            if isinstance(usage, dict):
                state.usage.update(**usage_values(usage))

            if event_type == "content_block_start":
                started = as_dict(payload.get("content_block"))
                block = _OpenBlock(as_text(started.get("type")))
                if block.block_type == "tool_use":
                    block.tool_use_id = as_text(started.get("id"))
                    block.tool_name = as_text(started.get("name"))
                    block.tool_input = started.get("input")

            elif event_type == "content_block_delta":
                delta = as_dict(payload.get("delta"))
                delta_type = as_text(delta.get("type"))
                if delta_type == "text_delta" and isinstance(delta.get("text"), str) and delta["text"]:
                    yield state.text_chunk(delta["text"])
                elif delta_type == "input_json_delta" and isinstance(delta.get("partial_json"), str):
                    block.buffer += delta["partial_json"]
                elif delta_type == "thinking_delta" and isinstance(delta.get("thinking"), str):
                    block.buffer += delta["thinking"]

            elif event_type == "content_block_stop":
                for chunk in self._close_block(state, block):
                    yield chunk
                block = _OpenBlock()

            elif event_type == "message_delta":
                stop_reason = as_dict(payload.get("delta")).get("stop_reason")
                if isinstance(stop_reason, str) and stop_reason.strip():
                    state.set_stop_reason(map_stop_reason(stop_reason))

            elif event_type == "message_stop":
                break

            elif event_type == "error":
                raise UpstreamErrorEvent(self.provider, payload)

        if block.block_type == "thinking":
            for chunk in self._close_block(state, block):
                yield chunk

        state.ensure_not_empty()
        for chunk in state.closing_chunks():
            yield chunk

    def _close_block(self, state: DecodeState, block: _OpenBlock):
        if block.block_type == "thinking":
            summary = block.buffer.strip()
            return [state.thinking_chunk(summary)] if summary else []

        if block.block_type == "tool_use":
            tool_input: Any = block.buffer
            if not block.buffer.strip() and isinstance(block.tool_input, dict) and block.tool_input:
                tool_input = block.tool_input
            return state.tool_use_chunks(block.tool_use_id, block.tool_name, tool_input)

        return []

    async def decode_json(
        self,
        document: Any,
        options: Optional[DecodeOptions] = None
    ) -> AsyncIterator[ChatChunk]:
        state = DecodeState(self.provider, options)
        document = as_dict(document)
        message = document["message"] if isinstance(document.get("message"), dict) else document
        if message.get("type") == "error" or message.get("error"):
            raise UpstreamErrorEvent(self.provider, message)

        stop_reason = message.get("stop_reason")
        if isinstance(stop_reason, str) and stop_reason.strip():
            state.set_stop_reason(map_stop_reason(stop_reason))
        state.usage.update(**usage_values(message.get("usage")))

        text_buffer = ""
        for block in as_list(message.get("content")):
            if not isinstance(block, dict):
                continue
            block_type = as_text(block.get("type"))

            if block_type == "text" and isinstance(block.get("text"), str):
                text_buffer += block["text"]
                continue

            if block_type not in ("thinking", "tool_use"):
                continue

            if text_buffer.strip():
                yield state.text_chunk(text_buffer.strip())
            text_buffer = ""

            if block_type == "thinking":
                summary = (
                    as_text(block.get("thinking"))
                    or as_text(block.get("summary"))
                    or as_text(block.get("text"))
                )
                if summary:
                    yield state.thinking_chunk(summary)
            else:
                for chunk in state.tool_use_chunks(
                    as_text(block.get("id")),
                    as_text(block.get("name")),
                    block.get("input"),
                ):
                    yield chunk

        if text_buffer.strip():
            yield state.text_chunk(text_buffer.strip())

        for chunk in state.closing_chunks():
            yield chunk

    def extract_text(self, document: Any) -> str:
        document = as_dict(document)
        text = _message_text(document) or _message_text(document.get("message"))
        if text:
            return text
        for key in ("completion", "output_text", "outputText", "text"):
            value = as_text(document.get(key))
            if value:
                return value
        choice = as_dict((as_list(document.get("choices")) or [None])[0])
        return as_text(as_dict(choice.get("message")).get("content")) or as_text(choice.get("text"))
