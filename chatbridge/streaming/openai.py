"""
chatbridge - OpenAI Chat Completions Decoder

Decodes chat.completion.chunk SSE frames (and the non-streaming
chat.completion document) of any OpenAI-compatible endpoint.

Tool calls arrive positionally: the first delta for an index carries the
id and function name, later deltas append argument text. They are only
emitted after the stream ends, in index order.
"""

from typing import Any, AsyncIterable, AsyncIterator, Dict, Optional

from ..core.errors import UpstreamErrorEvent
from ..core.models import ChatChunk, StopReason
from ..observability.logging import get_logger
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
from .tool_calls import ToolCallStreamTracker


logger = get_logger("chatbridge.streaming.openai")

PROVIDER = "openai_compatible"

FINISH_REASON_MAP = {
    "stop": StopReason.END_TURN,
    "length": StopReason.MAX_TOKENS,
    "tool_calls": StopReason.TOOL_USE_REQUESTED,
    "function_call": StopReason.TOOL_USE_REQUESTED,
    "content_filter": StopReason.SAFETY,
}

REASONING_FIELDS = ("reasoning", "reasoning_content", "thinking", "thinking_content")


def map_finish_reason(reason: str) -> StopReason:
    return FINISH_REASON_MAP.get(reason.strip().lower(), StopReason.UNSPECIFIED)


def usage_values(usage: Any) -> Dict[str, Any]:
    """Canonical usage fields from an OpenAI usage object."""
    usage = as_dict(usage)
    values = {
        "input_tokens": usage.get("prompt_tokens"),
        "output_tokens": usage.get("completion_tokens"),
    }
    details = as_dict(usage.get("prompt_tokens_details"))
    if details:
        values["cache_read_input_tokens"] = _first_present(
            details, "cached_tokens", "cache_read_input_tokens", "cache_read_tokens"
        )
        values["cache_creation_input_tokens"] = _first_present(
            details, "cache_creation_tokens", "cache_creation_input_tokens"
        )
    return values


def _first_present(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def reasoning_text(source: Dict[str, Any]) -> str:
    """First non-empty reasoning-like field of a delta or message."""
    for key in REASONING_FIELDS:
        value = source.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


class OpenAIChatDecoder(ChunkDecoder):
    """Decoder for /chat/completions responses."""

    provider = PROVIDER

    async def decode_stream(
        self,
        frames: AsyncIterable[Frame],
        options: Optional[DecodeOptions] = None
    ) -> AsyncIterator[ChatChunk]:
        state = DecodeState(self.provider, options)
        tracker = ToolCallStreamTracker()
        thinking = ""

        async for _event, payload in iter_json_frames(frames, state):
            if not isinstance(payload, dict):
                continue
            if payload.get("error"):
                raise UpstreamErrorEvent(self.provider, payload)

            if isinstance(payload.get("usage"), dict):
                state.usage.update(**usage_values(payload["usage"]))

            for choice in as_list(payload.get("choices")):
                if not isinstance(choice, dict):
                    continue
                delta = as_dict(choice.get("delta"))

                content = delta.get("content")
                if isinstance(content, str) and content:
                    yield state.text_chunk(content)

                thinking += reasoning_text(delta)

                for call in as_list(delta.get("tool_calls")):
                    if not isinstance(call, dict):
                        continue
                    function = as_dict(call.get("function"))
                    arguments = function.get("arguments")
                    tracker.update_call(
                        call.get("index"),
                        id=as_text(call.get("id")),
                        function_name=as_text(function.get("name")),
                        arguments_delta=arguments if isinstance(arguments, str) else "",
                    )

                legacy = as_dict(delta.get("function_call"))
                if legacy:
                    arguments = legacy.get("arguments")
                    tracker.update_call(
                        0,
                        function_name=as_text(legacy.get("name")),
                        arguments_delta=arguments if isinstance(arguments, str) else "",
                    )

                finish_reason = choice.get("finish_reason")
                if isinstance(finish_reason, str) and finish_reason.strip():
                    state.set_stop_reason(map_finish_reason(finish_reason))

        thinking = thinking.strip()
        if not thinking and not tracker.has_named_calls():
            state.ensure_not_empty()

        if thinking:
            yield state.thinking_chunk(thinking)

        for call in tracker.get_all_calls():
            for chunk in state.tool_use_chunks(call.id, call.function_name, call.arguments_buffer):
                yield chunk

        for chunk in state.closing_chunks():
            yield chunk

    async def decode_json(
        self,
        document: Any,
        options: Optional[DecodeOptions] = None
    ) -> AsyncIterator[ChatChunk]:
        state = DecodeState(self.provider, options)
        document = as_dict(document)
        if document.get("error"):
            raise UpstreamErrorEvent(self.provider, document)

        choice = as_dict((as_list(document.get("choices")) or [None])[0])
        message = as_dict(choice.get("message"))

        text = self.extract_text(document)
        if text:
            yield state.text_chunk(text)

        thinking = reasoning_text(message).strip()
        if thinking:
            yield state.thinking_chunk(thinking)

        for call in as_list(message.get("tool_calls")):
            call = as_dict(call)
            function = as_dict(call.get("function"))
            for chunk in state.tool_use_chunks(
                as_text(call.get("id")),
                as_text(function.get("name")),
                function.get("arguments"),
            ):
                yield chunk

        legacy = as_dict(message.get("function_call"))
        if legacy:
            for chunk in state.tool_use_chunks("", as_text(legacy.get("name")), legacy.get("arguments")):
                yield chunk

        state.usage.update(**usage_values(document.get("usage")))

        finish_reason = choice.get("finish_reason")
        if isinstance(finish_reason, str) and finish_reason.strip():
            state.set_stop_reason(map_finish_reason(finish_reason))

        for chunk in state.closing_chunks():
            yield chunk

    def extract_text(self, document: Any) -> str:
        choice = as_dict((as_list(as_dict(document).get("choices")) or [None])[0])
        message = as_dict(choice.get("message"))
        if isinstance(message.get("content"), str):
            return message["content"].strip()
        return as_text(choice.get("text"))
