"""
chatbridge - OpenAI Responses Decoder

The Responses API is decoded non-incrementally: the whole `output` array
of the final response object is read once. For streaming calls the event
stream is consumed until the terminal response event and its embedded
response is decoded the same way.
"""

from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Optional

from ..core.errors import EmptyStreamError, UpstreamErrorEvent
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


PROVIDER = "openai_responses"

TERMINAL_EVENTS = ("response.completed", "response.done", "response.incomplete")
FAILURE_EVENTS = ("error", "response.failed")

INCOMPLETE_REASON_MAP = {
    "max_output_tokens": StopReason.MAX_TOKENS,
    "content_filter": StopReason.SAFETY,
}


def pick_response(document: Any) -> Dict[str, Any]:
    document = as_dict(document)
    response = document.get("response")
    return response if isinstance(response, dict) else document


def output_items(response: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [item for item in as_list(response.get("output")) if isinstance(item, dict)]


def reasoning_summary(items: List[Dict[str, Any]]) -> str:
    """summary_text entries of every reasoning item, newline-joined."""
    parts = []
    for item in items:
        if item.get("type") != "reasoning":
            continue
        for entry in as_list(item.get("summary")):
            if isinstance(entry, dict) and entry.get("type") == "summary_text":
                text = as_text(entry.get("text"))
                if text:
                    parts.append(text)
    return "\n".join(parts).strip()


def function_calls(items: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """function_call items with both a call_id and a name."""
    calls = []
    for item in items:
        if item.get("type") != "function_call":
            continue
        call_id = as_text(item.get("call_id"))
        name = as_text(item.get("name"))
        if not call_id or not name:
            continue
        arguments = item.get("arguments")
        calls.append({
            "call_id": call_id,
            "name": name,
            "arguments": arguments if isinstance(arguments, str) and arguments.strip() else "{}",
        })
    return calls


def usage_values(usage: Any) -> Dict[str, Any]:
    usage = as_dict(usage)
    return {
        "input_tokens": usage.get("input_tokens"),
        "output_tokens": usage.get("output_tokens"),
        "cache_read_input_tokens": as_dict(usage.get("input_tokens_details")).get("cached_tokens"),
    }


class ResponsesDecoder(ChunkDecoder):
    """Decoder for the /responses endpoint."""

    provider = PROVIDER

    async def decode_stream(
        self,
        frames: AsyncIterable[Frame],
        options: Optional[DecodeOptions] = None
    ) -> AsyncIterator[ChatChunk]:
        state = DecodeState(self.provider, options)
        final_response: Optional[Dict[str, Any]] = None

        async for event_name, payload in iter_json_frames(frames, state):
            if not isinstance(payload, dict):
                continue
            event_type = as_text(payload.get("type")) or event_name

            if event_type in FAILURE_EVENTS:
                raise UpstreamErrorEvent(self.provider, payload)

            if event_type in TERMINAL_EVENTS and isinstance(payload.get("response"), dict):
                final_response = payload["response"]
                break

        if final_response is None:
            raise EmptyStreamError(self.provider, state.data_events, state.parsed_chunks)

        async for chunk in self.decode_json(final_response, options):
            yield chunk

    async def decode_json(
        self,
        document: Any,
        options: Optional[DecodeOptions] = None
    ) -> AsyncIterator[ChatChunk]:
        state = DecodeState(self.provider, options)
        response = pick_response(document)
        if response.get("error"):
            raise UpstreamErrorEvent(self.provider, response)

        items = output_items(response)

        text = self.extract_text(response)
        if text:
            yield state.text_chunk(text)

        summary = reasoning_summary(items)
        if summary:
            yield state.thinking_chunk(summary)

        for call in function_calls(items):
            for chunk in state.tool_use_chunks(call["call_id"], call["name"], call["arguments"]):
                yield chunk

        state.usage.update(**usage_values(response.get("usage")))

        if not state.saw_tool_use:
            reason = as_text(as_dict(response.get("incomplete_details")).get("reason"))
            if reason in INCOMPLETE_REASON_MAP:
                state.set_stop_reason(INCOMPLETE_REASON_MAP[reason])

        for chunk in state.closing_chunks():
            yield chunk

    def extract_text(self, document: Any) -> str:
        response = pick_response(document)
        for key in ("output_text", "outputText", "text"):
            direct = as_text(response.get(key))
            if direct:
                return direct

        parts = []
        for item in output_items(response):
            if item.get("type") == "message" and item.get("role") == "assistant":
                content = item.get("content")
                if isinstance(content, str) and content.strip():
                    parts.append(content)
                    continue
                for block in as_list(content):
                    if (
                        isinstance(block, dict)
                        and block.get("type") in ("output_text", "text")
                        and isinstance(block.get("text"), str)
                    ):
                        parts.append(block["text"])
            elif item.get("type") in ("output_text", "text") and isinstance(item.get("text"), str):
                parts.append(item["text"])
        return "".join(parts).strip()
