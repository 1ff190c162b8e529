"""
chatbridge - Gemini Decoder

Decodes generateContent / streamGenerateContent bodies. Each frame carries
candidates[0].content.parts, a mix of text and functionCall parts.

Some Gemini frames repeat the text sent so far instead of a pure delta.
When a frame's text starts with everything already emitted, only the
remainder is emitted.
"""

import re
from typing import Any, AsyncIterable, AsyncIterator, Dict, Optional

from ..core.errors import UpstreamErrorEvent
from ..core.models import ChatChunk, RawTextNode, StopReason
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


PROVIDER = "gemini_ai_studio"

FINISH_REASON_MAP = {
    "STOP": StopReason.END_TURN,
    "MAX_TOKENS": StopReason.MAX_TOKENS,
    "SAFETY": StopReason.SAFETY,
    "RECITATION": StopReason.RECITATION,
    "MALFORMED_FUNCTION_CALL": StopReason.MALFORMED_FUNCTION_CALL,
}

_TOOL_HINT_PATTERN = re.compile(r"[^A-Za-z0-9_-]+")
MAX_TOOL_HINT_CHARS = 48


def map_finish_reason(reason: str) -> StopReason:
    return FINISH_REASON_MAP.get(reason.strip().upper(), StopReason.END_TURN)


def sanitize_tool_hint(tool_name: str) -> str:
    """Tool name reduced to an id-safe hint."""
    return _TOOL_HINT_PATTERN.sub("_", tool_name.strip())[:MAX_TOOL_HINT_CHARS] or "tool"


def usage_values(document: Dict[str, Any]) -> Dict[str, Any]:
    metadata = document.get("usageMetadata")
    if not isinstance(metadata, dict):
        metadata = as_dict(document.get("usage_metadata"))

    def pick(*keys):
        for key in keys:
            if metadata.get(key) is not None:
                return metadata[key]
        return None

    return {
        "input_tokens": pick("promptTokenCount", "prompt_token_count"),
        "output_tokens": pick("candidatesTokenCount", "candidates_token_count"),
        "cache_read_input_tokens": pick(
            "cachedContentTokenCount", "cached_content_token_count", "cachedTokenCount"
        ),
    }


def first_candidate(document: Dict[str, Any]) -> Dict[str, Any]:
    return as_dict((as_list(document.get("candidates")) or [None])[0])


def candidate_parts(candidate: Dict[str, Any]):
    return [part for part in as_list(as_dict(candidate.get("content")).get("parts")) if isinstance(part, dict)]


def _raise_on_error(provider: str, document: Dict[str, Any]):
    if document.get("error") or document.get("message"):
        raise UpstreamErrorEvent(provider, document)


def _apply_finish_reason(state: DecodeState, candidate: Dict[str, Any]):
    reason = candidate.get("finishReason", candidate.get("finish_reason"))
    if isinstance(reason, str) and reason.strip():
        state.set_stop_reason(map_finish_reason(reason))


class GeminiDecoder(ChunkDecoder):
    """Decoder for the Gemini generateContent family."""

    provider = PROVIDER

    def _tool_chunks(self, state: DecodeState, function_call: Dict[str, Any], seq: int):
        name = as_text(function_call.get("name"))
        args = function_call.get("args", function_call.get("arguments"))
        tool_use_id = f"tool-{sanitize_tool_hint(name)}-{seq}"
        return state.tool_use_chunks(tool_use_id, name, args if args is not None else "{}")

    async def decode_stream(
        self,
        frames: AsyncIterable[Frame],
        options: Optional[DecodeOptions] = None
    ) -> AsyncIterator[ChatChunk]:
        state = DecodeState(self.provider, options)
        tool_seq = 0

        async for _event, payload in iter_json_frames(frames, state):
            if not isinstance(payload, dict):
                continue
            _raise_on_error(self.provider, payload)

            state.usage.update(**usage_values(payload))
            candidate = first_candidate(payload)
            _apply_finish_reason(state, candidate)

            frame_text = ""
            for part in candidate_parts(candidate):
                if isinstance(part.get("text"), str) and part["text"]:
                    frame_text += part["text"]
                    continue
                function_call = part.get("functionCall")
                if not isinstance(function_call, dict) or not as_text(function_call.get("name")):
                    continue
                tool_seq += 1
                for chunk in self._tool_chunks(state, function_call, tool_seq):
                    yield chunk

            if frame_text:
                delta = self._text_delta(state, frame_text)
                if delta:
                    state.emitted_chunks += 1
                    yield ChatChunk(text=delta, nodes=(RawTextNode(id=state.next_id(), content=delta),))

        state.ensure_not_empty()
        for chunk in state.closing_chunks():
            yield chunk

    @staticmethod
    def _text_delta(state: DecodeState, frame_text: str) -> str:
        """New text in a frame, treating a prefix match as cumulative text."""
        if frame_text.startswith(state.full_text):
            delta = frame_text[len(state.full_text):]
            state.full_text = frame_text
            return delta
        state.full_text += frame_text
        return frame_text

    async def decode_json(
        self,
        document: Any,
        options: Optional[DecodeOptions] = None
    ) -> AsyncIterator[ChatChunk]:
        state = DecodeState(self.provider, options)
        document = as_dict(document)
        _raise_on_error(self.provider, document)

        candidate = first_candidate(document)
        tool_seq = 0
        text_buffer = ""

        for part in candidate_parts(candidate):
            if isinstance(part.get("text"), str) and part["text"]:
                text_buffer += part["text"]
                continue
            function_call = part.get("functionCall")
            if not isinstance(function_call, dict):
                continue
            if text_buffer:
                yield state.text_chunk(text_buffer)
                text_buffer = ""
            if not as_text(function_call.get("name")):
                continue
            tool_seq += 1
            for chunk in self._tool_chunks(state, function_call, tool_seq):
                yield chunk

        if text_buffer:
            yield state.text_chunk(text_buffer)

        state.usage.update(**usage_values(document))
        _apply_finish_reason(state, candidate)

        for chunk in state.closing_chunks():
            yield chunk

    def extract_text(self, document: Any) -> str:
        candidate = first_candidate(as_dict(document))
        return "".join(
            part["text"] for part in candidate_parts(candidate) if isinstance(part.get("text"), str)
        )
