"""
chatbridge - Anthropic Messages Adapter

Adapter for Anthropic's /messages API.
"""

from typing import Any, Dict, Iterable, List, Optional

from .base import BaseAdapter, join_url, parse_arguments
from ..core.config import ProviderType, positive_int
from ..core.conversation import Conversation
from ..core.models import RequestOptions, WireRequest
from ..pairing import RepairResult, repair_anthropic_tool_uses
from ..streaming.anthropic import AnthropicDecoder
from ..tools.normalizer import to_anthropic_tools


DEFAULT_MAX_TOKENS = 1024
MAX_STOP_SEQUENCES = 20

# OpenAI-only request defaults that Anthropic rejects
UNSUPPORTED_DEFAULT_KEYS = frozenset({
    "max_completion_tokens", "maxOutputTokens", "presence_penalty", "presencePenalty",
    "frequency_penalty", "frequencyPenalty", "logit_bias", "logitBias", "logprobs",
    "top_logprobs", "topLogprobs", "response_format", "responseFormat", "seed", "n",
    "user", "parallel_tool_calls", "parallelToolCalls", "functions", "function_call",
    "functionCall",
})

# Handled explicitly below
RENAMED_DEFAULT_KEYS = frozenset({
    "maxTokens", "max_tokens", "stop", "stopSequences", "stop_sequences", "topP", "topK",
})


def pick_max_tokens(defaults: Dict[str, Any]) -> int:
    value = defaults.get("max_tokens", defaults.get("maxTokens"))
    return positive_int(value) or DEFAULT_MAX_TOKENS


def stop_sequences(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, list):
        result = [str(item).strip() for item in value if item is not None and str(item).strip()]
        return result[:MAX_STOP_SEQUENCES]
    return []


def anthropic_defaults(defaults: Dict[str, Any]) -> Dict[str, Any]:
    """Caller defaults translated to Anthropic parameter names."""
    result = {
        key: value
        for key, value in defaults.items()
        if key not in UNSUPPORTED_DEFAULT_KEYS and key not in RENAMED_DEFAULT_KEYS
    }
    stops = stop_sequences(
        defaults.get("stop_sequences", defaults.get("stopSequences", defaults.get("stop")))
    )
    if stops:
        result["stop_sequences"] = stops
    if "top_p" not in result and isinstance(defaults.get("topP"), (int, float)):
        result["top_p"] = defaults["topP"]
    if "top_k" not in result and isinstance(defaults.get("topK"), (int, float)):
        result["top_k"] = defaults["topK"]
    return result


def to_anthropic_messages(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Convert chat-completions shaped messages to Anthropic content blocks.

    Tool results become tool_result blocks of a user message; consecutive
    user-side entries share one message so roles keep alternating.
    """
    result: List[Dict[str, Any]] = []

    def append(role: str, blocks: List[Dict[str, Any]]):
        if not blocks:
            return
        if role == "user" and result and result[-1]["role"] == "user":
            result[-1]["content"].extend(blocks)
            return
        result.append({"role": role, "content": blocks})

    for msg in messages:
        role = msg.get("role")
        content = msg.get("content")
        text = content if isinstance(content, str) else ""

        if role == "tool":
            append("user", [{
                "type": "tool_result",
                "tool_use_id": msg.get("tool_call_id") or "",
                "content": text,
            }])
            continue

        blocks: List[Dict[str, Any]] = []
        if text.strip():
            blocks.append({"type": "text", "text": text})
        if role == "assistant":
            for call in msg.get("tool_calls") or ():
                function = call.get("function") or {}
                blocks.append({
                    "type": "tool_use",
                    "id": call.get("id") or "",
                    "name": function.get("name") or "",
                    "input": parse_arguments(function.get("arguments") or ""),
                })
        append("assistant" if role == "assistant" else "user", blocks)

    return result


class AnthropicAdapter(BaseAdapter):
    """
    Adapter for Anthropic Claude.

    Supports:
    - Streaming content blocks (text, thinking, tool_use)
    - Tool calling with tool_choice {"type": "auto"}
    - Top-level system prompt
    """

    provider = ProviderType.ANTHROPIC
    decoder = AnthropicDecoder()
    API_VERSION = "2023-06-01"

    def auth_headers(self) -> Dict[str, str]:
        headers = {"anthropic-version": self.API_VERSION}
        if self.config.api_key.strip():
            headers["x-api-key"] = self.config.api_key.strip()
        return headers

    def convert_tools(self, tools: Iterable[Any]) -> List[Dict[str, Any]]:
        return to_anthropic_tools(tools)

    def repair_history(self, items: List[Dict[str, Any]]) -> RepairResult:
        return repair_anthropic_tool_uses(items)

    def build_messages(self, conversation: Conversation, include_tools: bool) -> List[Dict[str, Any]]:
        messages = to_anthropic_messages(conversation.to_openai_messages(include_tools=include_tools))
        return list(self.repair_history(messages).items)

    def build_request(
        self,
        conversation: Conversation,
        tools: Optional[Iterable[Any]] = None,
        options: Optional[RequestOptions] = None
    ) -> WireRequest:
        options = options or RequestOptions()
        raw_defaults = self.config.request_defaults or {}
        declarations = self.convert_tools(tools or ()) if options.include_tools else []

        body: Dict[str, Any] = {} if options.minimal_defaults else anthropic_defaults(self._defaults(options))
        body.update({
            "model": self.config.model,
            "max_tokens": pick_max_tokens(raw_defaults),
            "messages": self.build_messages(conversation, options.include_tools),
            "stream": options.stream,
        })
        system = conversation.system_prompt().strip()
        if system:
            body["system"] = system

        if declarations:
            body["tools"] = declarations
            if options.include_tool_choice:
                body["tool_choice"] = {"type": "auto"}

        return WireRequest(
            url=join_url(self.config.base_url, "messages"),
            headers=self._headers(options.stream),
            body=body
        )
