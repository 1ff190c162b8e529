"""
chatbridge - OpenAI Responses Adapter

Adapter for the OpenAI /responses endpoint. History is sent as a flat
`input` item list; the system prompt goes into `instructions`.
"""

from typing import Any, Dict, Iterable, List, Optional

from .base import BaseAdapter, join_url
from ..core.config import ProviderType
from ..core.conversation import Conversation
from ..core.models import RequestOptions, WireRequest
from ..pairing import RepairResult, repair_responses_tool_calls
from ..streaming.responses import ResponsesDecoder
from ..tools.normalizer import to_responses_tools


def to_input_items(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Convert chat-completions shaped messages into Responses input items."""
    items: List[Dict[str, Any]] = []
    for msg in messages:
        role = msg.get("role")
        if role == "tool":
            items.append({
                "type": "function_call_output",
                "call_id": msg.get("tool_call_id") or "",
                "output": msg.get("content") or "",
            })
            continue

        content = msg.get("content")
        if isinstance(content, str) and content.strip():
            items.append({"type": "message", "role": role, "content": content})

        for call in msg.get("tool_calls") or ():
            function = call.get("function") or {}
            items.append({
                "type": "function_call",
                "call_id": call.get("id") or "",
                "name": function.get("name") or "",
                "arguments": function.get("arguments") or "{}",
            })
    return items


class ResponsesAdapter(BaseAdapter):
    """
    Adapter for OpenAI responses.

    Supports:
    - Strict function tool declarations
    - function_call / function_call_output history items
    - Reasoning summaries as thinking
    """

    provider = ProviderType.OPENAI_RESPONSES
    decoder = ResponsesDecoder()

    def auth_headers(self) -> Dict[str, str]:
        if not self.config.api_key.strip():
            return {}
        return {"authorization": f"Bearer {self.config.api_key.strip()}"}

    def convert_tools(self, tools: Iterable[Any]) -> List[Dict[str, Any]]:
        return to_responses_tools(tools)

    def repair_history(self, items: List[Dict[str, Any]]) -> RepairResult:
        return repair_responses_tool_calls(items)

    def build_input(self, conversation: Conversation, include_tools: bool) -> List[Dict[str, Any]]:
        items = to_input_items(conversation.to_openai_messages(include_tools=include_tools))
        return list(self.repair_history(items).items)

    def build_request(
        self,
        conversation: Conversation,
        tools: Optional[Iterable[Any]] = None,
        options: Optional[RequestOptions] = None
    ) -> WireRequest:
        options = options or RequestOptions()
        declarations = self.convert_tools(tools or ()) if options.include_tools else []

        body: Dict[str, Any] = {
            **self._defaults(options),
            "model": self.config.model,
            "input": self.build_input(conversation, options.include_tools),
            "stream": options.stream,
        }
        system = conversation.system_prompt().strip()
        if system:
            body["instructions"] = system

        if not (declarations and options.include_tool_choice and options.parallel_tool_calls):
            body.pop("parallel_tool_calls", None)
        if declarations:
            body["tools"] = declarations
            if options.include_tool_choice:
                body["tool_choice"] = "auto"
                if not options.parallel_tool_calls:
                    body["parallel_tool_calls"] = False

        return WireRequest(
            url=join_url(self.config.base_url, "responses"),
            headers=self._headers(options.stream),
            body=body
        )
