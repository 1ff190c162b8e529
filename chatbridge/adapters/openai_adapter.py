"""
chatbridge - OpenAI Chat Completions Adapter

Adapter for any OpenAI-compatible /chat/completions endpoint.
"""

from typing import Any, Dict, Iterable, List, Optional

from .base import BaseAdapter, join_url
from ..core.config import ProviderType
from ..core.conversation import Conversation
from ..core.models import Capabilities, RequestOptions, WireRequest
from ..pairing import RepairResult, repair_openai_tool_calls
from ..routing.fallback import FallbackAttempt, standard_attempts
from ..streaming.openai import OpenAIChatDecoder
from ..tools.normalizer import to_openai_tools


class OpenAIAdapter(BaseAdapter):
    """
    Adapter for OpenAI chat completions.

    Supports:
    - Streaming with stream_options.include_usage (dropped on rejection)
    - Tool calling with tool_choice "auto"
    - parallel_tool_calls=false unless the caller handles parallel calls
    - Reasoning fields of compatible servers, folded into thinking
    """

    provider = ProviderType.OPENAI_COMPATIBLE
    decoder = OpenAIChatDecoder()

    def auth_headers(self) -> Dict[str, str]:
        if not self.config.api_key.strip():
            return {}
        return {"authorization": f"Bearer {self.config.api_key.strip()}"}

    def attempt_chain(self, stream: bool, capabilities: Capabilities) -> List[FallbackAttempt]:
        return standard_attempts(
            stream,
            parallel_tool_calls=capabilities.supports_parallel_tool_use,
            with_usage_attempt=stream
        )

    def convert_tools(self, tools: Iterable[Any]) -> List[Dict[str, Any]]:
        return to_openai_tools(tools)

    def repair_history(self, items: List[Dict[str, Any]]) -> RepairResult:
        return repair_openai_tool_calls(items)

    def build_messages(self, conversation: Conversation, include_tools: bool) -> List[Dict[str, Any]]:
        """Repaired message list with the system prompt as a leading message."""
        repaired = self.repair_history(conversation.to_openai_messages(include_tools=include_tools))
        messages = list(repaired.items)
        system = conversation.system_prompt()
        if system.strip():
            messages.insert(0, {"role": "system", "content": system.strip()})
        return messages

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
            "messages": self.build_messages(conversation, options.include_tools),
            "stream": options.stream,
        }
        if options.stream and options.include_usage:
            body["stream_options"] = {"include_usage": True}

        if not (declarations and options.include_tool_choice and options.parallel_tool_calls):
            body.pop("parallel_tool_calls", None)
        if declarations:
            body["tools"] = declarations
            if options.include_tool_choice:
                body["tool_choice"] = "auto"
                if not options.parallel_tool_calls:
                    body["parallel_tool_calls"] = False

        return WireRequest(
            url=join_url(self.config.base_url, "chat/completions"),
            headers=self._headers(options.stream),
            body=body
        )
