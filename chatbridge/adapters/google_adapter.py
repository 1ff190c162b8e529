"""
chatbridge - Google Gemini Adapter

Adapter for the Gemini API (AI Studio generateContent family).
"""

from typing import Any, Dict, Iterable, List, Optional

import httpx

from .base import BaseAdapter, join_url, parse_arguments
from ..core.config import ProviderType, positive_int
from ..core.conversation import Conversation
from ..core.models import RequestOptions, WireRequest
from ..pairing import RepairResult, repair_openai_tool_calls
from ..streaming.gemini import GeminiDecoder
from ..tools.normalizer import to_gemini_tools


def gemini_model_path(model: str) -> str:
    model = model.strip()
    return model if "/" in model else f"models/{model}"


def to_gemini_contents(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Convert repaired chat-completions messages to Gemini contents.

    Gemini answers a functionCall with a functionResponse keyed by the
    function name, so call ids are resolved to names first. Adjacent
    entries with the same role are merged.
    """
    names_by_id: Dict[str, str] = {}
    for msg in messages:
        for call in msg.get("tool_calls") or ():
            function = call.get("function") or {}
            if call.get("id") and function.get("name"):
                names_by_id.setdefault(call["id"], function["name"])

    contents: List[Dict[str, Any]] = []
    for msg in messages:
        role = msg.get("role")
        content = msg.get("content")
        text = content if isinstance(content, str) else ""
        parts: List[Dict[str, Any]] = []

        if role == "tool":
            call_id = msg.get("tool_call_id") or ""
            parts.append({
                "functionResponse": {
                    "name": names_by_id.get(call_id, call_id),
                    "response": {"content": text},
                }
            })
            gemini_role = "user"
        else:
            if text.strip():
                parts.append({"text": text})
            for call in msg.get("tool_calls") or ():
                function = call.get("function") or {}
                parts.append({
                    "functionCall": {
                        "name": function.get("name") or "",
                        "args": parse_arguments(function.get("arguments") or ""),
                    }
                })
            gemini_role = "model" if role == "assistant" else "user"

        if not parts:
            continue
        if contents and contents[-1]["role"] == gemini_role:
            contents[-1]["parts"].extend(parts)
        else:
            contents.append({"role": gemini_role, "parts": parts})

    return contents


class GeminiAdapter(BaseAdapter):
    """
    Adapter for Google Gemini.

    Supports:
    - streamGenerateContent over SSE (alt=sse)
    - functionDeclarations with functionCallingConfig AUTO
    - systemInstruction
    """

    provider = ProviderType.GEMINI_AI_STUDIO
    decoder = GeminiDecoder()

    def convert_tools(self, tools: Iterable[Any]) -> List[Dict[str, Any]]:
        return to_gemini_tools(tools)

    def repair_history(self, items: List[Dict[str, Any]]) -> RepairResult:
        return repair_openai_tool_calls(items)

    def build_contents(self, conversation: Conversation, include_tools: bool) -> List[Dict[str, Any]]:
        repaired = self.repair_history(conversation.to_openai_messages(include_tools=include_tools))
        return to_gemini_contents(list(repaired.items))

    def build_url(self, stream: bool) -> str:
        endpoint = gemini_model_path(self.config.model)
        endpoint += ":streamGenerateContent" if stream else ":generateContent"
        if "/v1beta" not in self.config.base_url:
            endpoint = f"v1beta/{endpoint}"
        url = httpx.URL(join_url(self.config.base_url, endpoint))
        if self.config.api_key.strip():
            url = url.copy_set_param("key", self.config.api_key.strip())
        if stream:
            url = url.copy_set_param("alt", "sse")
        return str(url)

    def _gemini_defaults(self, options: RequestOptions) -> Dict[str, Any]:
        defaults = self.config.request_defaults or {}
        if not options.minimal_defaults:
            return self._defaults(options)
        generation = defaults.get("generationConfig")
        limit = positive_int(generation.get("maxOutputTokens")) if isinstance(generation, dict) else None
        return {"generationConfig": {"maxOutputTokens": limit}} if limit else {}

    def build_request(
        self,
        conversation: Conversation,
        tools: Optional[Iterable[Any]] = None,
        options: Optional[RequestOptions] = None
    ) -> WireRequest:
        options = options or RequestOptions()
        declarations = self.convert_tools(tools or ()) if options.include_tools else []

        body: Dict[str, Any] = {
            **self._gemini_defaults(options),
            "contents": self.build_contents(conversation, options.include_tools),
        }
        system = conversation.system_prompt().strip()
        if system and "systemInstruction" not in body:
            body["systemInstruction"] = {"parts": [{"text": system}]}

        if declarations:
            body["tools"] = declarations
            if not options.include_tool_choice:
                body.pop("toolConfig", None)
            elif "toolConfig" not in body:
                body["toolConfig"] = {"functionCallingConfig": {"mode": "AUTO"}}
        else:
            body.pop("toolConfig", None)

        return WireRequest(
            url=self.build_url(options.stream),
            headers=self._headers(options.stream),
            body=body
        )
