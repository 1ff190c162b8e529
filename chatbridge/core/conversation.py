"""
chatbridge - Conversation Models

Pydantic models for the canonical conversation handed to every adapter.
The shape follows the familiar chat-completions message layout; each
request builder translates it into its provider's wire format.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Role(str, Enum):
    """Message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FunctionCall(BaseModel):
    """Function call carried by an assistant message."""
    name: str = ""
    arguments: str = "{}"  # JSON string

    @field_validator("arguments", mode="before")
    @classmethod
    def serialize_arguments(cls, value: Any) -> str:
        if value is None:
            return "{}"
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False)
        return str(value)


class ToolCallInput(BaseModel):
    """Tool call from a previous assistant turn."""
    id: str = ""
    type: str = "function"
    function: FunctionCall = Field(default_factory=FunctionCall)


def describe_tool_call(call: ToolCallInput) -> str:
    """Plain-text rendering of a tool call for requests sent without tools."""
    return f"[tool_call name={call.function.name} id={call.id}]\n{call.function.arguments}"


class ChatMessage(BaseModel):
    """
    One message of the canonical conversation.

    Content may be a string or a list of content parts; only parts with
    a "text" field contribute to the text sent upstream.
    """
    role: Role
    content: Optional[Union[str, List[Dict[str, Any]]]] = None
    name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls: Optional[List[ToolCallInput]] = None

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="after")
    def validate_message(self):
        """Validate message based on role."""
        if self.role == Role.TOOL and not self.tool_call_id:
            raise ValueError("tool_call_id is required for tool messages")
        return self

    def text(self) -> str:
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        parts = []
        for part in self.content:
            value = part.get("text")
            if isinstance(value, str):
                parts.append(value)
        return "".join(parts)

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: Optional[str] = None,
        tool_calls: Optional[List[Dict[str, Any]]] = None
    ) -> "ChatMessage":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls)

    @classmethod
    def tool_result(cls, tool_call_id: str, content: str) -> "ChatMessage":
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id)


class Conversation(BaseModel):
    """Canonical conversation: optional system prompt plus ordered messages."""
    system: Optional[str] = None
    messages: List[ChatMessage] = Field(default_factory=list)

    def system_prompt(self) -> str:
        """Top-level system text merged with any system-role messages."""
        parts = []
        if self.system and self.system.strip():
            parts.append(self.system)
        for msg in self.messages:
            if msg.role == Role.SYSTEM:
                text = msg.text()
                if text.strip():
                    parts.append(text)
        return "\n\n".join(parts)

    def dialogue(self) -> List[ChatMessage]:
        """Messages without system entries."""
        return [msg for msg in self.messages if msg.role != Role.SYSTEM]

    def to_openai_messages(self, include_tools: bool = True) -> List[Dict[str, Any]]:
        """
        Chat-completions shaped message dicts, without the system prompt.

        Empty user and assistant entries are dropped. With include_tools
        disabled, assistant tool calls are rendered as plain text and tool
        results stay as role=tool entries so the repair pass converts
        them to orphan text.
        """
        result: List[Dict[str, Any]] = []
        for msg in self.dialogue():
            text = msg.text()
            if msg.role == Role.ASSISTANT and not include_tools and msg.tool_calls:
                lines = [text] if text.strip() else []
                lines.extend(describe_tool_call(call) for call in msg.tool_calls)
                text = "\n".join(lines)
            if msg.role == Role.TOOL:
                result.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_call_id,
                    "content": text,
                })
                continue

            entry: Dict[str, Any] = {"role": msg.role.value, "content": text}
            if msg.role == Role.ASSISTANT and include_tools and msg.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.function.name,
                            "arguments": call.function.arguments,
                        },
                    }
                    for call in msg.tool_calls
                ]
                if not text:
                    entry["content"] = None
            elif not text.strip():
                continue
            result.append(entry)
        return result
