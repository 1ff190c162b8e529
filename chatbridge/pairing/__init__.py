"""
chatbridge - Tool Call Pairing Repair

Guarantees every tool call in an outgoing history has exactly one
matching result, per provider message-shape convention:
- openai: flat messages with tool_calls / role=tool
- responses: function_call / function_call_output items
- anthropic: tool_use / tool_result content blocks
"""

from .common import (
    MAX_MISSING_ARGUMENTS_CHARS,
    MAX_ORPHAN_CONTENT_CHARS,
    TOOL_RESULT_MISSING_MESSAGE,
    RepairReport,
    RepairResult,
)
from .openai import repair_openai_tool_calls
from .responses import repair_responses_tool_calls
from .anthropic import PLACEHOLDER_USER_TEXT, repair_anthropic_tool_uses

__all__ = [
    "MAX_MISSING_ARGUMENTS_CHARS",
    "MAX_ORPHAN_CONTENT_CHARS",
    "TOOL_RESULT_MISSING_MESSAGE",
    "RepairReport",
    "RepairResult",
    "repair_openai_tool_calls",
    "repair_responses_tool_calls",
    "repair_anthropic_tool_uses",
    "PLACEHOLDER_USER_TEXT",
]
