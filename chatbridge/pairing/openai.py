"""
chatbridge - Tool Pairing (OpenAI chat messages)

Every assistant message with tool_calls must be followed by one
role=tool message per call id. Missing results are synthesized and
tool messages with no matching call become user text.
"""

from typing import Any, Dict, Iterable, List, Optional

from ..core.models import PendingToolCall
from .common import (
    RepairReport,
    RepairResult,
    log_repair,
    missing_result_payload,
    normalize_id,
    normalize_role,
    orphan_header,
    orphan_text,
)


def _pending_call(raw: Any) -> Optional[PendingToolCall]:
    if not isinstance(raw, dict):
        return None
    call_id = normalize_id(raw.get("id"))
    if not call_id:
        return None
    function = raw.get("function") if isinstance(raw.get("function"), dict) else {}
    name = function.get("name")
    arguments = function.get("arguments")
    return PendingToolCall(
        call_id=call_id,
        tool_name=name.strip() if isinstance(name, str) else "",
        arguments=arguments if isinstance(arguments, str) else "",
    )


def missing_tool_message(call: PendingToolCall) -> Dict[str, Any]:
    return {
        "role": "tool",
        "tool_call_id": call.call_id,
        "content": missing_result_payload(
            "tool_call_id", call.call_id, call.tool_name, arguments=call.arguments
        ),
    }


def orphan_tool_message(msg: Dict[str, Any]) -> Dict[str, Any]:
    call_id = normalize_id(msg.get("tool_call_id"))
    return {
        "role": "user",
        "content": orphan_text(orphan_header("tool_call_id", call_id), msg.get("content")),
    }


class _OpenAIPairingPass:
    """State for one repair pass; discarded when the pass ends."""

    def __init__(self):
        self.out: List[Dict[str, Any]] = []
        self.report = RepairReport()
        self.pending: Dict[str, PendingToolCall] = {}
        self.buffered: List[Dict[str, Any]] = []

    def emit_orphan(self, msg: Dict[str, Any]):
        self.out.append(orphan_tool_message(msg))
        self.report.converted_orphan_tool_results += 1

    def flush_buffered(self):
        for msg in self.buffered:
            self.emit_orphan(msg)
        self.buffered = []

    def close_phase(self):
        for call in self.pending.values():
            self.out.append(missing_tool_message(call))
            self.report.injected_missing_tool_results += 1
        self.pending = {}
        self.flush_buffered()

    def feed(self, msg: Any):
        role = normalize_role(msg.get("role")) if isinstance(msg, dict) else ""

        if self.pending:
            if role == "tool":
                call_id = normalize_id(msg.get("tool_call_id"))
                if call_id in self.pending:
                    del self.pending[call_id]
                    self.out.append(msg)
                    if not self.pending:
                        self.flush_buffered()
                else:
                    self.buffered.append(msg)
                return
            self.close_phase()

        tool_calls = msg.get("tool_calls") if role == "assistant" else None
        if isinstance(tool_calls, list) and tool_calls:
            self.out.append(msg)
            for raw in tool_calls:
                call = _pending_call(raw)
                if call is not None and call.call_id not in self.pending:
                    self.pending[call.call_id] = call
            self.buffered = []
            return

        if role == "tool":
            self.emit_orphan(msg)
            return

        self.out.append(msg)


def repair_openai_tool_calls(messages: Iterable[Dict[str, Any]]) -> RepairResult[Dict[str, Any]]:
    """
    Repair tool call / tool result pairing in a chat-completions message list.

    Never raises for pairing defects and never reorders real messages.
    """
    state = _OpenAIPairingPass()
    for msg in messages or ():
        state.feed(msg)
    state.close_phase()

    log_repair("openai", state.report, len(state.out))
    return RepairResult(items=state.out, report=state.report)
