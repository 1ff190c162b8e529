"""
chatbridge - Tool Pairing (OpenAI responses input items)

function_call items must be answered by a function_call_output item with
the same call_id before any other item follows.
"""

from typing import Any, Dict, Iterable, List, Optional

from ..core.models import PendingToolCall
from .common import (
    RepairReport,
    RepairResult,
    log_repair,
    missing_result_payload,
    normalize_id,
    orphan_header,
    orphan_text,
)


def _item_type(item: Any) -> str:
    if not isinstance(item, dict):
        return "message"
    value = item.get("type")
    return value.strip().lower() if isinstance(value, str) and value.strip() else "message"


def _pending_call(item: Dict[str, Any]) -> Optional[PendingToolCall]:
    call_id = normalize_id(item.get("call_id"))
    if not call_id:
        return None
    name = item.get("name")
    arguments = item.get("arguments")
    return PendingToolCall(
        call_id=call_id,
        tool_name=name.strip() if isinstance(name, str) else "",
        arguments=arguments if isinstance(arguments, str) else "",
    )


def missing_output_item(call: PendingToolCall) -> Dict[str, Any]:
    return {
        "type": "function_call_output",
        "call_id": call.call_id,
        "output": missing_result_payload(
            "call_id", call.call_id, call.tool_name, arguments=call.arguments
        ),
    }


def orphan_output_item(item: Dict[str, Any]) -> Dict[str, Any]:
    call_id = normalize_id(item.get("call_id"))
    return {
        "type": "message",
        "role": "user",
        "content": orphan_text(orphan_header("call_id", call_id), item.get("output")),
    }


class _ResponsesPairingPass:
    def __init__(self):
        self.out: List[Dict[str, Any]] = []
        self.report = RepairReport()
        self.pending: Dict[str, PendingToolCall] = {}
        self.buffered: List[Dict[str, Any]] = []
        # a phase stays open while function_call items keep arriving, even
        # when none of them carried a usable call_id
        self.phase_open = False

    def emit_orphan(self, item: Dict[str, Any]):
        self.out.append(orphan_output_item(item))
        self.report.converted_orphan_tool_results += 1

    def flush_buffered(self):
        for item in self.buffered:
            self.emit_orphan(item)
        self.buffered = []

    def close_phase(self):
        for call in self.pending.values():
            self.out.append(missing_output_item(call))
            self.report.injected_missing_tool_results += 1
        self.pending = {}
        self.phase_open = False
        self.flush_buffered()

    def add_call(self, item: Dict[str, Any]):
        call = _pending_call(item)
        if call is not None and call.call_id not in self.pending:
            self.pending[call.call_id] = call

    def feed(self, item: Any):
        item_type = _item_type(item)

        if self.phase_open:
            if item_type == "function_call":
                self.out.append(item)
                self.add_call(item)
                return
            if item_type == "function_call_output":
                call_id = normalize_id(item.get("call_id"))
                if call_id in self.pending:
                    del self.pending[call_id]
                    self.out.append(item)
                    if not self.pending:
                        self.phase_open = False
                        self.flush_buffered()
                else:
                    self.buffered.append(item)
                return
            self.close_phase()

        if item_type == "function_call":
            self.out.append(item)
            self.phase_open = True
            self.buffered = []
            self.add_call(item)
            return

        if item_type == "function_call_output":
            self.emit_orphan(item)
            return

        self.out.append(item)


def repair_responses_tool_calls(items: Iterable[Dict[str, Any]]) -> RepairResult[Dict[str, Any]]:
    """Repair function_call / function_call_output pairing in a responses input list."""
    state = _ResponsesPairingPass()
    for item in items or ():
        state.feed(item)
    state.close_phase()

    log_repair("openai_responses", state.report, len(state.out))
    return RepairResult(items=state.out, report=state.report)
