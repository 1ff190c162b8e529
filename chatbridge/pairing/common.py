"""
chatbridge - Tool Pairing Shared Pieces

Constants, the repair report and the small helpers used by every
provider family's repair pass.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

from ..observability.logging import get_logger


logger = get_logger("chatbridge.pairing")


TOOL_RESULT_MISSING_ERROR = "tool_result_missing"

TOOL_RESULT_MISSING_MESSAGE = (
    "No tool_result was received for this tool call (the tool may not have run, "
    "may have been disabled or denied, or the result was lost from history). "
    "Continue without this result, or avoid depending on this tool."
)

# Fixed bounds on payload growth
MAX_MISSING_ARGUMENTS_CHARS = 4000
MAX_ORPHAN_CONTENT_CHARS = 8000

TRUNCATION_MARKER = "...[truncated]"


@dataclass
class RepairReport:
    """Counts of synthesized entries produced by one repair pass."""
    injected_missing_tool_results: int = 0
    converted_orphan_tool_results: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.injected_missing_tool_results or self.converted_orphan_tool_results)

    def to_dict(self) -> Dict[str, int]:
        return {
            "injected_missing_tool_results": self.injected_missing_tool_results,
            "converted_orphan_tool_results": self.converted_orphan_tool_results,
        }


T = TypeVar("T")


@dataclass
class RepairResult(Generic[T]):
    """Repaired message/item list plus its report."""
    items: List[T]
    report: RepairReport = field(default_factory=RepairReport)


def normalize_id(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_role(value: Any) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


def truncate_text(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def content_to_text(content: Any) -> str:
    """Best-effort textual form of a result payload."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = []
        for part in content:
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                texts.append(part["text"])
            elif isinstance(part, str):
                texts.append(part)
        if texts:
            return "\n".join(texts)
    return json.dumps(content, ensure_ascii=False, default=str)


def missing_result_payload(
    id_key: str,
    call_id: str,
    tool_name: str = "",
    arguments: str = "",
    tool_input: Optional[Dict[str, Any]] = None
) -> str:
    """
    JSON text placed in a synthesized result for a call that never got one.

    Key order is fixed so repeated passes produce identical text.
    """
    payload: Dict[str, Any] = {"error": TOOL_RESULT_MISSING_ERROR, id_key: call_id}
    if tool_name:
        payload["tool_name"] = tool_name
    payload["message"] = TOOL_RESULT_MISSING_MESSAGE

    if tool_input is not None:
        encoded = json.dumps(tool_input, ensure_ascii=False, default=str)
        if len(encoded) <= MAX_MISSING_ARGUMENTS_CHARS:
            payload["input"] = tool_input
        else:
            payload["arguments"] = truncate_text(encoded, MAX_MISSING_ARGUMENTS_CHARS)
    elif arguments.strip():
        payload["arguments"] = truncate_text(arguments.strip(), MAX_MISSING_ARGUMENTS_CHARS)

    return json.dumps(payload, ensure_ascii=False)


def orphan_text(header: str, content: Any) -> str:
    """Header line followed by the (bounded) original result content."""
    body = truncate_text(content_to_text(content), MAX_ORPHAN_CONTENT_CHARS).strip()
    return f"{header}\n{body}" if body else header


def orphan_header(id_key: str, call_id: str) -> str:
    return f"[orphan_tool_result {id_key}={call_id}]" if call_id else "[orphan_tool_result]"


def log_repair(family: str, report: RepairReport, total: int) -> None:
    if report.changed:
        logger.debug(
            "Repaired tool pairing",
            family=family,
            items=total,
            **report.to_dict()
        )
