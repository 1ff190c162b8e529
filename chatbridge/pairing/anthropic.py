"""
chatbridge - Tool Pairing (Anthropic content blocks)

An assistant message carrying tool_use blocks must be followed by a user
message whose tool_result blocks answer every tool_use id, placed before
any other block in that message.
"""

from typing import Any, Dict, Iterable, List, Optional

from .common import (
    RepairReport,
    RepairResult,
    log_repair,
    logger,
    missing_result_payload,
    normalize_id,
    normalize_role,
    orphan_header,
    orphan_text,
)


PLACEHOLDER_USER_TEXT = "-"


class _PendingToolUse:
    __slots__ = ("tool_use_id", "tool_name", "tool_input")

    def __init__(self, tool_use_id: str, tool_name: str, tool_input: Optional[Dict[str, Any]]):
        self.tool_use_id = tool_use_id
        self.tool_name = tool_name
        self.tool_input = tool_input


def content_blocks(content: Any) -> List[Dict[str, Any]]:
    """Content as a block list; a plain string becomes one text block."""
    if isinstance(content, str):
        return [{"type": "text", "text": content}] if content else []
    if isinstance(content, list):
        return [block for block in content if isinstance(block, dict)]
    return []


def missing_result_block(pending: _PendingToolUse) -> Dict[str, Any]:
    return {
        "type": "tool_result",
        "tool_use_id": pending.tool_use_id,
        "content": missing_result_payload(
            "tool_use_id",
            pending.tool_use_id,
            pending.tool_name,
            tool_input=pending.tool_input,
        ),
        "is_error": True,
    }


def orphan_result_block(block: Dict[str, Any]) -> Dict[str, Any]:
    tool_use_id = normalize_id(block.get("tool_use_id"))
    return {
        "type": "text",
        "text": orphan_text(orphan_header("tool_use_id", tool_use_id), block.get("content")),
    }


def _tool_uses(content: Any) -> Dict[str, _PendingToolUse]:
    pending: Dict[str, _PendingToolUse] = {}
    for block in content_blocks(content):
        if block.get("type") != "tool_use":
            continue
        tool_use_id = normalize_id(block.get("id"))
        name = block.get("name")
        tool_name = name.strip() if isinstance(name, str) else ""
        if not tool_use_id or not tool_name or tool_use_id in pending:
            continue
        tool_input = block.get("input")
        pending[tool_use_id] = _PendingToolUse(
            tool_use_id,
            tool_name,
            tool_input if isinstance(tool_input, dict) else None,
        )
    return pending


class _AnthropicPairingPass:
    def __init__(self):
        self.out: List[Dict[str, Any]] = []
        self.report = RepairReport()
        self.pending: Dict[str, _PendingToolUse] = {}

    def missing_blocks(self) -> List[Dict[str, Any]]:
        blocks = [missing_result_block(p) for p in self.pending.values()]
        self.report.injected_missing_tool_results += len(blocks)
        self.pending = {}
        return blocks

    def inject_missing_message(self):
        if self.pending:
            self.out.append({"role": "user", "content": self.missing_blocks()})

    def answer_pending(self, msg: Dict[str, Any]):
        """Match the user message right after a tool_use turn against pending ids."""
        result_blocks: List[Dict[str, Any]] = []
        other_blocks: List[Dict[str, Any]] = []
        changed = False
        saw_result = False
        saw_other_first = False

        for block in content_blocks(msg.get("content")):
            if block.get("type") == "tool_result":
                saw_result = True
                if saw_other_first:
                    changed = True
                tool_use_id = normalize_id(block.get("tool_use_id"))
                if tool_use_id in self.pending:
                    del self.pending[tool_use_id]
                    result_blocks.append(block)
                else:
                    other_blocks.append(orphan_result_block(block))
                    self.report.converted_orphan_tool_results += 1
                    changed = True
            else:
                if not saw_result:
                    saw_other_first = True
                other_blocks.append(block)

        if self.pending:
            result_blocks.extend(self.missing_blocks())
            changed = True

        self.out.append({**msg, "content": result_blocks + other_blocks} if changed else msg)

    def convert_orphans(self, msg: Dict[str, Any]):
        blocks = content_blocks(msg.get("content"))
        if not any(block.get("type") == "tool_result" for block in blocks):
            self.out.append(msg)
            return
        converted = []
        for block in blocks:
            if block.get("type") == "tool_result":
                converted.append(orphan_result_block(block))
                self.report.converted_orphan_tool_results += 1
            else:
                converted.append(block)
        self.out.append({**msg, "content": converted})

    def feed(self, msg: Any):
        role = normalize_role(msg.get("role")) if isinstance(msg, dict) else ""

        if self.pending:
            if role == "user":
                self.answer_pending(msg)
                return
            self.inject_missing_message()

        if role == "assistant":
            self.out.append(msg)
            self.pending = _tool_uses(msg.get("content"))
            return

        if role == "user":
            self.convert_orphans(msg)
            return

        self.out.append(msg)


def ensure_leading_user(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Prepend a minimal user turn when the history does not start with one."""
    first = messages[0] if messages else None
    if isinstance(first, dict) and normalize_role(first.get("role")) == "user":
        return messages
    logger.debug("Prepending placeholder user message")
    return [{"role": "user", "content": PLACEHOLDER_USER_TEXT}] + messages


def repair_anthropic_tool_uses(messages: Iterable[Dict[str, Any]]) -> RepairResult[Dict[str, Any]]:
    """
    Repair tool_use / tool_result pairing in an Anthropic message list.

    Matching tool_result blocks are moved to the front of the answering
    user message, unmatched ones become text blocks, and any tool_use
    left unanswered gets an is_error tool_result. The result always
    starts with a user message.
    """
    state = _AnthropicPairingPass()
    for msg in messages or ():
        state.feed(msg)
    state.inject_missing_message()

    log_repair("anthropic", state.report, len(state.out))
    return RepairResult(items=ensure_leading_user(state.out), report=state.report)
