"""
chatbridge - Tool Call Streaming

Accumulates tool calls that providers stream positionally:
1. A first delta with the call id and function name
2. Further deltas with partial argument JSON
3. The call is complete when the stream ends

Nothing is emitted from here; decoders read the finished calls in index
order once the stream is over.
"""

from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass
class ToolCallAccumulator:
    """One streamed tool call, keyed by its position index."""
    index: int
    id: str = ""
    function_name: str = ""
    arguments_buffer: str = ""

    def update(
        self,
        id: str = "",
        function_name: str = "",
        arguments_delta: str = ""
    ):
        """Apply one delta; ids and names overwrite, arguments append."""
        if id:
            self.id = id
        if function_name:
            self.function_name = function_name
        if arguments_delta:
            self.arguments_buffer += arguments_delta


def normalize_index(value: Any) -> int:
    """Delta index as a non-negative int; anything unusable maps to 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)) and value >= 0:
        return int(value)
    if isinstance(value, str):
        try:
            number = int(float(value))
        except ValueError:
            return 0
        return number if number >= 0 else 0
    return 0


class ToolCallStreamTracker:
    """
    Tracks multiple tool calls during one streamed response.

    A single response can contain several parallel tool calls; each is
    accumulated separately under its index.
    """

    def __init__(self):
        self._calls: Dict[int, ToolCallAccumulator] = {}

    def update_call(
        self,
        index: Any,
        id: str = "",
        function_name: str = "",
        arguments_delta: str = ""
    ):
        """Update the call at index, creating it on first sight."""
        idx = normalize_index(index)
        if idx not in self._calls:
            self._calls[idx] = ToolCallAccumulator(index=idx)

        self._calls[idx].update(
            id=id,
            function_name=function_name,
            arguments_delta=arguments_delta
        )

    def get_all_calls(self) -> List[ToolCallAccumulator]:
        """All tracked tool calls in index order."""
        return [self._calls[i] for i in sorted(self._calls)]

    def has_named_calls(self) -> bool:
        return any(call.function_name for call in self._calls.values())

    def call_count(self) -> int:
        return len(self._calls)
