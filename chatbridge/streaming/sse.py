"""
chatbridge - Server-Sent Events Framing

Splits a line stream into SSE events (event name + joined data lines).
Comment lines and unknown fields are ignored.
"""

from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, List, Optional, Union

import httpx


@dataclass(frozen=True)
class SSEEvent:
    """One dispatched SSE event."""
    data: str
    event: str = ""
    id: Optional[str] = None


Frame = Union[SSEEvent, str]


async def iter_sse_events(lines: AsyncIterable[str]) -> AsyncIterator[SSEEvent]:
    """
    Parse SSE events from an async iterable of lines.

    Multiple data lines are joined with a newline. An event is
    dispatched on a blank line or at end of input.
    """
    event_name = ""
    event_id: Optional[str] = None
    data_lines: List[str] = []

    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")

        if not line:
            if data_lines:
                yield SSEEvent(data="\n".join(data_lines), event=event_name, id=event_id)
            event_name = ""
            event_id = None
            data_lines = []
            continue

        if line.startswith(":"):
            continue

        field_name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field_name == "data":
            data_lines.append(value)
        elif field_name == "event":
            event_name = value.strip()
        elif field_name == "id":
            event_id = value

    if data_lines:
        yield SSEEvent(data="\n".join(data_lines), event=event_name, id=event_id)


async def iter_response_events(response: httpx.Response) -> AsyncIterator[SSEEvent]:
    """SSE events from a streaming httpx response."""
    async for event in iter_sse_events(response.aiter_lines()):
        yield event


def frame_parts(frame: Frame) -> tuple:
    """(event name, data) for either an SSEEvent or a bare data payload."""
    if isinstance(frame, SSEEvent):
        return frame.event, frame.data
    return "", frame
