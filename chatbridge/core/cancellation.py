"""
chatbridge - Cooperative Cancellation

A token the caller may cancel while a decode is in flight. Decoders
check it between frames and before emitting the terminal chunk.
"""

import asyncio
from typing import Optional

from .errors import StreamCancelledError


class CancellationToken:
    """Cooperative cancellation signal shared by one caller and one decode."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "") -> None:
        self.reason = reason or None
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self, provider: str = "") -> None:
        if self._event.is_set():
            raise StreamCancelledError(provider)


def check_cancelled(token: Optional[CancellationToken], provider: str = "") -> None:
    if token is not None:
        token.raise_if_cancelled(provider)
