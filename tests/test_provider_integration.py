"""
chatbridge - Live Provider Integration Tests

Runs one real streaming turn against the provider described by the
CHATBRIDGE_* environment variables. Skipped unless RUN_INTEGRATION=1.
"""

import os

import pytest

from chatbridge.adapters import get_adapter
from chatbridge.core.config import ProviderConfig
from chatbridge.core.conversation import ChatMessage, Conversation
from chatbridge.core.models import NodeType


pytestmark = pytest.mark.integration


def live_config() -> ProviderConfig:
    if not os.getenv("CHATBRIDGE_MODEL"):
        pytest.skip("CHATBRIDGE_MODEL not set")
    return ProviderConfig.from_env()


@pytest.mark.asyncio
async def test_live_stream_round_trip():
    """A short prompt should stream text and finish with one terminal chunk."""
    conversation = Conversation(messages=[ChatMessage.user("Reply with the single word: pong")])

    async with get_adapter(live_config()) as adapter:
        chunks = [chunk async for chunk in adapter.chat_stream(conversation)]

    assert sum(1 for chunk in chunks if chunk.is_final) == 1
    finished = [n for c in chunks for n in c.nodes if n.type == NodeType.MAIN_TEXT_FINISHED]
    assert finished and finished[0].content.strip()


@pytest.mark.asyncio
async def test_live_complete_text():
    conversation = Conversation(messages=[ChatMessage.user("Say hello")])

    async with get_adapter(live_config()) as adapter:
        text = await adapter.complete_text(conversation)

    assert text
