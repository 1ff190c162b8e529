"""
chatbridge - Pytest Configuration

Configures:
- Integration test markers (skip by default)
- Smoke test handling (skip with SKIP_SMOKE=1)
- Frame helpers and provider configs for decoder/adapter tests
"""

import json
import os
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

import httpx
import pytest

from chatbridge.core.config import ProviderConfig
from chatbridge.streaming.sse import SSEEvent


# ============================================================
# Environment Configuration
# ============================================================

def _is_truthy(value: Optional[str]) -> bool:
    """Check if environment variable is truthy."""
    if value is None:
        return False
    return value.lower() in ("1", "true", "yes", "on")


RUN_INTEGRATION = _is_truthy(os.getenv("RUN_INTEGRATION"))
SKIP_SMOKE = _is_truthy(os.getenv("SKIP_SMOKE"))


# ============================================================
# Pytest Markers
# ============================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires RUN_INTEGRATION=1)"
    )
    config.addinivalue_line(
        "markers",
        "smoke: mark test as smoke test (skip with SKIP_SMOKE=1)"
    )


def pytest_collection_modifyitems(config, items):
    """
    Modify test collection to handle integration and smoke tests.

    - Integration tests: Skip unless RUN_INTEGRATION=1
    - Smoke tests: Skip if SKIP_SMOKE=1
    """
    skip_integration = pytest.mark.skip(
        reason="Integration test - set RUN_INTEGRATION=1 to run"
    )
    skip_smoke = pytest.mark.skip(
        reason="Smoke test skipped - SKIP_SMOKE=1"
    )

    for item in items:
        if "integration" in item.keywords and not RUN_INTEGRATION:
            item.add_marker(skip_integration)
        if "smoke" in item.keywords and SKIP_SMOKE:
            item.add_marker(skip_smoke)


# ============================================================
# Frame Helpers
# ============================================================

async def frames_from(payloads: Iterable[Any]) -> AsyncIterator[Any]:
    """
    Async frame source for decoders.

    dicts are JSON-encoded, strings pass through unchanged and
    SSEEvent instances are yielded as-is.
    """
    for payload in payloads:
        if isinstance(payload, (dict, list)):
            yield json.dumps(payload)
        else:
            yield payload


def event(name: str, data: Dict[str, Any]) -> SSEEvent:
    """SSE event with an explicit event name."""
    return SSEEvent(data=json.dumps(data), event=name)


async def collect(chunks: AsyncIterator[Any]) -> List[Any]:
    return [chunk async for chunk in chunks]


def sse_body(payloads: Iterable[Any]) -> bytes:
    """Serialize payloads as an SSE response body."""
    lines = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        lines.append(f"data: {data}\n\n")
    return "".join(lines).encode("utf-8")


def all_nodes(chunks) -> List[Any]:
    return [node for chunk in chunks for node in chunk.nodes]


# ============================================================
# Provider Configs
# ============================================================

@pytest.fixture
def openai_config():
    return ProviderConfig(
        type="openai_compatible",
        base_url="https://api.example.test/v1/",
        api_key="sk-test",
        model="gpt-test",
        max_retries=0,
    )


@pytest.fixture
def responses_config():
    return ProviderConfig(
        type="openai_responses",
        base_url="https://api.example.test/v1",
        api_key="sk-test",
        model="gpt-test",
        max_retries=0,
    )


@pytest.fixture
def anthropic_config():
    return ProviderConfig(
        type="anthropic",
        base_url="https://api.anthropic.test/v1",
        api_key="ak-test",
        model="claude-test",
        max_retries=0,
    )


@pytest.fixture
def gemini_config():
    return ProviderConfig(
        type="gemini_ai_studio",
        base_url="https://generativelanguage.example.test",
        api_key="gk-test",
        model="gemini-test",
        max_retries=0,
    )


class RecordingTransport:
    """
    httpx.MockTransport handler that records requests and answers them
    from a queue of (status_code, response kwargs) pairs. The last pair
    keeps answering once the queue is down to one entry.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.responses) > 1:
            status_code, kwargs = self.responses.pop(0)
        else:
            status_code, kwargs = self.responses[0]
        return httpx.Response(status_code, **kwargs)

    def bodies(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def sse_response(payloads: Iterable[Any]):
    return 200, {"content": sse_body(payloads), "headers": {"content-type": "text/event-stream"}}


def json_response(status_code: int, payload: Any):
    return status_code, {"json": payload}
