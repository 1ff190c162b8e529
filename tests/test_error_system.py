"""
chatbridge - Error System Tests

Verifies:
- Upstream status codes map onto the error taxonomy
- httpx transport failures map onto infra errors
- Only rejected request shapes are fallback-eligible
- The HTTP client retries before any body is consumed
"""

import httpx
import pytest

from chatbridge.core.errors import (
    ChatBridgeError,
    ClientRequestError,
    ConnectionFailedError,
    EmptyStreamError,
    ErrorType,
    InfraError,
    InvalidAPIKeyError,
    RateLimitedError,
    ReadTimeoutError,
    SemanticError,
    UpstreamError,
    UpstreamErrorEvent,
    handle_http_error,
    handle_transport_error,
    is_fallback_eligible,
    truncate_body,
)
from chatbridge.core.http_client import (
    ProviderHttpClient,
    RetryConfig,
    _redact_url,
    calculate_backoff,
)
from chatbridge.core.models import WireRequest

from conftest import RecordingTransport, json_response


WIRE = WireRequest(url="https://api.example.test/v1/chat/completions", headers={}, body={"x": 1})


# ============================================================
# Error Taxonomy
# ============================================================

class TestHandleHttpError:
    """Test status code mapping."""

    @pytest.mark.parametrize("status_code", [400, 422])
    def test_client_errors(self, status_code):
        error = handle_http_error("openai_compatible", status_code, "bad field")

        assert isinstance(error, ClientRequestError)
        assert isinstance(error, SemanticError)
        assert error.error.upstream_status == status_code
        assert is_fallback_eligible(error)

    @pytest.mark.parametrize("status_code", [401, 403])
    def test_auth_errors(self, status_code):
        error = handle_http_error("anthropic", status_code)

        assert isinstance(error, InvalidAPIKeyError)
        assert error.code == "provider_auth_error"
        assert not is_fallback_eligible(error)

    def test_rate_limit_reads_retry_after(self):
        error = handle_http_error(
            "anthropic", 429, headers=httpx.Headers({"retry-after": "7"})
        )

        assert isinstance(error, RateLimitedError)
        assert error.error.retry_after == 7
        assert error.error.retryable is True

    def test_server_errors(self):
        error = handle_http_error("gemini_ai_studio", 503, "unavailable")

        assert isinstance(error, UpstreamError)
        assert isinstance(error, InfraError)
        assert error.code == "upstream_503"
        assert error.error.retryable is True
        assert error.error.details == {"body": "unavailable"}

    def test_other_status(self):
        error = handle_http_error("openai_compatible", 404)

        assert error.code == "upstream_error"
        assert error.error.retryable is False


class TestHandleTransportError:
    """Test httpx exception mapping."""

    def test_connect_timeout(self):
        error = handle_transport_error("openai_compatible", httpx.ConnectTimeout("slow"))

        assert isinstance(error, ConnectionFailedError)
        assert error.error.retryable is True

    def test_read_timeout(self):
        error = handle_transport_error("openai_compatible", httpx.ReadTimeout("slow"))

        assert isinstance(error, ReadTimeoutError)

    def test_connect_error(self):
        error = handle_transport_error("openai_compatible", httpx.ConnectError("refused"))

        assert isinstance(error, ConnectionFailedError)
        assert "refused" in error.error.message

    def test_existing_error_passes_through(self):
        original = UpstreamError("anthropic", 502)

        assert handle_transport_error("anthropic", original) is original


class TestErrorDetails:
    """Test error serialization."""

    def test_to_dict(self):
        error = handle_http_error("anthropic", 400, "x" * 600, request_id="req_1")
        data = error.error.to_dict()["error"]

        assert data["code"] == "invalid_request"
        assert data["type"] == ErrorType.SEMANTIC.value
        assert data["provider"] == "anthropic"
        assert data["request_id"] == "req_1"
        assert data["upstream_status"] == 400
        assert len(data["details"]["body"]) == 503

    def test_truncate_body(self):
        assert truncate_body("short") == "short"
        assert truncate_body("abcdef", limit=3) == "abc..."

    def test_empty_stream_error_counters(self):
        error = EmptyStreamError("openai_compatible", data_events=4, parsed_chunks=2)

        assert isinstance(error, ChatBridgeError)
        assert error.error.details == {"data_events": 4, "parsed_chunks": 2}
        assert "data_events=4" in str(error)

    def test_upstream_error_event_message(self):
        error = UpstreamErrorEvent("anthropic", {"type": "error", "error": {"message": "Overloaded"}})

        assert str(error) == "anthropic stream error: Overloaded"
        assert error.payload["type"] == "error"


# ============================================================
# HTTP Client
# ============================================================

def fast_client(recorder, max_retries=2):
    return ProviderHttpClient(
        "openai_compatible",
        retry_config=RetryConfig(max_retries=max_retries, base_delay=0),
        transport=recorder.transport()
    )


class TestProviderHttpClient:
    """Test retries and status handling."""

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        recorder = RecordingTransport(
            json_response(503, {"error": "busy"}),
            json_response(200, {"ok": True}),
        )
        async with fast_client(recorder) as client:
            result = await client.post_json(WIRE)

        assert result == {"ok": True}
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_retries_rate_limits(self):
        recorder = RecordingTransport(
            (429, {"headers": {"retry-after": "0"}}),
            json_response(200, {"ok": True}),
        )
        async with fast_client(recorder) as client:
            assert await client.post_json(WIRE) == {"ok": True}

    @pytest.mark.asyncio
    async def test_retry_budget_exhausted(self):
        recorder = RecordingTransport(json_response(502, {"error": "bad gateway"}))
        async with fast_client(recorder, max_retries=1) as client:
            with pytest.raises(UpstreamError):
                await client.post_json(WIRE)

        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        recorder = RecordingTransport(json_response(400, {"error": "bad"}))
        async with fast_client(recorder) as client:
            with pytest.raises(ClientRequestError) as exc_info:
                await client.post_json(WIRE)

        assert len(recorder.requests) == 1
        assert "bad" in exc_info.value.body

    @pytest.mark.asyncio
    async def test_connection_error_mapped(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        client = ProviderHttpClient(
            "anthropic",
            retry_config=RetryConfig(max_retries=0),
            transport=httpx.MockTransport(refuse)
        )
        async with client:
            with pytest.raises(ConnectionFailedError):
                await client.post_json(WIRE)

    @pytest.mark.asyncio
    async def test_request_body_and_headers(self):
        recorder = RecordingTransport(json_response(200, {}))
        wire = WireRequest(url=WIRE.url, headers={"authorization": "Bearer k"}, body={"model": "m"})
        async with fast_client(recorder) as client:
            await client.post_json(wire)

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.headers["authorization"] == "Bearer k"
        assert recorder.bodies() == [{"model": "m"}]

    @pytest.mark.asyncio
    async def test_open_stream_closes_response(self):
        recorder = RecordingTransport((200, {"content": b"data: x\n\n"}))
        async with fast_client(recorder) as client:
            async with client.open_stream(WIRE) as response:
                lines = [line async for line in response.aiter_lines()]

        assert lines[0] == "data: x"
        assert response.is_closed

    @pytest.mark.asyncio
    async def test_non_json_body_raises(self):
        recorder = RecordingTransport((200, {"content": b"not json"}))
        async with fast_client(recorder) as client:
            with pytest.raises(SemanticError):
                await client.post_json(WIRE)


class TestBackoff:
    """Test retry delay calculation."""

    def test_exponential_with_cap(self):
        delay = calculate_backoff(10, base_delay=1.0, max_delay=16.0, jitter_factor=0)

        assert delay == 16.0

    def test_jitter_bounds(self):
        for _ in range(20):
            delay = calculate_backoff(1, base_delay=1.0, jitter_factor=0.25)
            assert 1.5 <= delay <= 2.5

    def test_zero_base_delay(self):
        assert calculate_backoff(3, base_delay=0) == 0.0


class TestRedactUrl:
    """Test API key redaction in logged URLs."""

    def test_key_param_hidden(self):
        url = "https://g.test/v1beta/models/m:generateContent?key=secret&alt=sse"

        assert "secret" not in _redact_url(url)

    def test_url_without_key_unchanged(self):
        assert _redact_url("https://api.test/v1/messages") == "https://api.test/v1/messages"
