"""
chatbridge - Provider HTTP Client

httpx wrapper used by every adapter:
- Exponential backoff retry (with jitter) before any body is consumed
- Request correlation (request_id logging)
- Upstream status codes mapped onto the chatbridge error taxonomy
- Streaming responses handed over only after the status is checked
"""

import asyncio
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, FrozenSet, Optional

import httpx

from ..observability.logging import LogContext, TimedOperation, get_logger
from .errors import (
    ChatBridgeError,
    ClientRequestError,
    InvalidResponseError,
    RateLimitedError,
    handle_http_error,
    handle_transport_error,
    is_retryable_before_content,
)
from .models import WireRequest


logger = get_logger("chatbridge.http")


class RetryableStatusCodes:
    """HTTP status codes that should trigger retry."""
    CODES = frozenset({500, 502, 503, 504, 429})

    @classmethod
    def is_retryable(cls, status_code: int) -> bool:
        return status_code in cls.CODES


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 2
    base_delay: float = 1.0  # seconds
    max_delay: float = 16.0  # seconds
    exponential_base: float = 2.0
    jitter_factor: float = 0.25
    retryable_status_codes: FrozenSet[int] = field(
        default_factory=lambda: RetryableStatusCodes.CODES
    )


def calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 16.0,
    exponential_base: float = 2.0,
    jitter_factor: float = 0.25
) -> float:
    """
    Calculate delay with exponential backoff and jitter.

    Sequence: 1s, 2s, 4s, 8s, 16s (with +/-25% jitter)
    """
    if base_delay <= 0:
        return 0.0

    delay = min(base_delay * (exponential_base ** attempt), max_delay)

    jitter_range = delay * jitter_factor
    delay = delay + random.uniform(-jitter_range, jitter_range)

    return max(0.1, delay)  # Minimum 100ms


def _current_request_id() -> str:
    ctx = LogContext.get_current()
    return ctx.request_id if ctx else ""


class ProviderHttpClient:
    """
    Sends WireRequests to one upstream provider.

    The underlying httpx.AsyncClient is created lazily; pass a transport
    (e.g. httpx.MockTransport) to intercept requests.
    """

    def __init__(
        self,
        provider: str,
        timeout: float = 120.0,
        retry_config: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.provider = provider
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self._transport = transport
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 30.0)),
                transport=self._transport
            )
            self._owns_client = True
        return self._client

    async def close(self):
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "ProviderHttpClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _build(self, client: httpx.AsyncClient, wire: WireRequest) -> httpx.Request:
        return client.build_request(
            "POST",
            wire.url,
            headers=wire.headers,
            content=wire.body_json().encode("utf-8")
        )

    async def _send_checked(self, wire: WireRequest, stream: bool) -> httpx.Response:
        """
        Send with retry; returns a 2xx response or raises.

        For stream=True the returned response body is still unread and the
        caller must close it.
        """
        client = await self._get_client()
        request_id = _current_request_id()
        attempt = 0

        while True:
            try:
                async with TimedOperation(
                    "upstream_request",
                    logger,
                    extra={"url": _redact_url(wire.url), "try": attempt + 1}
                ):
                    response = await client.send(self._build(client, wire), stream=True)
            except httpx.HTTPError as e:
                error = handle_transport_error(self.provider, e, request_id)
                if attempt < self.retry_config.max_retries and is_retryable_before_content(error):
                    await self._sleep_before_retry(attempt, error)
                    attempt += 1
                    continue
                raise error from e

            if response.is_success:
                if not stream:
                    await response.aread()
                return response

            body = await _read_error_body(response)
            error = handle_http_error(
                self.provider,
                response.status_code,
                body,
                request_id,
                response.headers
            )
            if (
                response.status_code in self.retry_config.retryable_status_codes
                and attempt < self.retry_config.max_retries
            ):
                await self._sleep_before_retry(attempt, error)
                attempt += 1
                continue

            log = logger.info if isinstance(error, ClientRequestError) else logger.warning
            log(
                "Upstream rejected request",
                status_code=response.status_code,
                error_code=error.code
            )
            raise error

    async def _sleep_before_retry(self, attempt: int, error: ChatBridgeError):
        if isinstance(error, RateLimitedError) and error.error.retry_after:
            delay = min(float(error.error.retry_after), self.retry_config.max_delay)
        else:
            delay = calculate_backoff(
                attempt,
                self.retry_config.base_delay,
                self.retry_config.max_delay,
                self.retry_config.exponential_base,
                self.retry_config.jitter_factor
            )
        logger.warning(
            f"Retry {attempt + 1}/{self.retry_config.max_retries} after {delay:.2f}s",
            error_code=error.code
        )
        await asyncio.sleep(delay)

    async def post_json(self, wire: WireRequest) -> Any:
        """POST and return the parsed JSON body."""
        response = await self._send_checked(wire, stream=False)
        try:
            return response.json()
        except ValueError:
            raise InvalidResponseError(
                self.provider,
                f"response is not JSON (content-type={response.headers.get('content-type', 'unknown')})",
                _current_request_id()
            ) from None

    async def send_stream(self, wire: WireRequest) -> httpx.Response:
        """POST and return a 2xx response with its body unread; the caller closes it."""
        return await self._send_checked(wire, stream=True)

    @asynccontextmanager
    async def open_stream(self, wire: WireRequest) -> AsyncIterator[httpx.Response]:
        """POST and yield a streaming 2xx response; the response is closed on exit."""
        response = await self.send_stream(wire)
        try:
            yield response
        finally:
            await response.aclose()


async def _read_error_body(response: httpx.Response) -> str:
    try:
        await response.aread()
        return response.text
    except httpx.HTTPError:
        return ""
    finally:
        await response.aclose()


def _redact_url(url: str) -> str:
    # Gemini puts the API key in the query string
    parsed = httpx.URL(url)
    if "key" not in parsed.params:
        return url
    return str(parsed.copy_set_param("key", "***"))


def is_json_response(response: httpx.Response) -> bool:
    return "json" in response.headers.get("content-type", "").lower()
