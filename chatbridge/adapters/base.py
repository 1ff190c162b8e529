"""
chatbridge - Provider Adapter Base

Abstract base class for provider adapters.
Each wire protocol (OpenAI chat, OpenAI responses, Anthropic, Gemini)
implements this interface.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

import httpx

from ..core.cancellation import CancellationToken, check_cancelled
from ..core.config import ProviderConfig, ProviderType, positive_int
from ..core.conversation import Conversation
from ..core.errors import InvalidResponseError
from ..core.http_client import ProviderHttpClient, RetryConfig, is_json_response
from ..core.models import Capabilities, ChatChunk, RequestOptions, ToolDefinition, WireRequest
from ..observability.logging import get_logger
from ..pairing import RepairResult
from ..routing.fallback import FallbackAttempt, run_with_fallbacks, standard_attempts
from ..streaming.chunks import ChunkDecoder, DecodeOptions
from ..streaming.sse import Frame, iter_response_events
from ..tools.normalizer import build_tool_meta
from ..tools.schema import normalize_tool_definitions


logger = get_logger("chatbridge.adapters")

# Request default keys that the builders always set themselves
RESERVED_BODY_KEYS = frozenset({
    "model", "messages", "input", "contents", "stream", "stream_options", "streamOptions",
    "tools", "tool_choice", "toolChoice", "system", "instructions",
})

# Keys kept by the minimal-defaults fallback attempt
TOKEN_LIMIT_KEYS = ("max_tokens", "max_completion_tokens", "max_output_tokens")


def join_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def has_header(headers: Dict[str, str], name: str) -> bool:
    name = name.lower()
    return any(key.lower() == name for key in headers)


def sanitize_request_defaults(defaults: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Caller defaults without the keys the builder owns."""
    if not isinstance(defaults, dict):
        return {}
    return {key: value for key, value in defaults.items() if key not in RESERVED_BODY_KEYS}


def token_limit_defaults(defaults: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Only the positive token-limit fields of the caller defaults."""
    result = {}
    for key in TOKEN_LIMIT_KEYS:
        value = positive_int((defaults or {}).get(key))
        if value is not None:
            result[key] = value
    return result


def parse_arguments(arguments: str) -> Dict[str, Any]:
    """Tool call arguments as a dict; anything else becomes {}."""
    try:
        value = json.loads(arguments) if arguments and arguments.strip() else {}
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}


class BaseAdapter(ABC):
    """
    Abstract base class for provider adapters.

    Each adapter must implement:
    - convert_tools: canonical catalog -> provider tool declarations
    - repair_history: tool pairing repair in the provider's message shape
    - build_request: conversation + tools + options -> WireRequest

    The base class handles:
    1. Running the request-shape fallback chain
    2. Choosing between SSE and JSON decoding
    3. Non-streaming text completion
    """

    provider: ProviderType
    decoder: ChunkDecoder

    def __init__(
        self,
        config: ProviderConfig,
        http_client: Optional[ProviderHttpClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        config.validate()
        self.config = config
        self.http = http_client or ProviderHttpClient(
            config.name,
            timeout=config.timeout_seconds,
            retry_config=RetryConfig(max_retries=config.max_retries),
            transport=transport
        )

    @property
    def name(self) -> str:
        return self.provider.value

    async def close(self):
        await self.http.close()

    async def __aenter__(self) -> "BaseAdapter":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ============================================================
    # Provider-specific operations
    # ============================================================

    @abstractmethod
    def convert_tools(self, tools: Iterable[Any]) -> List[Dict[str, Any]]:
        """Provider-native tool declarations for a canonical catalog."""

    @abstractmethod
    def repair_history(self, items: List[Dict[str, Any]]) -> RepairResult:
        """Tool pairing repair over the provider-shaped history."""

    @abstractmethod
    def build_request(
        self,
        conversation: Conversation,
        tools: Optional[Iterable[Any]] = None,
        options: Optional[RequestOptions] = None
    ) -> WireRequest:
        """
        Build the exact request for one attempt.

        Args:
            conversation: Canonical conversation
            tools: Canonical tool catalog (dicts or ToolDefinitions)
            options: Feature surface of this attempt

        Returns:
            Ready-to-send url, headers and body
        """

    def auth_headers(self) -> Dict[str, str]:
        """Credential headers; override per provider."""
        return {}

    def attempt_chain(self, stream: bool, capabilities: Capabilities) -> List[FallbackAttempt]:
        return standard_attempts(stream, parallel_tool_calls=capabilities.supports_parallel_tool_use)

    # ============================================================
    # Decoding
    # ============================================================

    def decode_stream(self, frames: Any, options: Optional[DecodeOptions] = None) -> AsyncIterator[ChatChunk]:
        return self.decoder.decode_stream(frames, options)

    def decode_json(self, document: Any, options: Optional[DecodeOptions] = None) -> AsyncIterator[ChatChunk]:
        return self.decoder.decode_json(document, options)

    def extract_text(self, document: Any) -> str:
        return self.decoder.extract_text(document)

    # ============================================================
    # Helper methods for subclasses
    # ============================================================

    def _headers(self, stream: bool) -> Dict[str, str]:
        headers = {"content-type": "application/json"}
        extra = dict(self.config.extra_headers or {})
        for key, value in self.auth_headers().items():
            if not has_header(extra, key):
                headers[key] = value
        headers.update(extra)
        if stream:
            headers["accept"] = "text/event-stream"
        return headers

    def _defaults(self, options: RequestOptions) -> Dict[str, Any]:
        if options.minimal_defaults:
            return token_limit_defaults(self.config.request_defaults)
        return sanitize_request_defaults(self.config.request_defaults)

    # ============================================================
    # Calls
    # ============================================================

    async def chat_stream(
        self,
        conversation: Conversation,
        tools: Optional[Iterable[Any]] = None,
        capabilities: Optional[Capabilities] = None,
        cancel: Optional[CancellationToken] = None
    ) -> AsyncIterator[ChatChunk]:
        """
        Stream canonical chunks for one assistant turn.

        Rejected request shapes fall back to narrower attempts before any
        chunk is produced. A JSON body returned for a streaming request is
        decoded into the same chunk sequence.
        """
        caps = capabilities or Capabilities()
        catalog: List[ToolDefinition] = normalize_tool_definitions(tools or [])
        decode_options = DecodeOptions.from_capabilities(caps, build_tool_meta(catalog), cancel)

        async def send(attempt: FallbackAttempt) -> httpx.Response:
            check_cancelled(cancel, self.name)
            wire = self.build_request(conversation, catalog, attempt.options)
            return await self.http.send_stream(wire)

        response = await run_with_fallbacks(
            self.attempt_chain(True, caps),
            send,
            f"{self.name} chat_stream",
            self.name
        )
        try:
            if is_json_response(response):
                logger.debug("Streaming request answered with JSON", adapter=self.name)
                await response.aread()
                chunks = self.decode_json(self._json_body(response), decode_options)
            else:
                chunks = self.decode_stream(self._frames(response), decode_options)
            async for chunk in chunks:
                yield chunk
        finally:
            await response.aclose()

    def _frames(self, response: httpx.Response) -> AsyncIterator[Frame]:
        return iter_response_events(response)

    def _json_body(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            raise InvalidResponseError(self.name, "streaming response declared JSON but is not") from None

    async def complete_text(self, conversation: Conversation) -> str:
        """
        Non-streaming completion without tools.

        Raises:
            InvalidResponseError: the response carried no text
        """
        wire = self.build_request(
            conversation,
            (),
            RequestOptions(stream=False, include_tools=False, include_tool_choice=False)
        )
        document = await self.http.post_json(wire)
        text = self.extract_text(document)
        if not text:
            raise InvalidResponseError(self.name, "response has no assistant text")
        return text
