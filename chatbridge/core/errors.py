"""
chatbridge - Error Definitions

Error taxonomy with infra vs semantic classification.

Infra errors come from the transport or the upstream service and may be
retried before any content is produced. Semantic errors mean the request
itself has to change; among them only ClientRequestError (HTTP 400/422)
is eligible for the request-shape fallback chain.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx


MAX_ERROR_BODY_CHARS = 500

FALLBACK_STATUS_CODES = frozenset({400, 422})


class ErrorType(str, Enum):
    """Error classification."""
    INFRA = "infra_error"
    SEMANTIC = "semantic_error"


@dataclass
class ErrorDetails:
    """Full error information carried by every chatbridge exception."""
    # Core fields (always present)
    code: str
    message: str
    type: ErrorType

    # Context fields
    provider: Optional[str] = None

    # Trace fields
    request_id: str = ""
    upstream_status: Optional[int] = None

    # Recovery fields
    retryable: bool = False
    retry_after: Optional[int] = None

    # Debug fields
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "code": self.code,
            "message": self.message,
            "type": self.type.value,
            "request_id": self.request_id,
            "retryable": self.retryable,
        }

        if self.provider:
            result["provider"] = self.provider
        if self.upstream_status is not None:
            result["upstream_status"] = self.upstream_status
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        if self.details:
            result["details"] = self.details

        return {"error": result}


class ChatBridgeError(Exception):
    """Base exception for all chatbridge errors."""

    def __init__(self, error: ErrorDetails, status_code: int = 500):
        self.error = error
        self.status_code = status_code
        super().__init__(error.message)

    @property
    def code(self) -> str:
        return self.error.code


def truncate_body(body: str, limit: int = MAX_ERROR_BODY_CHARS) -> str:
    if len(body) <= limit:
        return body
    return body[:limit] + "..."


# ============================================================
# Infra Errors
# ============================================================

class InfraError(ChatBridgeError):
    """Base class for infrastructure errors."""
    pass


class ConnectionFailedError(InfraError):
    """Failed to connect to provider."""

    def __init__(self, provider: str, reason: str = "", request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="connection_failed",
                message=f"Failed to connect to {provider}" + (f": {reason}" if reason else ""),
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                retryable=True,
                retry_after=5
            ),
            status_code=504
        )


class ReadTimeoutError(InfraError):
    """Provider did not respond in time."""

    def __init__(self, provider: str, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="read_timeout",
                message=f"{provider} did not respond within timeout",
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                retryable=True,
                retry_after=10
            ),
            status_code=504
        )


class UpstreamError(InfraError):
    """Provider returned a non-2xx status that is not a client-class error."""

    def __init__(
        self,
        provider: str,
        status_code: int,
        body: str = "",
        request_id: str = ""
    ):
        code_map = {
            500: "upstream_500",
            502: "upstream_502",
            503: "upstream_503",
            504: "upstream_504",
        }
        super().__init__(
            ErrorDetails(
                code=code_map.get(status_code, "upstream_error"),
                message=f"{provider} returned error {status_code}",
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                upstream_status=status_code,
                retryable=status_code >= 500,
                details={"body": truncate_body(body)} if body else {}
            ),
            status_code=502 if status_code == 500 else status_code
        )


class RateLimitedError(InfraError):
    """Rate limit exceeded."""

    def __init__(
        self,
        provider: str,
        retry_after: int = 60,
        body: str = "",
        request_id: str = ""
    ):
        super().__init__(
            ErrorDetails(
                code="rate_limited",
                message=f"{provider} rate limit exceeded. Retry after {retry_after} seconds.",
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                upstream_status=429,
                retryable=True,
                retry_after=retry_after,
                details={"body": truncate_body(body)} if body else {}
            ),
            status_code=429
        )


class UpstreamErrorEvent(InfraError):
    """The provider embedded an error object inside a stream frame or JSON body."""

    def __init__(self, provider: str, payload: Any, request_id: str = ""):
        message = _payload_message(payload)
        super().__init__(
            ErrorDetails(
                code="upstream_error_event",
                message=f"{provider} stream error: {message}",
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                retryable=False,
                details={"payload": payload} if isinstance(payload, (dict, list, str)) else {}
            ),
            status_code=502
        )
        self.payload = payload


class EmptyStreamError(InfraError):
    """Stream ended without any text, thinking, tool call or usage."""

    def __init__(
        self,
        provider: str,
        data_events: int,
        parsed_chunks: int,
        request_id: str = ""
    ):
        super().__init__(
            ErrorDetails(
                code="empty_stream",
                message=(
                    f"{provider} stream produced no content "
                    f"(data_events={data_events}, parsed_chunks={parsed_chunks})"
                ),
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                retryable=False,
                details={"data_events": data_events, "parsed_chunks": parsed_chunks}
            ),
            status_code=502
        )
        self.data_events = data_events
        self.parsed_chunks = parsed_chunks


class StreamCancelledError(InfraError):
    """The caller cancelled the stream while it was being decoded."""

    def __init__(self, provider: str = "", request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="stream_cancelled",
                message="Stream cancelled by caller",
                type=ErrorType.INFRA,
                provider=provider or None,
                request_id=request_id,
                retryable=False
            ),
            status_code=499
        )


class FallbackExhaustedError(InfraError):
    """Every attempt in the request-shape fallback chain was rejected."""

    def __init__(self, provider: str, attempts: List[Dict[str, Any]], request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="fallback_exhausted",
                message=f"All {len(attempts)} request attempts to {provider} were rejected",
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                retryable=False,
                details={"attempts": attempts}
            ),
            status_code=502
        )
        self.attempts = attempts


# ============================================================
# Semantic Errors (Not Retryable)
# ============================================================

class SemanticError(ChatBridgeError):
    """Base class for semantic errors (the request must change)."""
    pass


class ClientRequestError(SemanticError):
    """Upstream rejected the request shape (400/422)."""

    def __init__(
        self,
        provider: str,
        status_code: int,
        body: str = "",
        request_id: str = ""
    ):
        super().__init__(
            ErrorDetails(
                code="invalid_request",
                message=f"{provider} rejected the request with status {status_code}",
                type=ErrorType.SEMANTIC,
                provider=provider,
                request_id=request_id,
                upstream_status=status_code,
                retryable=False,
                details={"body": truncate_body(body)} if body else {}
            ),
            status_code=status_code
        )
        self.body = truncate_body(body)


class InvalidAPIKeyError(SemanticError):
    """API key is missing, invalid or not permitted."""

    def __init__(self, provider: str, status_code: int = 401, body: str = "", request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="provider_auth_error",
                message=f"{provider} authentication failed",
                type=ErrorType.SEMANTIC,
                provider=provider,
                request_id=request_id,
                upstream_status=status_code,
                retryable=False,
                details={"body": truncate_body(body)} if body else {}
            ),
            status_code=status_code
        )


class ConfigurationError(SemanticError):
    """Provider configuration is incomplete or invalid."""

    def __init__(self, message: str, param: str = ""):
        super().__init__(
            ErrorDetails(
                code="invalid_configuration",
                message=message,
                type=ErrorType.SEMANTIC,
                retryable=False,
                details={"param": param} if param else {}
            ),
            status_code=400
        )


class InvalidResponseError(SemanticError):
    """A non-streaming response carried no usable text."""

    def __init__(self, provider: str, reason: str, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="invalid_response",
                message=f"{provider} returned an unusable response: {reason}",
                type=ErrorType.SEMANTIC,
                provider=provider,
                request_id=request_id,
                retryable=False
            ),
            status_code=502
        )


# ============================================================
# Error Factory
# ============================================================

def _payload_message(payload: Any) -> str:
    if isinstance(payload, dict):
        inner = payload.get("error", payload)
        if isinstance(inner, dict):
            return str(inner.get("message") or inner.get("type") or inner)
        return str(inner)
    return str(payload)


def _retry_after_seconds(headers: Optional[httpx.Headers]) -> int:
    if headers is None:
        return 60
    value = headers.get("retry-after", "")
    try:
        return max(int(float(value)), 0)
    except (TypeError, ValueError):
        return 60


def handle_http_error(
    provider: str,
    status_code: int,
    body: str = "",
    request_id: str = "",
    headers: Optional[httpx.Headers] = None
) -> ChatBridgeError:
    """
    Convert a non-2xx upstream response to a canonical exception.

    400/422 map to ClientRequestError so the fallback chain can try a
    reduced request shape. Everything else is fatal for the chain.
    """
    if status_code in FALLBACK_STATUS_CODES:
        return ClientRequestError(provider, status_code, body, request_id)

    if status_code in (401, 403):
        return InvalidAPIKeyError(provider, status_code, body, request_id)

    if status_code == 429:
        return RateLimitedError(
            provider,
            retry_after=_retry_after_seconds(headers),
            body=body,
            request_id=request_id
        )

    return UpstreamError(provider, status_code, body, request_id)


def handle_transport_error(
    provider: str,
    error: Exception,
    request_id: str = ""
) -> ChatBridgeError:
    """Convert an httpx transport exception to a canonical exception."""
    if isinstance(error, ChatBridgeError):
        return error

    if isinstance(error, httpx.TimeoutException):
        if isinstance(error, httpx.ConnectTimeout):
            return ConnectionFailedError(provider, "connect timeout", request_id)
        return ReadTimeoutError(provider, request_id)

    if isinstance(error, httpx.TransportError):
        return ConnectionFailedError(provider, str(error), request_id)

    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        return handle_http_error(
            provider,
            response.status_code,
            response.text,
            request_id,
            response.headers
        )

    return UpstreamError(provider, 500, str(error), request_id)


def is_fallback_eligible(error: BaseException) -> bool:
    """Only a rejected request shape may move the fallback chain forward."""
    return isinstance(error, ClientRequestError)


def is_retryable_before_content(error: ChatBridgeError) -> bool:
    """
    Check if an error may be retried at the transport level.

    Retries happen only before any body has been consumed, so a partially
    decoded stream is never replayed.
    """
    return isinstance(error, InfraError) and error.error.retryable
