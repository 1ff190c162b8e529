"""
chatbridge - Request-Shape Fallback Chain

When a provider rejects a request as malformed (HTTP 400/422), the same
request is retried with a strictly narrower feature surface:

    full request
    -> drop tool_choice / parallel_tool_calls (tools kept)
    -> drop tools (tool history rewritten as text, repaired again)
    -> minimal defaults (token-limit fields only)

RULE: Fallback only happens before any chunk has been produced. Each
attempt builds its request from scratch; nothing carries over.

Any other failure (network, 401, 429, 5xx) stops the chain at once.
"""

import time
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, List, Sequence, TypeVar

from ..core.errors import ChatBridgeError, FallbackExhaustedError, is_fallback_eligible
from ..core.models import RequestOptions
from ..observability.logging import LogContext, get_logger


logger = get_logger("chatbridge.routing.fallback")

T = TypeVar("T")


@dataclass(frozen=True)
class FallbackAttempt:
    """One step of the chain: a label and the request options it sends."""
    label: str
    options: RequestOptions = field(default_factory=RequestOptions)


@dataclass
class FailedAttempt:
    """Record of a rejected attempt."""
    label: str
    status_code: int
    body: str
    duration_ms: int

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "status_code": self.status_code,
            "body": self.body,
            "duration_ms": self.duration_ms,
        }


def standard_attempts(
    stream: bool,
    parallel_tool_calls: bool = False,
    with_usage_attempt: bool = False
) -> List[FallbackAttempt]:
    """
    The ordered attempt chain shared by every provider.

    with_usage_attempt prepends a full request that also asks for usage in
    the stream (OpenAI stream_options), since some compatible servers
    reject that field.
    """
    full = RequestOptions(stream=stream, parallel_tool_calls=parallel_tool_calls)
    attempts = []
    if with_usage_attempt:
        attempts.append(FallbackAttempt("full_with_usage", replace(full, include_usage=True)))
    attempts.extend([
        FallbackAttempt("full", full),
        FallbackAttempt(
            "no_tool_choice",
            replace(full, include_tool_choice=False, parallel_tool_calls=False),
        ),
        FallbackAttempt(
            "no_tools",
            replace(full, include_tools=False, include_tool_choice=False, parallel_tool_calls=False),
        ),
        FallbackAttempt(
            "minimal_defaults",
            replace(
                full,
                include_tools=False,
                include_tool_choice=False,
                parallel_tool_calls=False,
                minimal_defaults=True,
            ),
        ),
    ])
    return attempts


async def run_with_fallbacks(
    attempts: Sequence[FallbackAttempt],
    send: Callable[[FallbackAttempt], Awaitable[T]],
    label: str,
    provider: str = ""
) -> T:
    """
    Run send() for each attempt until one succeeds.

    Args:
        attempts: Ordered attempts, widest first
        send: Builds and sends one attempt; returns its result
        label: Operation name used in logs
        provider: Provider name for the exhausted error

    Returns:
        The result of the first attempt that is not rejected

    Raises:
        FallbackExhaustedError: every attempt was rejected with 400/422
        ChatBridgeError: any other failure, unchanged
    """
    failures: List[FailedAttempt] = []

    for index, attempt in enumerate(attempts):
        start = time.time()
        try:
            result = await send(attempt)
        except ChatBridgeError as e:
            if not is_fallback_eligible(e):
                raise
            duration_ms = int((time.time() - start) * 1000)
            failures.append(FailedAttempt(
                label=attempt.label,
                status_code=e.status_code,
                body=getattr(e, "body", ""),
                duration_ms=duration_ms
            ))
            remaining = len(attempts) - index - 1
            logger.warning(
                f"{label}: attempt '{attempt.label}' rejected",
                status_code=e.status_code,
                remaining_attempts=remaining
            )
            continue

        if failures:
            logger.info(
                f"{label}: succeeded after fallback",
                attempt_label=attempt.label,
                rejected_attempts=len(failures)
            )
        return result

    raise FallbackExhaustedError(
        provider or label,
        [failure.to_dict() for failure in failures],
        _current_request_id()
    )


def _current_request_id() -> str:
    ctx = LogContext.get_current()
    return ctx.request_id if ctx else ""

