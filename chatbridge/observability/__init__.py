"""
chatbridge - Observability Module

Structured JSON logging with request context injection.

Usage:
    from chatbridge.observability import get_logger, request_context

    logger = get_logger(__name__)
"""

from .logging import (
    JSONFormatter,
    LogContext,
    StructuredLogger,
    TimedOperation,
    get_logger,
    request_context,
    setup_logging,
)

__all__ = [
    "JSONFormatter",
    "LogContext",
    "StructuredLogger",
    "TimedOperation",
    "get_logger",
    "request_context",
    "setup_logging",
]
