"""
chatbridge - Routing Module

Request-shape fallback: a rejected request is retried with a narrower
feature surface before any content is produced.
"""

from .fallback import (
    FailedAttempt,
    FallbackAttempt,
    run_with_fallbacks,
    standard_attempts,
)

__all__ = [
    "FailedAttempt",
    "FallbackAttempt",
    "run_with_fallbacks",
    "standard_attempts",
]
