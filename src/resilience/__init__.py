"""Retry helpers for calls to the chat platform and other external services"""

from src.resilience.retry import (
    calculate_backoff,
    is_retryable_error,
    retry_with_backoff,
)

__all__ = [
    "calculate_backoff",
    "is_retryable_error",
    "retry_with_backoff",
]
