"""Retry logic with exponential backoff and jitter

Used for idempotent chat platform reads (member status, bot identity):
1. Only retries transient errors (network failures, timeouts, flood control, 5xx)
2. Uses exponential backoff with jitter to prevent thundering herd
3. Gives up after max retries and re-raises the last error
"""

import asyncio
import logging
import random
from typing import Any, Callable, TypeVar

import httpx
from telegram.error import BadRequest, NetworkError, RetryAfter, TimedOut

from src.exceptions import TransientError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Retry configuration
MAX_RETRIES = 3
BASE_DELAY = 0.5  # seconds
MAX_DELAY = 10.0  # seconds
JITTER = 0.1  # 10% random jitter


def is_retryable_error(exc: Exception) -> bool:
    """
    Determine if error is transient and should be retried.

    Retryable errors:
    - Telegram network errors, timeouts and flood control (RetryAfter)
    - HTTP 429 and 5xx
    - Our own TransientError (already wrapped upstream errors)

    Non-retryable errors:
    - Telegram BadRequest / Forbidden (the request itself is wrong)
    - HTTP 4xx other than 429
    - Everything else
    """
    if isinstance(exc, (RetryAfter, TimedOut, NetworkError)):
        # BadRequest subclasses NetworkError but will fail the same way again
        return not isinstance(exc, BadRequest)

    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in [429, 500, 502, 503, 504]

    if isinstance(exc, httpx.TimeoutException):
        return True

    if isinstance(exc, TransientError):
        return exc.status_code is None or exc.status_code == 429 or exc.status_code >= 500

    return False


def calculate_backoff(attempt: int, base_delay: float = BASE_DELAY) -> float:
    """
    Exponential backoff delay with jitter.

    Formula: delay = min(base_delay * (2 ** attempt), MAX_DELAY) +/- 10%

    Example (base 0.5s):
        Attempt 0: ~0.5s
        Attempt 1: ~1s
        Attempt 2: ~2s
    """
    delay = min(base_delay * (2 ** attempt), MAX_DELAY)
    jitter_amount = random.uniform(-JITTER * delay, JITTER * delay)
    return max(delay + jitter_amount, 0.0)


async def retry_with_backoff(
    func: Callable[..., T],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
    **kwargs: Any
) -> T:
    """
    Retry async function with exponential backoff.

    Raises:
        The last exception if retries are exhausted or it is not retryable

    Example:
        status = await retry_with_backoff(bot.get_chat_member, chat_id, user_id)
    """
    name = getattr(func, "__name__", repr(func))

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            if attempt == max_retries:
                logger.error(f"[RETRY] All {max_retries} retries exhausted for {name}")
                raise

            if not is_retryable_error(e):
                logger.debug(f"[RETRY] Non-retryable error for {name}: {type(e).__name__}: {e}")
                raise

            backoff = calculate_backoff(attempt, base_delay)
            logger.info(
                f"[RETRY] Attempt {attempt + 1}/{max_retries} for {name} "
                f"after {backoff:.2f}s (error: {type(e).__name__})"
            )
            await asyncio.sleep(backoff)

    raise RuntimeError("Retry logic failed unexpectedly")
