"""Unit tests for retry_with_backoff"""
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from telegram.error import BadRequest, RetryAfter, TimedOut

from src.exceptions import ProtocolError, TransientError
from src.resilience.retry import (
    MAX_DELAY,
    calculate_backoff,
    is_retryable_error,
    retry_with_backoff,
)


def status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.test")
    return httpx.HTTPStatusError("error", request=request, response=httpx.Response(code, request=request))


class TestRetryableErrors:
    @pytest.mark.parametrize("error,retryable", [
        (TimedOut(), True),
        (RetryAfter(1), True),
        (BadRequest("Chat not found"), False),
        (httpx.ReadTimeout("slow"), True),
        (status_error(503), True),
        (status_error(429), True),
        (status_error(404), False),
        (ValueError("bug"), False),
    ])
    def test_classification(self, error, retryable):
        assert is_retryable_error(error) is retryable

    def test_our_transient_errors(self):
        assert is_retryable_error(TransientError("redis down", service="redis"))
        assert is_retryable_error(TransientError("bad gateway", service="cas", status_code=502))
        assert not is_retryable_error(TransientError("not found", service="cas", status_code=404))
        assert not is_retryable_error(ProtocolError("garbage", service="cas"))

    def test_backoff_is_capped(self):
        assert calculate_backoff(0) == pytest.approx(0.5, rel=0.11)
        assert calculate_backoff(20) <= MAX_DELAY * 1.1


class TestRetryWithBackoff:
    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        func = AsyncMock(side_effect=[TimedOut(), TimedOut(), "ok"])

        with patch("src.resilience.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await retry_with_backoff(func, 1, max_retries=3)

        assert result == "ok"
        assert func.await_count == 3
        assert sleep.await_count == 2
        func.assert_awaited_with(1)

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        func = AsyncMock(side_effect=BadRequest("Chat not found"))

        with patch("src.resilience.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(BadRequest):
                await retry_with_backoff(func)

        assert func.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exhausted_retries_reraise_last_error(self):
        func = AsyncMock(side_effect=TimedOut())

        with patch("src.resilience.retry.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(TimedOut):
                await retry_with_backoff(func, max_retries=2)

        assert func.await_count == 3
