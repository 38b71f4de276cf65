"""Unit tests for the CAS anti-spam checker"""
import asyncio
import json
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.exceptions import ProtocolError, TransientError
from src.models.antispam import AntiSpamVerdict
from src.models.context import utcnow
from src.services.antispam import AntiSpamChecker
from tests.helpers import TEST_PREFIX

CAS_URL = "https://cas.test"

BANNED_BODY = {
    "ok": True,
    "result": {
        "offenses": 3,
        "messages": ["crypto spam"],
        "time_added": "2024-01-15T10:30:00.000Z",
    },
}
CLEAN_BODY = {"ok": True, "result": None}


def make_checker(cache, handler, **kwargs) -> AntiSpamChecker:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AntiSpamChecker(cache, api_url=CAS_URL, cache_ttl=3600, http_client=client, **kwargs)


def respond_with(body, status_code: int = 200):
    requests = []

    async def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        await asyncio.sleep(0.01)
        return httpx.Response(status_code, json=body)

    handler.requests = requests
    return handler


class TestResponseMapping:
    """How oracle answers become verdicts or errors"""

    @pytest.mark.asyncio
    async def test_banned_user(self, cache):
        handler = respond_with(BANNED_BODY)
        checker = make_checker(cache, handler)

        verdict = await checker.check(42)

        assert verdict.is_banned
        assert verdict.offenses == 3
        assert verdict.ban_reason == "crypto spam"
        assert verdict.source_time.year == 2024
        assert handler.requests[0].url.params["user_id"] == "42"
        assert handler.requests[0].url.path == "/check"

    @pytest.mark.asyncio
    async def test_null_result_is_clean(self, cache):
        checker = make_checker(cache, respond_with(CLEAN_BODY))
        verdict = await checker.check(42)
        assert not verdict.is_banned
        assert verdict.offenses == 0

    @pytest.mark.asyncio
    async def test_ok_false_is_protocol_error(self, cache):
        checker = make_checker(cache, respond_with({"ok": False, "description": "Record not found."}))
        with pytest.raises(ProtocolError, match="Record not found"):
            await checker.check(42)

    @pytest.mark.asyncio
    async def test_malformed_body_is_protocol_error(self, cache):
        async def handler(request):
            return httpx.Response(200, content=b"<html>oops</html>")

        checker = make_checker(cache, handler)
        with pytest.raises(ProtocolError):
            await checker.check(42)

    @pytest.mark.asyncio
    async def test_non_2xx_is_transient(self, cache):
        checker = make_checker(cache, respond_with({}, status_code=502))
        with pytest.raises(TransientError) as exc_info:
            await checker.check(42)
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, cache):
        async def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        checker = make_checker(cache, handler)
        with pytest.raises(TransientError):
            await checker.check(42)

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, cache, fake_redis):
        checker = make_checker(cache, respond_with({}, status_code=500))
        with pytest.raises(TransientError):
            await checker.check(42)
        assert f"{TEST_PREFIX}cas:check:42" not in fake_redis.data


class TestCaching:
    @pytest.mark.asyncio
    async def test_second_check_served_from_cache(self, cache, fake_redis):
        checker = make_checker(cache, respond_with(BANNED_BODY))

        first = await checker.check(42)
        second = await checker.check(42)

        assert checker.requests_sent == 1
        assert second == first
        assert await fake_redis.ttl(f"{TEST_PREFIX}cas:check:42") == 3600

    @pytest.mark.asyncio
    async def test_stale_entry_triggers_new_lookup(self, cache, fake_redis):
        stale = AntiSpamVerdict(user_id=42, checked_at=utcnow() - timedelta(hours=2))
        fake_redis.data[f"{TEST_PREFIX}cas:check:42"] = stale.model_dump_json()
        checker = make_checker(cache, respond_with(BANNED_BODY))

        verdict = await checker.check(42)
        assert verdict.is_banned
        assert checker.requests_sent == 1

    @pytest.mark.asyncio
    async def test_force_check_bypasses_cache(self, cache):
        checker = make_checker(cache, respond_with(CLEAN_BODY))
        await checker.check(42)
        await checker.force_check(42)
        assert checker.requests_sent == 2

    @pytest.mark.asyncio
    async def test_redis_outage_still_asks_oracle(self, cache, fake_redis):
        fake_redis.fail = True
        checker = make_checker(cache, respond_with(CLEAN_BODY))

        verdict = await checker.check(42)
        assert not verdict.is_banned

    @pytest.mark.asyncio
    async def test_sweep_cache_drops_stale_and_corrupted(self, cache, fake_redis):
        fresh = AntiSpamVerdict(user_id=1)
        stale = AntiSpamVerdict(user_id=2, checked_at=utcnow() - timedelta(hours=2))
        fake_redis.data[f"{TEST_PREFIX}cas:check:1"] = fresh.model_dump_json()
        fake_redis.data[f"{TEST_PREFIX}cas:check:2"] = stale.model_dump_json()
        fake_redis.data[f"{TEST_PREFIX}cas:check:3"] = "not json"
        checker = make_checker(cache, respond_with(CLEAN_BODY))

        assert await checker.sweep_cache() == 2
        assert list(fake_redis.data) == [f"{TEST_PREFIX}cas:check:1"]

    @pytest.mark.asyncio
    async def test_cache_stats(self, cache, fake_redis):
        fake_redis.data[f"{TEST_PREFIX}cas:check:1"] = AntiSpamVerdict(user_id=1).model_dump_json()
        fake_redis.data[f"{TEST_PREFIX}cas:check:2"] = AntiSpamVerdict(
            user_id=2, is_banned=True, offenses=1
        ).model_dump_json()
        checker = make_checker(cache, respond_with(CLEAN_BODY))

        stats = await checker.cache_stats()
        assert stats.total_cached == 2
        assert stats.banned_in_sample == 1
        assert stats.in_flight == 0


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_checks_share_one_request(self, cache):
        handler = respond_with(BANNED_BODY)
        checker = make_checker(cache, handler)

        verdicts = await asyncio.gather(*(checker.check(42) for _ in range(20)))

        assert checker.requests_sent == 1
        assert len(handler.requests) == 1
        assert all(v == verdicts[0] for v in verdicts)

    @pytest.mark.asyncio
    async def test_shared_failure_reaches_every_waiter(self, cache):
        checker = make_checker(cache, respond_with({}, status_code=503))

        results = await asyncio.gather(*(checker.check(42) for _ in range(5)), return_exceptions=True)

        assert checker.requests_sent == 1
        assert all(isinstance(r, TransientError) for r in results)

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_lookup(self, cache):
        checker = make_checker(cache, respond_with(CLEAN_BODY))

        impatient = asyncio.create_task(checker.check(42))
        patient = asyncio.create_task(checker.check(42))
        await asyncio.sleep(0)
        impatient.cancel()

        verdict = await patient
        assert not verdict.is_banned
        assert checker.requests_sent == 1

    @pytest.mark.asyncio
    async def test_different_users_are_not_coalesced(self, cache):
        checker = make_checker(cache, respond_with(CLEAN_BODY))
        await asyncio.gather(checker.check(1), checker.check(2))
        assert checker.requests_sent == 2


class TestBatch:
    @pytest.mark.asyncio
    async def test_batch_skips_failed_users(self, cache):
        async def handler(request):
            if request.url.params["user_id"] == "2":
                return httpx.Response(500)
            return httpx.Response(200, content=json.dumps(CLEAN_BODY))

        checker = make_checker(cache, handler)
        with patch("src.services.antispam.asyncio.sleep", new=AsyncMock()):
            results = await checker.check_batch([1, 2, 3])

        assert set(results) == {1, 3}

    @pytest.mark.asyncio
    async def test_batch_spaces_requests_within_chunks(self, cache):
        async def handler(request):
            return httpx.Response(200, content=json.dumps(CLEAN_BODY))

        checker = make_checker(cache, handler)
        sleep = AsyncMock()
        with patch("src.services.antispam.asyncio.sleep", new=sleep):
            results = await checker.check_batch(range(12))

        assert len(results) == 12
        # 9 gaps in the first chunk of ten, 1 in the second chunk of two
        assert sleep.await_count == 10
        sleep.assert_awaited_with(0.1)
