"""Tests for the TTL cache, retry decorator, request pacer and error descriptions."""

import asyncio

import pytest

from market_moves.core import retry
from market_moves.core.cache import TTLCache
from market_moves.core.errors import (
    FetchExhausted,
    MalformedResponse,
    RateLimited,
    ResponseTooLarge,
    Timeout,
    UpstreamHttpError,
    UpstreamUnavailable,
    describe_failure,
)
from market_moves.core.pacing import RequestPacer


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    def test_hit_before_expiry(self) -> None:
        clock = FakeClock()
        cache = TTLCache(60, clock=clock)
        cache.set(("AAPL", "2024-03-01"), [1, 2])

        clock.now += 59
        assert cache.get(("AAPL", "2024-03-01")) == [1, 2]
        assert ("AAPL", "2024-03-01") in cache

    def test_miss_after_expiry(self) -> None:
        clock = FakeClock()
        cache = TTLCache(60, clock=clock)
        cache.set("k", "v")

        clock.now += 60
        assert cache.get("k") is None
        assert "k" not in cache

    def test_empty_list_is_a_cached_value(self) -> None:
        cache = TTLCache(60)
        cache.set("k", [])
        assert cache.get("k") == []

    def test_clear(self) -> None:
        cache = TTLCache(60)
        cache.set("k", 1)
        cache.clear()
        assert cache.get("k") is None


class TestWithRetries:
    @pytest.fixture(autouse=True)
    def fake_sleep(self, monkeypatch, no_sleep):
        monkeypatch.setattr(retry, "_sleep", no_sleep)
        return no_sleep

    def test_returns_first_success(self, fake_sleep) -> None:
        calls = []

        @retry.with_retries(max_attempts=3, backoff_step=2.0)
        async def flaky():
            calls.append(1)
            if len(calls) < 2:
                raise RateLimited("RATE_LIMITED")
            return "ok"

        assert asyncio.run(flaky()) == "ok"
        assert len(calls) == 2
        assert fake_sleep.delays == [2.0]

    def test_linear_backoff_then_exhausted(self, fake_sleep) -> None:
        calls = []

        @retry.with_retries(max_attempts=3, backoff_step=2.0)
        async def always_fails():
            calls.append(1)
            raise Timeout("TIMEOUT")

        with pytest.raises(FetchExhausted) as excinfo:
            asyncio.run(always_fails())

        assert len(calls) == 3
        assert fake_sleep.delays == [2.0, 4.0]
        assert isinstance(excinfo.value.last_error, Timeout)
        assert "3 attempts" in str(excinfo.value)


class TestRequestPacer:
    def test_first_acquire_is_immediate(self, no_sleep) -> None:
        pacer = RequestPacer(0.5, clock=FakeClock(), sleep=no_sleep)
        asyncio.run(pacer.acquire())
        assert no_sleep.delays == []

    def test_waits_for_remaining_interval(self, no_sleep) -> None:
        clock = FakeClock()
        pacer = RequestPacer(0.5, clock=clock, sleep=no_sleep)

        async def scenario():
            await pacer.acquire()
            clock.now += 0.25
            await pacer.acquire()
            clock.now += 1.0
            await pacer.acquire()

        asyncio.run(scenario())
        assert no_sleep.delays == [pytest.approx(0.25)]

    def test_reset_forgets_last_grant(self, no_sleep) -> None:
        pacer = RequestPacer(0.5, clock=FakeClock(), sleep=no_sleep)

        async def scenario():
            await pacer.acquire()
            pacer.reset()
            await pacer.acquire()

        asyncio.run(scenario())
        assert no_sleep.delays == []


class TestDescribeFailure:
    @pytest.mark.parametrize(
        "cause, fragment",
        [
            (RateLimited("RATE_LIMITED"), "rate limit"),
            (Timeout("TIMEOUT"), "timed out"),
            (UpstreamUnavailable("refused"), "connect"),
            (ResponseTooLarge("big"), "large"),
        ],
    )
    def test_unwraps_exhausted_retries(self, cause, fragment) -> None:
        exc = FetchExhausted("Data fetch failed after 3 attempts", last_error=cause)
        assert fragment in describe_failure(exc)

    def test_falls_back_to_message(self) -> None:
        assert describe_failure(UpstreamHttpError(503)) == "HTTP 503"
        assert describe_failure(MalformedResponse("Malformed provider response")) == "Malformed provider response"
