"""Tests for per-destination circuit breakers."""

from __future__ import annotations

import asyncio

import pytest

from hookline.exceptions import CircuitOpenError
from hookline.webhooks.breaker import CircuitBreaker, CircuitBreakerRegistry, CircuitState
from utils import FakeClock

URL = "https://example.com/webhook"


async def _ok() -> str:
    return "ok"


async def _boom() -> str:
    raise ConnectionError("connection refused")


async def _fail(breaker: CircuitBreaker, times: int) -> None:
    for _ in range(times):
        with pytest.raises(ConnectionError):
            await breaker.execute(_boom)


@pytest.fixture
def breaker(clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker(url=URL, failure_threshold=5, cooldown_seconds=60.0, clock=clock)


class TestClosedState:
    """Tests for a closed breaker."""

    def test_initial_state(self, breaker: CircuitBreaker) -> None:
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 0
        assert breaker.next_probe_at is None

    @pytest.mark.asyncio
    async def test_passes_result_through(self, breaker: CircuitBreaker) -> None:
        assert await breaker.execute(_ok) == "ok"

    @pytest.mark.asyncio
    async def test_reraises_operation_error_unchanged(self, breaker: CircuitBreaker) -> None:
        """Operation errors should surface as-is, not wrapped."""
        with pytest.raises(ConnectionError, match="connection refused"):
            await breaker.execute(_boom)
        assert breaker.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_stays_closed_below_threshold(self, breaker: CircuitBreaker) -> None:
        await _fail(breaker, 4)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 4

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker: CircuitBreaker) -> None:
        await _fail(breaker, 4)
        await breaker.execute(_ok)
        assert breaker.consecutive_failures == 0
        await _fail(breaker, 4)
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_opens_at_threshold(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        await _fail(breaker, 5)
        assert breaker.state == CircuitState.OPEN
        assert breaker.next_probe_at == clock.now + 60.0


class TestOpenState:
    """Tests for an open breaker."""

    @pytest.mark.asyncio
    async def test_rejects_without_invoking(self, breaker: CircuitBreaker) -> None:
        """An open breaker should not call the operation at all."""
        await _fail(breaker, 5)
        calls = 0

        async def counted() -> str:
            nonlocal calls
            calls += 1
            return "ok"

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(counted)

        assert calls == 0
        assert exc_info.value.url == URL
        assert exc_info.value.retry_after == pytest.approx(60.0)
        assert "Circuit breaker is open" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_rejection_does_not_count_as_failure(self, breaker: CircuitBreaker) -> None:
        await _fail(breaker, 5)
        with pytest.raises(CircuitOpenError):
            await breaker.execute(_ok)
        assert breaker.consecutive_failures == 5

    @pytest.mark.asyncio
    async def test_retry_after_counts_down(
        self, breaker: CircuitBreaker, clock: FakeClock
    ) -> None:
        await _fail(breaker, 5)
        clock.advance(45)
        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(_ok)
        assert exc_info.value.retry_after == pytest.approx(15.0)

    @pytest.mark.asyncio
    async def test_half_open_after_cooldown(
        self, breaker: CircuitBreaker, clock: FakeClock
    ) -> None:
        await _fail(breaker, 5)
        clock.advance(59.9)
        assert breaker.state == CircuitState.OPEN
        clock.advance(0.1)
        assert breaker.state == CircuitState.HALF_OPEN


class TestHalfOpenState:
    """Tests for the single trial call after cooldown."""

    @pytest.mark.asyncio
    async def test_probe_success_closes(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        await _fail(breaker, 5)
        clock.advance(60)
        assert await breaker.execute(_ok) == "ok"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 0
        assert breaker.next_probe_at is None

    @pytest.mark.asyncio
    async def test_probe_failure_reopens(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        await _fail(breaker, 5)
        clock.advance(60)
        await _fail(breaker, 1)
        assert breaker.state == CircuitState.OPEN
        assert breaker.next_probe_at == clock.now + 60.0

        with pytest.raises(CircuitOpenError):
            await breaker.execute(_ok)

    @pytest.mark.asyncio
    async def test_only_one_probe_in_flight(
        self, breaker: CircuitBreaker, clock: FakeClock
    ) -> None:
        """Concurrent callers should be rejected while the probe runs."""
        await _fail(breaker, 5)
        clock.advance(60)

        release = asyncio.Event()

        async def slow() -> str:
            await release.wait()
            return "ok"

        probe = asyncio.create_task(breaker.execute(slow))
        await asyncio.sleep(0)

        with pytest.raises(CircuitOpenError):
            await breaker.execute(_ok)

        release.set()
        assert await probe == "ok"
        assert breaker.state == CircuitState.CLOSED


class TestReset:
    """Tests for manual reset and snapshots."""

    @pytest.mark.asyncio
    async def test_reset_closes(self, breaker: CircuitBreaker) -> None:
        await _fail(breaker, 5)
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert await breaker.execute(_ok) == "ok"

    @pytest.mark.asyncio
    async def test_snapshot(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        await _fail(breaker, 5)
        snap = breaker.snapshot()
        assert snap.url == URL
        assert snap.state == CircuitState.OPEN
        assert snap.consecutive_failures == 5
        assert snap.opened_at == clock.now
        assert snap.next_probe_at == clock.now + 60.0


class TestCircuitBreakerRegistry:
    """Tests for CircuitBreakerRegistry."""

    def test_get_or_create_caches(self, breakers: CircuitBreakerRegistry) -> None:
        first = breakers.get_or_create(URL)
        assert breakers.get_or_create(URL) is first
        assert len(breakers) == 1
        assert URL in breakers

    def test_get_unknown(self, breakers: CircuitBreakerRegistry) -> None:
        assert breakers.get(URL) is None

    def test_breakers_use_registry_settings(self, clock: FakeClock) -> None:
        registry = CircuitBreakerRegistry(failure_threshold=2, cooldown_seconds=10, clock=clock)
        breaker = registry.get_or_create(URL)
        assert breaker.failure_threshold == 2
        assert breaker.cooldown_seconds == 10
        assert breaker.clock is clock

    @pytest.mark.asyncio
    async def test_isolation_between_urls(self, breakers: CircuitBreakerRegistry) -> None:
        """Opening one URL's breaker should leave others closed."""
        bad = breakers.get_or_create("https://bad.example.com/hook")
        good = breakers.get_or_create("https://good.example.com/hook")

        await _fail(bad, 5)

        assert bad.state == CircuitState.OPEN
        assert good.state == CircuitState.CLOSED
        assert await good.execute(_ok) == "ok"

    @pytest.mark.asyncio
    async def test_reset_one(self, breakers: CircuitBreakerRegistry) -> None:
        breaker = breakers.get_or_create(URL)
        await _fail(breaker, 5)
        assert breakers.reset(URL) is True
        assert breaker.state == CircuitState.CLOSED

    def test_reset_unknown(self, breakers: CircuitBreakerRegistry) -> None:
        assert breakers.reset("https://nowhere.example.com") is False

    def test_reset_all(self, breakers: CircuitBreakerRegistry) -> None:
        breakers.get_or_create("https://a.example.com")
        breakers.get_or_create("https://b.example.com")
        breakers.reset_all()
        assert len(breakers) == 0

    @pytest.mark.asyncio
    async def test_states(self, breakers: CircuitBreakerRegistry) -> None:
        await _fail(breakers.get_or_create("https://a.example.com"), 5)
        breakers.get_or_create("https://b.example.com")

        states = breakers.states()

        assert set(states) == {"https://a.example.com", "https://b.example.com"}
        assert states["https://a.example.com"].state == CircuitState.OPEN
        assert states["https://b.example.com"].state == CircuitState.CLOSED
