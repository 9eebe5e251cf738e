"""Per-destination circuit breakers for webhook delivery.

Stops sending requests to an endpoint that keeps failing and gives it time
to recover, without affecting any other endpoint.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: Endpoint unhealthy, calls fail immediately with CircuitOpenError
- HALF_OPEN: Cooldown elapsed, exactly one trial call is allowed

    closed    --[threshold failures]--> open
    open      --[cooldown elapsed]----> half_open
    half_open --[success]-------------> closed
    half_open --[failure]-------------> open

Only exceptions raised by the guarded operation count as failures. An HTTP
response with an error status is a completed call as far as the breaker is
concerned; the caller decides what to do with it.

Example:
    registry = CircuitBreakerRegistry(failure_threshold=5, cooldown_seconds=60)
    breaker = registry.get_or_create("https://example.com/hook")
    response = await breaker.execute(lambda: client.post(url, content=body))
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

from pydantic import BaseModel, ConfigDict

from hookline.exceptions import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing fast
    HALF_OPEN = "half_open"  # Probing recovery


class CircuitSnapshot(BaseModel):
    """Read-only view of one breaker for operators."""

    model_config = ConfigDict(extra="forbid")

    url: str
    state: CircuitState
    consecutive_failures: int
    opened_at: float | None = None
    next_probe_at: float | None = None


@dataclass
class CircuitBreaker:
    """Circuit breaker guarding a single destination URL.

    State changes happen synchronously between awaits, so one event loop
    can share a breaker across tasks without a lock.

    Args:
        url: Destination this breaker protects (used in errors and logs).
        failure_threshold: Consecutive failures before opening.
        cooldown_seconds: Seconds an open breaker waits before a probe.
        clock: Monotonic time source, injectable for tests.
    """

    url: str
    failure_threshold: int = 5
    cooldown_seconds: float = 60.0
    clock: Clock = time.monotonic

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _consecutive_failures: int = field(default=0, init=False)
    _opened_at: float | None = field(default=None, init=False)
    _probe_in_flight: bool = field(default=False, init=False)

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        self._check_recovery()
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def next_probe_at(self) -> float | None:
        """Clock reading at which an open breaker allows a probe."""
        if self._opened_at is None:
            return None
        return self._opened_at + self.cooldown_seconds

    def _check_recovery(self) -> None:
        """Move from OPEN to HALF_OPEN once the cooldown has elapsed."""
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if self.clock() >= self._opened_at + self.cooldown_seconds:
                logger.info("Circuit for %s entering half-open state", self.url)
                self._state = CircuitState.HALF_OPEN
                self._probe_in_flight = False

    def _retry_after(self) -> float:
        if self._opened_at is None:
            return self.cooldown_seconds
        return max(0.0, self._opened_at + self.cooldown_seconds - self.clock())

    def _before_call(self) -> bool:
        """Admit or reject a call. Returns True if the call is the half-open probe."""
        self._check_recovery()

        if self._state == CircuitState.OPEN:
            logger.warning(
                "Circuit for %s is open, rejecting call (%d consecutive failures)",
                self.url,
                self._consecutive_failures,
            )
            raise CircuitOpenError(self.url, self._retry_after())

        if self._state == CircuitState.HALF_OPEN:
            if self._probe_in_flight:
                raise CircuitOpenError(self.url, 0.0)
            self._probe_in_flight = True
            return True

        return False

    def _record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            logger.info("Circuit for %s closed after successful probe", self.url)
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = None

    def _record_failure(self) -> None:
        self._consecutive_failures += 1

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            self._opened_at = self.clock()
            logger.warning("Circuit for %s re-opened after failed probe", self.url)
        elif self._consecutive_failures >= self.failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_at = self.clock()
            logger.error(
                "Circuit for %s opened after %d consecutive failures",
                self.url,
                self._consecutive_failures,
            )

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` under breaker protection.

        Args:
            operation: Zero-argument callable returning an awaitable.

        Returns:
            Whatever the operation returns.

        Raises:
            CircuitOpenError: The breaker refused the call; the operation
                was not invoked.
            Exception: Any exception from the operation, re-raised
                unchanged after being counted as a failure.
        """
        is_probe = self._before_call()
        try:
            result = await operation()
        except Exception:
            self._record_failure()
            raise
        finally:
            if is_probe:
                self._probe_in_flight = False
        self._record_success()
        return result

    def reset(self) -> None:
        """Manually close the breaker."""
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = None
        self._probe_in_flight = False

    def snapshot(self) -> CircuitSnapshot:
        state = self.state
        return CircuitSnapshot(
            url=self.url,
            state=state,
            consecutive_failures=self._consecutive_failures,
            opened_at=self._opened_at,
            next_probe_at=self.next_probe_at,
        )


class CircuitBreakerRegistry:
    """Owns one breaker per destination URL.

    Breakers are created lazily on first use and live as long as the
    registry. State is process-local and not persisted.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, url: str) -> CircuitBreaker | None:
        return self._breakers.get(url)

    def get_or_create(self, url: str) -> CircuitBreaker:
        """Return the breaker for ``url``, creating it on first use."""
        breaker = self._breakers.get(url)
        if breaker is None:
            breaker = CircuitBreaker(
                url=url,
                failure_threshold=self.failure_threshold,
                cooldown_seconds=self.cooldown_seconds,
                clock=self._clock,
            )
            self._breakers[url] = breaker
            logger.debug("Created circuit breaker for %s", url)
        return breaker

    def reset(self, url: str) -> bool:
        """Reset one breaker. Returns False if the URL has none."""
        breaker = self._breakers.get(url)
        if breaker is None:
            return False
        breaker.reset()
        logger.info("Reset circuit breaker for %s", url)
        return True

    def reset_all(self) -> None:
        """Forget every breaker."""
        count = len(self._breakers)
        self._breakers.clear()
        logger.info("Reset all circuit breakers (%d)", count)

    def states(self) -> dict[str, CircuitSnapshot]:
        """Snapshot of every tracked URL."""
        return {url: breaker.snapshot() for url, breaker in self._breakers.items()}

    def __len__(self) -> int:
        return len(self._breakers)

    def __contains__(self, url: object) -> bool:
        return url in self._breakers
