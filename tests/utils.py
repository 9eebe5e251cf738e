"""Test helpers shared across test modules."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx

from hookline.config import RetryPolicy
from hookline.storage import WebhookStore
from hookline.webhooks import CircuitBreakerRegistry, DeliveryExecutor

Handler = Callable[[httpx.Request], Any]


class FakeClock:
    """Manually advanced monotonic clock for breaker tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingHandler:
    """MockTransport handler that records requests and replays responses.

    Each queued item is an ``httpx.Response``, an exception to raise, or a
    status code. The last item repeats once the queue is exhausted.
    """

    def __init__(self, *responses: httpx.Response | Exception | int) -> None:
        self.responses: list[httpx.Response | Exception | int] = list(responses) or [200]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, int):
            return httpx.Response(item, text="ok" if item < 300 else f"error {item}")
        # Fresh copy so a repeated response is never reused after being closed
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)


def make_client(handler: Handler) -> httpx.AsyncClient:
    """AsyncClient whose requests never leave the process."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def build_executor(
    store: WebhookStore,
    breakers: CircuitBreakerRegistry,
    retry_policy: RetryPolicy,
    handler: Handler,
) -> DeliveryExecutor:
    """Executor wired to a MockTransport handler."""
    return DeliveryExecutor(
        store,
        breakers,
        retry_policy=retry_policy,
        user_agent="Hookline-Webhook/1.0",
        http_client=make_client(handler),
    )
