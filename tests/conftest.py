"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add tests directory to path so utils can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

from hookline.config import CircuitBreakerSettings, RetryPolicy, Settings  # noqa: E402
from hookline.models import WebhookConfig, WebhookDelivery, WebhookEvent  # noqa: E402
from hookline.storage import InMemoryWebhookStore  # noqa: E402
from hookline.webhooks import CircuitBreakerRegistry  # noqa: E402
from utils import FakeClock  # noqa: E402


@pytest.fixture
def store() -> InMemoryWebhookStore:
    """Create a fresh in-memory store."""
    return InMemoryWebhookStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def breakers(clock: FakeClock) -> CircuitBreakerRegistry:
    """Breaker registry on the fake clock with default thresholds."""
    return CircuitBreakerRegistry(failure_threshold=5, cooldown_seconds=60.0, clock=clock)


@pytest.fixture
def retry_policy() -> RetryPolicy:
    """Policy with a low retry ceiling so tests reach the dead letter queue quickly."""
    return RetryPolicy(max_retries=3)


@pytest.fixture
def test_settings(retry_policy: RetryPolicy) -> Settings:
    """Settings isolated from the environment and .env files."""
    return Settings(
        _env_file=None,
        env="test",
        retry=retry_policy,
        circuit_breaker=CircuitBreakerSettings(failure_threshold=5, cooldown_seconds=60.0),
    )


@pytest.fixture
def sample_config() -> WebhookConfig:
    """Create a sample webhook configuration."""
    return WebhookConfig(
        id="whk_test123",
        url="https://example.com/webhook",
        events=["grade.created", "user.created"],
        secret="test_secret_16chars",
    )


@pytest.fixture
def sample_event() -> WebhookEvent:
    """Create a sample webhook event."""
    return WebhookEvent(
        id="evt_test456",
        event_type="grade.created",
        data={"gradeId": "g1", "score": 95},
    )


@pytest_asyncio.fixture
async def seeded_delivery(
    store: InMemoryWebhookStore,
    sample_config: WebhookConfig,
    sample_event: WebhookEvent,
) -> WebhookDelivery:
    """Store the sample config and event plus one pending delivery."""
    await store.store_webhook(sample_config)
    await store.store_event(sample_event)
    delivery = WebhookDelivery.for_event(sample_event.id, sample_config.id)
    await store.create_delivery(delivery)
    return delivery
