"""Core Hookline service layer.

This module provides the WebhookService that wires storage, circuit
breakers, publishing, delivery and batch processing behind one object.

Example:
    ```python
    from hookline.service import WebhookService

    async with WebhookService.create() as hooks:
        await hooks.register_webhook(
            url="https://example.com/hooks",
            events=["grade.created"],
            secret="s3cret",
        )
        await hooks.trigger_event("grade.created", {"gradeId": "g1"})
        summary = await hooks.process_pending_deliveries()
        print(f"Delivered {summary.delivered} of {summary.found}")
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from hookline.config import Settings
from hookline.exceptions import ConfigurationError
from hookline.logging import configure_from_settings
from hookline.models import ProcessingSummary, PublishResult, WebhookDelivery
from hookline.storage import InMemoryWebhookStore, QdrantWebhookStore, WebhookStore
from hookline.webhooks import (
    BatchProcessor,
    CircuitBreakerRegistry,
    DeliveryExecutor,
    EventPublisher,
)

from .admin import AdminMixin
from .dead_letters import DeadLetterMixin
from .monitoring import MonitoringMixin


def get_store(settings: Settings) -> WebhookStore:
    """Build the storage backend selected by ``settings.storage_backend``."""
    if settings.storage_backend == "qdrant":
        return QdrantWebhookStore(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            prefix=settings.collection_prefix,
        )
    if settings.storage_backend == "memory":
        return InMemoryWebhookStore()
    raise ConfigurationError(f"Unknown storage backend: {settings.storage_backend}")


@dataclass
class WebhookService(AdminMixin, DeadLetterMixin, MonitoringMixin):
    """High-level webhook service.

    This service provides:
    - trigger_event(): Record an event and queue deliveries to subscribers
    - process_pending_deliveries(): Attempt every due delivery
    - register/update/delete webhooks and send test pings
    - dead letter inspection and replay
    - delivery statistics and circuit breaker introspection

    Uses dependency injection for storage, breakers and the HTTP client,
    making it easy to test and configure.

    Attributes:
        store: Storage backend.
        settings: Configuration settings.
        breaker_registry: Per-URL circuit breakers to share. Built from
            settings if None.
        http_client: Shared HTTP client. Each request opens its own if None.
        breakers: The registry in use.
    """

    store: WebhookStore
    settings: Settings
    breaker_registry: CircuitBreakerRegistry | None = field(default=None, repr=False)
    http_client: httpx.AsyncClient | None = field(default=None)

    breakers: CircuitBreakerRegistry = field(init=False, repr=False)
    publisher: EventPublisher = field(init=False, repr=False)
    executor: DeliveryExecutor = field(init=False, repr=False)
    processor: BatchProcessor = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Wire the engine components after dataclass construction."""
        if self.breaker_registry is not None:
            self.breakers = self.breaker_registry
        else:
            self.breakers = CircuitBreakerRegistry(
                failure_threshold=self.settings.circuit_breaker.failure_threshold,
                cooldown_seconds=self.settings.circuit_breaker.cooldown_seconds,
            )
        self.publisher = EventPublisher(self.store)
        self.executor = DeliveryExecutor(
            self.store,
            self.breakers,
            retry_policy=self.settings.retry,
            user_agent=self.settings.user_agent,
            http_client=self.http_client,
        )
        self.processor = BatchProcessor(
            self.store,
            self.executor,
            concurrency_limit=self.settings.retry.concurrency_limit,
            batch_limit=self.settings.retry.batch_limit,
        )

    @classmethod
    def create(cls, settings: Settings | None = None) -> WebhookService:
        """Create a WebhookService with default dependencies.

        Also configures logging from the settings.

        Example:
            ```python
            # In-memory store (default)
            async with WebhookService.create() as hooks:
                ...

            # Qdrant store
            settings = Settings(storage_backend="qdrant")
            async with WebhookService.create(settings) as hooks:
                ...
            ```
        """
        if settings is None:
            settings = Settings()

        configure_from_settings(settings)
        return cls(store=get_store(settings), settings=settings)

    async def initialize(self) -> None:
        """Initialize the service (storage collections, etc.)."""
        await self.store.initialize()

    async def close(self) -> None:
        """Release storage resources."""
        await self.store.close()

    async def __aenter__(self) -> WebhookService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def trigger_event(self, event_type: str, data: dict[str, Any]) -> PublishResult:
        """Record an event and create one pending delivery per subscriber.

        Storage errors propagate. Use ``trigger_event_safely`` from code
        that must not fail because of webhooks.
        """
        return await self.publisher.trigger_event(event_type, data)

    async def trigger_event_safely(
        self, event_type: str, data: dict[str, Any]
    ) -> PublishResult | None:
        """Best-effort ``trigger_event``: logs and returns None on any error."""
        return await self.publisher.trigger_event_safely(event_type, data)

    async def process_pending_deliveries(
        self, now: datetime | None = None
    ) -> ProcessingSummary:
        """Attempt every delivery that is due, in bounded batches."""
        return await self.processor.process_pending_deliveries(now)

    async def get_event_deliveries(self, event_id: str) -> list[WebhookDelivery]:
        """All deliveries of one event, oldest first."""
        return await self.store.get_deliveries_for_event(event_id)

    async def get_webhook_deliveries(self, webhook_id: str) -> list[WebhookDelivery]:
        """All deliveries addressed to one webhook, newest first."""
        return await self.store.get_deliveries_for_webhook(webhook_id)
