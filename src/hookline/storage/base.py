"""Storage interface consumed by the delivery engine.

The engine never holds a lock on the store. Every mutation it performs is a
single read-modify-write through one of the ``update_*`` methods, which are
version-checked: the record passed in must carry the version that was read,
otherwise ``ConcurrencyError`` is raised and nothing is written.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from hookline.models import (
    DeadLetterEntry,
    DeliveryStatus,
    WebhookConfig,
    WebhookDelivery,
    WebhookEvent,
)


class WebhookStore(ABC):
    """Abstract persistence for configs, events, deliveries and dead letters.

    Lookups exclude soft-deleted records unless noted otherwise.
    """

    async def initialize(self) -> None:
        """Prepare the backend (connections, collections)."""

    async def close(self) -> None:
        """Release backend resources."""

    async def __aenter__(self) -> WebhookStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # Webhook configs

    @abstractmethod
    async def store_webhook(self, webhook: WebhookConfig) -> str:
        """Insert a new webhook config. Returns its ID."""

    @abstractmethod
    async def get_webhook(self, webhook_id: str) -> WebhookConfig | None:
        """Get a config by ID, or None if missing or soft-deleted."""

    @abstractmethod
    async def list_webhooks(self, active_only: bool = False) -> list[WebhookConfig]:
        """List non-deleted configs."""

    @abstractmethod
    async def update_webhook(self, webhook: WebhookConfig) -> WebhookConfig:
        """Version-checked update. Returns the stored record."""

    async def get_webhooks_for_event(self, event_type: str) -> list[WebhookConfig]:
        """Active, non-deleted configs subscribed to ``event_type``."""
        webhooks = await self.list_webhooks(active_only=True)
        return [wh for wh in webhooks if wh.subscribes_to(event_type)]

    async def delete_webhook(self, webhook_id: str) -> bool:
        """Soft-delete a config. Returns False if it was not found."""
        webhook = await self.get_webhook(webhook_id)
        if webhook is None:
            return False
        webhook.soft_delete()
        await self.update_webhook(webhook)
        return True

    # Events

    @abstractmethod
    async def store_event(self, event: WebhookEvent) -> str:
        """Insert a new event. Returns its ID."""

    @abstractmethod
    async def get_event(self, event_id: str) -> WebhookEvent | None:
        """Get an event by ID."""

    @abstractmethod
    async def update_event(self, event: WebhookEvent) -> WebhookEvent:
        """Version-checked update. Returns the stored record."""

    @abstractmethod
    async def count_events(self, processed: bool | None = None) -> int:
        """Count events, optionally filtered by ``processed``."""

    # Deliveries

    @abstractmethod
    async def create_delivery(self, delivery: WebhookDelivery) -> str:
        """Insert a new delivery.

        Raises:
            DuplicateDeliveryError: A non-deleted delivery already uses the
                same idempotency key.
        """

    @abstractmethod
    async def get_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        """Get a delivery by ID."""

    @abstractmethod
    async def get_delivery_by_idempotency_key(self, key: str) -> WebhookDelivery | None:
        """Get the live delivery for an idempotency key."""

    @abstractmethod
    async def update_delivery(self, delivery: WebhookDelivery) -> WebhookDelivery:
        """Version-checked update. Returns the stored record."""

    @abstractmethod
    async def get_pending_deliveries(
        self,
        now: datetime,
        limit: int = 500,
    ) -> list[WebhookDelivery]:
        """Pending deliveries whose ``next_attempt_at`` is at or before ``now``.

        Ordered by ``next_attempt_at`` so the oldest obligations go first.
        """

    @abstractmethod
    async def get_deliveries_for_event(self, event_id: str) -> list[WebhookDelivery]:
        """All live deliveries of one event."""

    @abstractmethod
    async def get_deliveries_for_webhook(self, webhook_id: str) -> list[WebhookDelivery]:
        """All live deliveries addressed to one config, newest first."""

    @abstractmethod
    async def count_deliveries(self, status: DeliveryStatus | None = None) -> int:
        """Count live deliveries, optionally filtered by status."""

    # Dead letters

    @abstractmethod
    async def store_dead_letter(self, entry: DeadLetterEntry) -> str:
        """Insert a dead letter entry. Returns its ID."""

    @abstractmethod
    async def get_dead_letter(self, entry_id: str) -> DeadLetterEntry | None:
        """Get a dead letter entry by ID."""

    @abstractmethod
    async def list_dead_letters(self, limit: int = 100) -> list[DeadLetterEntry]:
        """Live dead letter entries, most recent failure first."""

    @abstractmethod
    async def get_dead_letters_for_webhook(self, webhook_id: str) -> list[DeadLetterEntry]:
        """Live entries for one config."""

    @abstractmethod
    async def get_dead_letters_for_event_type(self, event_type: str) -> list[DeadLetterEntry]:
        """Live entries for one event type."""

    @abstractmethod
    async def update_dead_letter(self, entry: DeadLetterEntry) -> DeadLetterEntry:
        """Version-checked update. Only soft delete uses this."""

    @abstractmethod
    async def count_dead_letters(self) -> int:
        """Count live dead letter entries."""

    async def delete_dead_letter(self, entry_id: str) -> bool:
        """Soft-delete a dead letter entry. Returns False if not found."""
        entry = await self.get_dead_letter(entry_id)
        if entry is None:
            return False
        entry.soft_delete()
        await self.update_dead_letter(entry)
        return True
