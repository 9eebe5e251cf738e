"""In-process storage backend.

Keeps records in dictionaries with secondary indexes for the lookups the
engine needs. No method awaits anything, so each call runs to completion
within one event loop step; that makes the idempotency check in
``create_delivery`` atomic with the insert.

Records are copied on the way in and on the way out, so callers can never
mutate stored state without going through a version-checked update.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import TypeVar

from hookline.exceptions import ConcurrencyError, DuplicateDeliveryError, StorageError
from hookline.models import (
    DeadLetterEntry,
    DeliveryStatus,
    StoredRecord,
    WebhookConfig,
    WebhookDelivery,
    WebhookEvent,
)

from .base import WebhookStore

RecordT = TypeVar("RecordT", bound=StoredRecord)


def _copy(record: RecordT) -> RecordT:
    return record.model_copy(deep=True)


class InMemoryWebhookStore(WebhookStore):
    """Dictionary-backed WebhookStore.

    Suitable for tests, single-process deployments and local development.
    Contents are lost when the process exits.
    """

    def __init__(self) -> None:
        self._webhooks: dict[str, WebhookConfig] = {}
        self._events: dict[str, WebhookEvent] = {}
        self._deliveries: dict[str, WebhookDelivery] = {}
        self._dead_letters: dict[str, DeadLetterEntry] = {}

        # Secondary indexes
        self._delivery_by_key: dict[str, str] = {}
        self._deliveries_by_event: dict[str, set[str]] = defaultdict(set)
        self._deliveries_by_webhook: dict[str, set[str]] = defaultdict(set)

    @staticmethod
    def _insert(table: dict[str, RecordT], record: RecordT, kind: str) -> str:
        if record.id in table:
            raise StorageError(f"{kind} already exists: {record.id}")
        table[record.id] = _copy(record)
        return record.id

    @staticmethod
    def _update(table: dict[str, RecordT], record: RecordT, kind: str) -> RecordT:
        stored = table.get(record.id)
        if stored is None or stored.version != record.version:
            raise ConcurrencyError(kind, record.id)
        updated = record.model_copy(deep=True, update={"version": stored.version + 1})
        table[record.id] = updated
        return _copy(updated)

    @staticmethod
    def _live(table: dict[str, RecordT], record_id: str) -> RecordT | None:
        record = table.get(record_id)
        if record is None or record.is_deleted:
            return None
        return _copy(record)

    # Webhook configs

    async def store_webhook(self, webhook: WebhookConfig) -> str:
        return self._insert(self._webhooks, webhook, "webhook")

    async def get_webhook(self, webhook_id: str) -> WebhookConfig | None:
        return self._live(self._webhooks, webhook_id)

    async def list_webhooks(self, active_only: bool = False) -> list[WebhookConfig]:
        return [
            _copy(wh)
            for wh in self._webhooks.values()
            if not wh.is_deleted and (wh.active or not active_only)
        ]

    async def update_webhook(self, webhook: WebhookConfig) -> WebhookConfig:
        return self._update(self._webhooks, webhook, "webhook")

    # Events

    async def store_event(self, event: WebhookEvent) -> str:
        return self._insert(self._events, event, "event")

    async def get_event(self, event_id: str) -> WebhookEvent | None:
        return self._live(self._events, event_id)

    async def update_event(self, event: WebhookEvent) -> WebhookEvent:
        return self._update(self._events, event, "event")

    async def count_events(self, processed: bool | None = None) -> int:
        return sum(
            1
            for event in self._events.values()
            if not event.is_deleted and (processed is None or event.processed == processed)
        )

    # Deliveries

    async def create_delivery(self, delivery: WebhookDelivery) -> str:
        existing_id = self._delivery_by_key.get(delivery.idempotency_key)
        if existing_id is not None:
            existing = self._deliveries.get(existing_id)
            if existing is not None and not existing.is_deleted:
                raise DuplicateDeliveryError(delivery.idempotency_key)

        self._insert(self._deliveries, delivery, "delivery")
        self._delivery_by_key[delivery.idempotency_key] = delivery.id
        self._deliveries_by_event[delivery.event_id].add(delivery.id)
        self._deliveries_by_webhook[delivery.webhook_config_id].add(delivery.id)
        return delivery.id

    async def get_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        return self._live(self._deliveries, delivery_id)

    async def get_delivery_by_idempotency_key(self, key: str) -> WebhookDelivery | None:
        delivery_id = self._delivery_by_key.get(key)
        if delivery_id is None:
            return None
        return self._live(self._deliveries, delivery_id)

    async def update_delivery(self, delivery: WebhookDelivery) -> WebhookDelivery:
        updated = self._update(self._deliveries, delivery, "delivery")
        if updated.is_deleted and self._delivery_by_key.get(updated.idempotency_key) == updated.id:
            del self._delivery_by_key[updated.idempotency_key]
        return updated

    async def get_pending_deliveries(
        self,
        now: datetime,
        limit: int = 500,
    ) -> list[WebhookDelivery]:
        due = [d for d in self._deliveries.values() if d.is_due(now)]
        due.sort(key=lambda d: d.next_attempt_at or d.created_at)
        return [_copy(d) for d in due[:limit]]

    def _live_deliveries(self, ids: set[str]) -> list[WebhookDelivery]:
        return [
            _copy(self._deliveries[i]) for i in ids if not self._deliveries[i].is_deleted
        ]

    async def get_deliveries_for_event(self, event_id: str) -> list[WebhookDelivery]:
        deliveries = self._live_deliveries(self._deliveries_by_event.get(event_id, set()))
        deliveries.sort(key=lambda d: d.created_at)
        return deliveries

    async def get_deliveries_for_webhook(self, webhook_id: str) -> list[WebhookDelivery]:
        deliveries = self._live_deliveries(self._deliveries_by_webhook.get(webhook_id, set()))
        deliveries.sort(key=lambda d: d.created_at, reverse=True)
        return deliveries

    async def count_deliveries(self, status: DeliveryStatus | None = None) -> int:
        return sum(
            1
            for d in self._deliveries.values()
            if not d.is_deleted and (status is None or d.status == status)
        )

    # Dead letters

    async def store_dead_letter(self, entry: DeadLetterEntry) -> str:
        return self._insert(self._dead_letters, entry, "dead_letter")

    async def get_dead_letter(self, entry_id: str) -> DeadLetterEntry | None:
        return self._live(self._dead_letters, entry_id)

    def _live_dead_letters(self) -> list[DeadLetterEntry]:
        entries = [_copy(e) for e in self._dead_letters.values() if not e.is_deleted]
        entries.sort(key=lambda e: e.failed_at, reverse=True)
        return entries

    async def list_dead_letters(self, limit: int = 100) -> list[DeadLetterEntry]:
        return self._live_dead_letters()[:limit]

    async def get_dead_letters_for_webhook(self, webhook_id: str) -> list[DeadLetterEntry]:
        return [e for e in self._live_dead_letters() if e.webhook_config_id == webhook_id]

    async def get_dead_letters_for_event_type(self, event_type: str) -> list[DeadLetterEntry]:
        return [e for e in self._live_dead_letters() if e.event_type == event_type]

    async def update_dead_letter(self, entry: DeadLetterEntry) -> DeadLetterEntry:
        return self._update(self._dead_letters, entry, "dead_letter")

    async def count_dead_letters(self) -> int:
        return sum(1 for e in self._dead_letters.values() if not e.is_deleted)
