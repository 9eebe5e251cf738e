"""Turns domain events into persisted delivery obligations.

Publishing never sends HTTP. It records the event and one pending delivery
per subscriber; the batch processor does the sending.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from hookline.exceptions import DuplicateDeliveryError
from hookline.models import (
    PublishResult,
    WebhookDelivery,
    WebhookEvent,
    build_idempotency_key,
)

if TYPE_CHECKING:
    from hookline.models import WebhookConfig
    from hookline.storage import WebhookStore

logger = logging.getLogger(__name__)


class EventPublisher:
    """Records events and fans them out to subscribers.

    Example:
        ```python
        publisher = EventPublisher(store)
        result = await publisher.trigger_event("grade.created", {"gradeId": "g1"})
        ```
    """

    def __init__(self, store: WebhookStore) -> None:
        self._store = store

    async def trigger_event(self, event_type: str, data: dict[str, Any]) -> PublishResult:
        """Publish an event to every active subscriber of ``event_type``.

        Nothing is persisted when nobody subscribes. Storage errors
        propagate to the caller.

        Args:
            event_type: Event type, e.g. "user.created".
            data: Event payload delivered as-is.

        Returns:
            The stored event (if any), the deliveries created and the number
            of subscribers skipped because a delivery already existed.
        """
        configs = await self._store.get_webhooks_for_event(event_type)
        if not configs:
            logger.debug("No webhooks subscribed to event %s", event_type)
            return PublishResult()

        event = WebhookEvent(event_type=event_type, data=data)
        await self._store.store_event(event)

        result = await self.create_deliveries(event, configs)
        logger.info(
            "Event %s (%s) queued for %d webhooks",
            event.id,
            event_type,
            len(result.deliveries),
        )
        return result

    async def create_deliveries(
        self,
        event: WebhookEvent,
        configs: list[WebhookConfig],
    ) -> PublishResult:
        """Create one pending delivery per config, skipping existing ones."""
        created: list[WebhookDelivery] = []
        skipped = 0

        for config in configs:
            key = build_idempotency_key(event.id, config.id)
            existing = await self._store.get_delivery_by_idempotency_key(key)
            if existing is not None:
                logger.debug("Delivery already exists for %s, skipping", key)
                skipped += 1
                continue

            delivery = WebhookDelivery.for_event(event.id, config.id)
            try:
                await self._store.create_delivery(delivery)
            except DuplicateDeliveryError:
                logger.debug("Delivery for %s created concurrently, skipping", key)
                skipped += 1
                continue
            created.append(delivery)

        return PublishResult(event=event, deliveries=created, skipped=skipped)

    async def trigger_event_safely(
        self, event_type: str, data: dict[str, Any]
    ) -> PublishResult | None:
        """Best-effort ``trigger_event`` for domain code.

        A failure to publish must never fail the domain operation that
        produced the event, so any error is logged and None is returned.
        """
        try:
            return await self.trigger_event(event_type, data)
        except Exception:
            logger.exception("Failed to trigger webhook event %s", event_type)
            return None
