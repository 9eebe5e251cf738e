"""Dead letter queue mixin for WebhookService.

Operators inspect archived deliveries here and either discard them or
replay them once the destination is healthy again.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hookline.exceptions import NotFoundError
from hookline.models import DeadLetterEntry, WebhookDelivery, build_idempotency_key

if TYPE_CHECKING:
    from hookline.storage import WebhookStore

logger = logging.getLogger(__name__)


class DeadLetterMixin:
    """Mixin providing dead letter inspection and replay.

    Expects these attributes from the base class:
    - store: WebhookStore
    """

    store: WebhookStore

    async def list_dead_letters(self, limit: int = 100) -> list[DeadLetterEntry]:
        """Live entries, most recent failure first."""
        return await self.store.list_dead_letters(limit=limit)

    async def get_dead_letter(self, entry_id: str) -> DeadLetterEntry:
        """Get one entry.

        Raises:
            NotFoundError: No live entry with that ID.
        """
        entry = await self.store.get_dead_letter(entry_id)
        if entry is None:
            raise NotFoundError("dead_letter", entry_id)
        return entry

    async def get_dead_letters_for_webhook(self, webhook_id: str) -> list[DeadLetterEntry]:
        return await self.store.get_dead_letters_for_webhook(webhook_id)

    async def get_dead_letters_for_event_type(self, event_type: str) -> list[DeadLetterEntry]:
        return await self.store.get_dead_letters_for_event_type(event_type)

    async def delete_dead_letter(self, entry_id: str) -> None:
        """Soft-delete an entry.

        Raises:
            NotFoundError: No live entry with that ID.
        """
        if not await self.store.delete_dead_letter(entry_id):
            raise NotFoundError("dead_letter", entry_id)
        logger.info("Dead letter entry %s deleted", entry_id)

    async def replay_dead_letter(self, entry_id: str) -> WebhookDelivery:
        """Queue an archived delivery for another full round of attempts.

        The original delivery is reset to pending with a fresh retry budget
        and is due immediately. If it no longer exists a new one is created.
        The entry is soft-deleted afterwards, so a delivery that fails again
        produces a new entry.

        Returns:
            The pending delivery.

        Raises:
            NotFoundError: The entry, its event or its webhook is gone.
        """
        entry = await self.get_dead_letter(entry_id)

        if await self.store.get_event(entry.event_id) is None:
            raise NotFoundError("event", entry.event_id)
        if await self.store.get_webhook(entry.webhook_config_id) is None:
            raise NotFoundError("webhook", entry.webhook_config_id)

        delivery: WebhookDelivery | None = None
        if entry.delivery_id:
            delivery = await self.store.get_delivery(entry.delivery_id)
        if delivery is None:
            delivery = await self.store.get_delivery_by_idempotency_key(
                build_idempotency_key(entry.event_id, entry.webhook_config_id)
            )

        if delivery is None:
            delivery = WebhookDelivery.for_event(entry.event_id, entry.webhook_config_id)
            await self.store.create_delivery(delivery)
        elif delivery.status == "failed":
            delivery.reset_for_replay()
            delivery = await self.store.update_delivery(delivery)

        await self.store.delete_dead_letter(entry.id)
        logger.info(
            "Dead letter entry %s replayed as delivery %s (%s)",
            entry.id,
            delivery.id,
            delivery.status,
        )
        return delivery
