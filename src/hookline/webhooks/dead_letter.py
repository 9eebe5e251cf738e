"""Dead letter archival for deliveries that exhausted their retries."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hookline.models import DeadLetterEntry, utc_now

if TYPE_CHECKING:
    from hookline.models import WebhookConfig, WebhookDelivery
    from hookline.storage import WebhookStore

logger = logging.getLogger(__name__)


class DeadLetterArchiver:
    """Writes a permanent snapshot of an undeliverable event.

    The snapshot copies the event type, destination URL and payload, so it
    stays meaningful after the config is edited or the event is deleted.
    """

    def __init__(self, store: WebhookStore) -> None:
        self._store = store

    async def archive(
        self,
        delivery: WebhookDelivery,
        config: WebhookConfig,
        status_code: int,
        error_message: str,
    ) -> DeadLetterEntry | None:
        """Archive an exhausted delivery.

        Args:
            delivery: The delivery that ran out of attempts, with ``attempts``
                already counting the final one.
            config: Subscriber config the delivery was addressed to.
            status_code: Last HTTP status, 0 when no response arrived.
            error_message: Last error message.

        Returns:
            The stored entry, or None if the event no longer exists.
        """
        event = await self._store.get_event(delivery.event_id)
        if event is None:
            logger.warning(
                "Cannot archive delivery %s: event %s not found",
                delivery.id,
                delivery.event_id,
            )
            return None

        entry = DeadLetterEntry(
            event_id=event.id,
            webhook_config_id=config.id,
            delivery_id=delivery.id,
            event_type=event.event_type,
            url=config.url,
            payload=event.data,
            status=max(status_code, 0),
            attempts=delivery.attempts,
            error_message=error_message,
            failed_at=utc_now(),
        )
        await self._store.store_dead_letter(entry)

        logger.warning(
            "Delivery %s archived to dead letter queue as %s after %d attempts (%s to %s)",
            delivery.id,
            entry.id,
            entry.attempts,
            entry.event_type,
            entry.url,
        )
        return entry
