"""Monitoring mixin for WebhookService.

Delivery counters come from storage. Breaker state is process-local, so
``circuit_breaker_states`` only reflects this process.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hookline.models import DeliveryStats

if TYPE_CHECKING:
    from hookline.storage import WebhookStore
    from hookline.webhooks import CircuitBreakerRegistry, CircuitSnapshot


class MonitoringMixin:
    """Mixin providing delivery statistics and breaker controls.

    Expects these attributes from the base class:
    - store: WebhookStore
    - breakers: CircuitBreakerRegistry
    """

    store: WebhookStore
    breakers: CircuitBreakerRegistry

    async def get_delivery_stats(self) -> DeliveryStats:
        """Snapshot of event, delivery and dead letter counts."""
        return DeliveryStats(
            total_events=await self.store.count_events(),
            pending_events=await self.store.count_events(processed=False),
            total_deliveries=await self.store.count_deliveries(),
            delivered=await self.store.count_deliveries("delivered"),
            failed=await self.store.count_deliveries("failed"),
            pending=await self.store.count_deliveries("pending"),
            dead_letters=await self.store.count_dead_letters(),
        )

    def circuit_breaker_states(self) -> dict[str, CircuitSnapshot]:
        """Current state of every breaker created so far, keyed by URL."""
        return self.breakers.states()

    def reset_circuit_breaker(self, url: str) -> bool:
        """Close the breaker for ``url``. Returns False if it has none."""
        return self.breakers.reset(url)
