"""Webhook delivery engine for Hookline.

Publishing records an event and one pending delivery per subscriber. A
scheduler then calls the batch processor, which attempts due deliveries
through per-URL circuit breakers, reschedules failures on an escalating
delay table and archives exhausted deliveries to the dead letter queue.

Example:
    ```python
    from hookline.webhooks import (
        BatchProcessor,
        CircuitBreakerRegistry,
        DeliveryExecutor,
        EventPublisher,
    )

    publisher = EventPublisher(store)
    await publisher.trigger_event("grade.created", {"gradeId": "g1"})

    executor = DeliveryExecutor(store, CircuitBreakerRegistry())
    summary = await BatchProcessor(store, executor).process_pending_deliveries()
    ```
"""

from .breaker import CircuitBreaker, CircuitBreakerRegistry, CircuitSnapshot, CircuitState
from .dead_letter import DeadLetterArchiver
from .delivery import DeliveryExecutor, build_payload
from .processor import BatchProcessor
from .publisher import EventPublisher
from .signing import compute_signature, verify_signature
from .urls import validate_webhook_url

__all__ = [
    "BatchProcessor",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitSnapshot",
    "CircuitState",
    "DeadLetterArchiver",
    "DeliveryExecutor",
    "EventPublisher",
    "build_payload",
    "compute_signature",
    "validate_webhook_url",
    "verify_signature",
]
