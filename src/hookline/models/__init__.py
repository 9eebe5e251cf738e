"""Record and result models for Hookline.

Records (persisted, versioned, soft-deletable):
    - WebhookConfig: Subscriber registration
    - WebhookEvent: Something that happened in the domain
    - WebhookDelivery: One subscriber's obligation for one event
    - DeadLetterEntry: Snapshot of an exhausted delivery

Supporting types:
    - WebhookPayload: Wire body sent to subscribers
    - PublishResult, ProcessingSummary, DeliveryStats, PingResult
"""

from .base import StoredRecord, generate_id, utc_now
from .webhook import (
    MAX_ERROR_LENGTH,
    DeadLetterEntry,
    DeliveryStats,
    DeliveryStatus,
    PingResult,
    ProcessingSummary,
    PublishResult,
    WebhookConfig,
    WebhookDelivery,
    WebhookEvent,
    WebhookPayload,
    build_idempotency_key,
)

__all__ = [
    # Base
    "StoredRecord",
    "generate_id",
    "utc_now",
    # Records
    "WebhookConfig",
    "WebhookEvent",
    "WebhookDelivery",
    "DeadLetterEntry",
    "DeliveryStatus",
    # Wire / results
    "WebhookPayload",
    "PublishResult",
    "ProcessingSummary",
    "DeliveryStats",
    "PingResult",
    # Helpers
    "MAX_ERROR_LENGTH",
    "build_idempotency_key",
]
