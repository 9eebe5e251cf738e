"""Hookline: webhook delivery you can rely on.

Turns domain events into signed HTTP notifications with idempotent
delivery creation, escalating retries, per-destination circuit breakers
and a dead letter queue for deliveries that never succeed.

Quick Start:
    from hookline.service import WebhookService

    async with WebhookService.create() as hooks:
        await hooks.register_webhook(
            url="https://example.com/hooks",
            events=["grade.created"],
            secret="s3cret",
        )

        # From domain code
        await hooks.trigger_event_safely("grade.created", {"gradeId": "g1"})

        # From a scheduler
        summary = await hooks.process_pending_deliveries()

Records:
    - WebhookConfig: Subscriber registration
    - WebhookEvent: Something that happened
    - WebhookDelivery: One subscriber's obligation for one event
    - DeadLetterEntry: A delivery that exhausted its retries
"""

__version__ = "0.1.0"

# Configuration
from .config import CircuitBreakerSettings, RetryPolicy, Settings, settings

# Exceptions
from .exceptions import (
    CircuitOpenError,
    ConcurrencyError,
    ConfigurationError,
    DuplicateDeliveryError,
    HooklineError,
    NotFoundError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)

# Models
from .models import (
    DeadLetterEntry,
    DeliveryStats,
    PingResult,
    ProcessingSummary,
    PublishResult,
    WebhookConfig,
    WebhookDelivery,
    WebhookEvent,
    WebhookPayload,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "RetryPolicy",
    "CircuitBreakerSettings",
    "settings",
    # Exceptions
    "HooklineError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "ConcurrencyError",
    "DuplicateDeliveryError",
    "CircuitOpenError",
    "ConfigurationError",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "unbind_context",
    # Models
    "WebhookConfig",
    "WebhookEvent",
    "WebhookDelivery",
    "DeadLetterEntry",
    "WebhookPayload",
    "PublishResult",
    "ProcessingSummary",
    "DeliveryStats",
    "PingResult",
]
