"""Hookline service layer.

Provides the high-level WebhookService for publishing events, processing
deliveries and operating the dead letter queue.

Example:
    ```python
    from hookline.service import WebhookService

    async with WebhookService.create() as hooks:
        await hooks.trigger_event("user.created", {"userId": "u1"})
        await hooks.process_pending_deliveries()
    ```
"""

from .base import WebhookService, get_store

__all__ = [
    "WebhookService",
    "get_store",
]
