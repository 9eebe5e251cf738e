"""Storage backends for Hookline.

Persists webhook configs, events, deliveries and dead letters behind the
``WebhookStore`` interface. Two backends ship with the package:

- InMemoryWebhookStore: dictionaries, for tests and single-process use
- QdrantWebhookStore: one Qdrant collection per record type

Example:
    ```python
    from hookline.storage import QdrantWebhookStore

    async with QdrantWebhookStore(url="http://localhost:6333") as store:
        await store.store_webhook(config)
        due = await store.get_pending_deliveries(now)
    ```
"""

from .base import WebhookStore
from .memory import InMemoryWebhookStore
from .qdrant import COLLECTION_NAMES, QdrantWebhookStore
from .retry import is_transient_storage_error, qdrant_retry

__all__ = [
    "WebhookStore",
    "InMemoryWebhookStore",
    "QdrantWebhookStore",
    "COLLECTION_NAMES",
    "is_transient_storage_error",
    "qdrant_retry",
]
