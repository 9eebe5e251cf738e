"""Qdrant storage backend.

Stores each record type in its own collection, using payload filters for
every lookup. No semantic search is needed, so every point carries the same
one-dimensional placeholder vector.

Delivery points are addressed by a hash of the idempotency key rather than
the delivery ID. Two writers racing to create the same delivery therefore
land on the same point, and at most one delivery record can exist per key.

Version checks read the stored version and then upsert. Qdrant has no
conditional write, so two writers interleaving between those calls can both
succeed; the engine tolerates this because every transition it writes is
idempotent for a given delivery state.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime
from typing import Any, TypeVar

from qdrant_client import AsyncQdrantClient, models

from hookline.config import settings
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
from .retry import qdrant_retry

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=StoredRecord)

# Collection suffixes by record kind
COLLECTION_NAMES = {
    "webhook": "webhooks",
    "event": "webhook_events",
    "delivery": "webhook_deliveries",
    "dead_letter": "webhook_dead_letters",
}

# Keyword payload fields indexed per record kind
INDEXED_FIELDS: dict[str, list[str]] = {
    "webhook": ["events"],
    "event": [],
    "delivery": ["id", "status", "event_id", "webhook_config_id"],
    "dead_letter": ["webhook_config_id", "event_type"],
}

PLACEHOLDER_VECTOR = [1.0]

# Upper bound on points read by a single listing query
DEFAULT_SCROLL_LIMIT = 10000


class QdrantWebhookStore(WebhookStore):
    """WebhookStore backed by Qdrant collections.

    Example:
        ```python
        async with QdrantWebhookStore(url="http://localhost:6333") as store:
            await store.store_webhook(config)
        ```

    Passing ``url=":memory:"`` uses qdrant-client's in-process local mode.
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        client: AsyncQdrantClient | None = None,
        scroll_limit: int = DEFAULT_SCROLL_LIMIT,
    ) -> None:
        """Initialize storage client.

        Args:
            url: Qdrant server URL or ":memory:". Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
            client: Pre-built client; ``initialize`` will not create one.
            scroll_limit: Maximum points read by listing queries.
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._client = client
        self._owns_client = client is None
        self._scroll_limit = scroll_limit

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

    async def initialize(self) -> None:
        """Create the client if needed and ensure collections exist."""
        if self._client is None:
            self._client = AsyncQdrantClient(location=self._url, api_key=self._api_key)
        await self._ensure_collections()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.close()
            self._client = None

    def _collection_name(self, kind: str) -> str:
        return f"{self._prefix}_{COLLECTION_NAMES[kind]}"

    @staticmethod
    def _key_to_point_id(key: str) -> str:
        """Convert a storage key to a deterministic UUID-format point ID."""
        h = hashlib.sha256(key.encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    @classmethod
    def _point_id(cls, kind: str, record: StoredRecord) -> str:
        if isinstance(record, WebhookDelivery):
            return cls._key_to_point_id(f"delivery/{record.idempotency_key}")
        return cls._key_to_point_id(f"{kind}/{record.id}")

    async def _ensure_collections(self) -> None:
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for kind in COLLECTION_NAMES:
            name = self._collection_name(kind)
            if name in existing:
                continue
            await self.client.create_collection(
                collection_name=name,
                vectors_config=models.VectorParams(
                    size=len(PLACEHOLDER_VECTOR),
                    distance=models.Distance.DOT,
                ),
            )
            for field_name in ["deleted", *INDEXED_FIELDS[kind]]:
                schema = (
                    models.PayloadSchemaType.BOOL
                    if field_name == "deleted"
                    else models.PayloadSchemaType.KEYWORD
                )
                await self.client.create_payload_index(
                    collection_name=name,
                    field_name=field_name,
                    field_schema=schema,
                )
            logger.info("Created collection %s", name)

    # Serialization

    @staticmethod
    def _record_to_payload(record: StoredRecord) -> dict[str, Any]:
        payload = record.model_dump(mode="json")
        payload["deleted"] = record.is_deleted
        if isinstance(record, WebhookDelivery) and record.next_attempt_at is not None:
            payload["next_attempt_ts"] = record.next_attempt_at.timestamp()
        return payload

    @staticmethod
    def _payload_to_record(payload: dict[str, Any], record_class: type[RecordT]) -> RecordT:
        data = dict(payload)
        data.pop("deleted", None)
        data.pop("next_attempt_ts", None)
        return record_class.model_validate(data)

    # Low-level calls

    @qdrant_retry
    async def _upsert(self, kind: str, record: StoredRecord) -> None:
        await self.client.upsert(
            collection_name=self._collection_name(kind),
            points=[
                models.PointStruct(
                    id=self._point_id(kind, record),
                    vector=PLACEHOLDER_VECTOR,
                    payload=self._record_to_payload(record),
                )
            ],
        )

    @qdrant_retry
    async def _retrieve(self, kind: str, point_id: str) -> dict[str, Any] | None:
        results = await self.client.retrieve(
            collection_name=self._collection_name(kind),
            ids=[point_id],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        return results[0].payload

    @qdrant_retry
    async def _scroll(
        self,
        kind: str,
        must: list[models.Condition],
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Read every point matching ``must``, following scroll pages."""
        limit = limit or self._scroll_limit
        collection = self._collection_name(kind)
        scroll_filter = models.Filter(
            must=[*must, models.FieldCondition(key="deleted", match=models.MatchValue(value=False))]
        )

        payloads: list[dict[str, Any]] = []
        offset: Any = None
        while len(payloads) < limit:
            points, offset = await self.client.scroll(
                collection_name=collection,
                scroll_filter=scroll_filter,
                limit=min(256, limit - len(payloads)),
                offset=offset,
                with_payload=True,
            )
            payloads.extend(p.payload for p in points if p.payload is not None)
            if offset is None:
                break
        return payloads

    @qdrant_retry
    async def _count(self, kind: str, must: list[models.Condition]) -> int:
        result = await self.client.count(
            collection_name=self._collection_name(kind),
            count_filter=models.Filter(
                must=[
                    *must,
                    models.FieldCondition(key="deleted", match=models.MatchValue(value=False)),
                ]
            ),
            exact=True,
        )
        return int(result.count)

    @staticmethod
    def _match(key: str, value: Any) -> models.FieldCondition:
        return models.FieldCondition(key=key, match=models.MatchValue(value=value))

    async def _insert(self, kind: str, record: StoredRecord) -> str:
        if await self._retrieve(kind, self._point_id(kind, record)) is not None:
            raise StorageError(f"{kind} already exists: {record.id}")
        await self._upsert(kind, record)
        return record.id

    async def _get(self, kind: str, record_id: str, record_class: type[RecordT]) -> RecordT | None:
        payload = await self._retrieve(kind, self._key_to_point_id(f"{kind}/{record_id}"))
        if payload is None or payload.get("deleted"):
            return None
        return self._payload_to_record(payload, record_class)

    async def _update(self, kind: str, record: RecordT) -> RecordT:
        stored = await self._retrieve(kind, self._point_id(kind, record))
        if stored is None or stored.get("id") != record.id or stored.get("version") != record.version:
            raise ConcurrencyError(kind, record.id)
        updated = record.model_copy(deep=True, update={"version": record.version + 1})
        await self._upsert(kind, updated)
        return updated

    # Webhook configs

    async def store_webhook(self, webhook: WebhookConfig) -> str:
        return await self._insert("webhook", webhook)

    async def get_webhook(self, webhook_id: str) -> WebhookConfig | None:
        return await self._get("webhook", webhook_id, WebhookConfig)

    async def list_webhooks(self, active_only: bool = False) -> list[WebhookConfig]:
        must: list[models.Condition] = [self._match("active", True)] if active_only else []
        payloads = await self._scroll("webhook", must)
        return [self._payload_to_record(p, WebhookConfig) for p in payloads]

    async def get_webhooks_for_event(self, event_type: str) -> list[WebhookConfig]:
        payloads = await self._scroll(
            "webhook",
            [self._match("active", True), self._match("events", event_type)],
        )
        webhooks = [self._payload_to_record(p, WebhookConfig) for p in payloads]
        return [wh for wh in webhooks if wh.subscribes_to(event_type)]

    async def update_webhook(self, webhook: WebhookConfig) -> WebhookConfig:
        return await self._update("webhook", webhook)

    # Events

    async def store_event(self, event: WebhookEvent) -> str:
        return await self._insert("event", event)

    async def get_event(self, event_id: str) -> WebhookEvent | None:
        return await self._get("event", event_id, WebhookEvent)

    async def update_event(self, event: WebhookEvent) -> WebhookEvent:
        return await self._update("event", event)

    async def count_events(self, processed: bool | None = None) -> int:
        must: list[models.Condition] = []
        if processed is not None:
            must.append(self._match("processed", processed))
        return await self._count("event", must)

    # Deliveries

    async def create_delivery(self, delivery: WebhookDelivery) -> str:
        existing = await self._retrieve("delivery", self._point_id("delivery", delivery))
        if existing is not None and not existing.get("deleted"):
            raise DuplicateDeliveryError(delivery.idempotency_key)
        await self._upsert("delivery", delivery)
        return delivery.id

    async def get_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        payloads = await self._scroll("delivery", [self._match("id", delivery_id)], limit=1)
        if not payloads:
            return None
        return self._payload_to_record(payloads[0], WebhookDelivery)

    async def get_delivery_by_idempotency_key(self, key: str) -> WebhookDelivery | None:
        payload = await self._retrieve("delivery", self._key_to_point_id(f"delivery/{key}"))
        if payload is None or payload.get("deleted"):
            return None
        return self._payload_to_record(payload, WebhookDelivery)

    async def update_delivery(self, delivery: WebhookDelivery) -> WebhookDelivery:
        return await self._update("delivery", delivery)

    async def get_pending_deliveries(
        self,
        now: datetime,
        limit: int = 500,
    ) -> list[WebhookDelivery]:
        payloads = await self._scroll(
            "delivery",
            [
                self._match("status", "pending"),
                models.FieldCondition(
                    key="next_attempt_ts",
                    range=models.Range(lte=now.timestamp()),
                ),
            ],
        )
        deliveries = [self._payload_to_record(p, WebhookDelivery) for p in payloads]
        deliveries = [d for d in deliveries if d.is_due(now)]
        deliveries.sort(key=lambda d: d.next_attempt_at or d.created_at)
        return deliveries[:limit]

    async def get_deliveries_for_event(self, event_id: str) -> list[WebhookDelivery]:
        payloads = await self._scroll("delivery", [self._match("event_id", event_id)])
        deliveries = [self._payload_to_record(p, WebhookDelivery) for p in payloads]
        deliveries.sort(key=lambda d: d.created_at)
        return deliveries

    async def get_deliveries_for_webhook(self, webhook_id: str) -> list[WebhookDelivery]:
        payloads = await self._scroll("delivery", [self._match("webhook_config_id", webhook_id)])
        deliveries = [self._payload_to_record(p, WebhookDelivery) for p in payloads]
        deliveries.sort(key=lambda d: d.created_at, reverse=True)
        return deliveries

    async def count_deliveries(self, status: DeliveryStatus | None = None) -> int:
        must: list[models.Condition] = []
        if status is not None:
            must.append(self._match("status", status))
        return await self._count("delivery", must)

    # Dead letters

    async def store_dead_letter(self, entry: DeadLetterEntry) -> str:
        return await self._insert("dead_letter", entry)

    async def get_dead_letter(self, entry_id: str) -> DeadLetterEntry | None:
        return await self._get("dead_letter", entry_id, DeadLetterEntry)

    async def _dead_letters(self, must: list[models.Condition]) -> list[DeadLetterEntry]:
        payloads = await self._scroll("dead_letter", must)
        entries = [self._payload_to_record(p, DeadLetterEntry) for p in payloads]
        entries.sort(key=lambda e: e.failed_at, reverse=True)
        return entries

    async def list_dead_letters(self, limit: int = 100) -> list[DeadLetterEntry]:
        return (await self._dead_letters([]))[:limit]

    async def get_dead_letters_for_webhook(self, webhook_id: str) -> list[DeadLetterEntry]:
        return await self._dead_letters([self._match("webhook_config_id", webhook_id)])

    async def get_dead_letters_for_event_type(self, event_type: str) -> list[DeadLetterEntry]:
        return await self._dead_letters([self._match("event_type", event_type)])

    async def update_dead_letter(self, entry: DeadLetterEntry) -> DeadLetterEntry:
        return await self._update("dead_letter", entry)

    async def count_dead_letters(self) -> int:
        return await self._count("dead_letter", [])
