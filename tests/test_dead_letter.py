"""Tests for dead letter archival."""

from __future__ import annotations

import pytest

from hookline.models import WebhookConfig, WebhookDelivery, WebhookEvent
from hookline.storage import InMemoryWebhookStore
from hookline.webhooks import DeadLetterArchiver


class TestDeadLetterArchiver:
    """Tests for DeadLetterArchiver.archive."""

    @pytest.mark.asyncio
    async def test_snapshot_fields(
        self,
        store: InMemoryWebhookStore,
        seeded_delivery: WebhookDelivery,
        sample_config: WebhookConfig,
        sample_event: WebhookEvent,
    ) -> None:
        """The entry should capture everything needed to diagnose or replay."""
        seeded_delivery.attempts = 6
        archiver = DeadLetterArchiver(store)

        entry = await archiver.archive(seeded_delivery, sample_config, 503, "Service Unavailable")

        assert entry is not None
        assert entry.id.startswith("dlq_")
        assert entry.event_id == sample_event.id
        assert entry.webhook_config_id == sample_config.id
        assert entry.delivery_id == seeded_delivery.id
        assert entry.event_type == "grade.created"
        assert entry.url == sample_config.url
        assert entry.payload == sample_event.data
        assert entry.status == 503
        assert entry.attempts == 6
        assert entry.error_message == "Service Unavailable"

        stored = await store.get_dead_letter(entry.id)
        assert stored is not None
        assert stored.model_dump() == entry.model_dump()

    @pytest.mark.asyncio
    async def test_network_failure_status_zero(
        self,
        store: InMemoryWebhookStore,
        seeded_delivery: WebhookDelivery,
        sample_config: WebhookConfig,
    ) -> None:
        archiver = DeadLetterArchiver(store)
        entry = await archiver.archive(seeded_delivery, sample_config, 0, "Request timeout")
        assert entry is not None
        assert entry.status == 0

    @pytest.mark.asyncio
    async def test_missing_event_is_noop(
        self, store: InMemoryWebhookStore, sample_config: WebhookConfig
    ) -> None:
        delivery = WebhookDelivery.for_event("evt_gone", sample_config.id)
        archiver = DeadLetterArchiver(store)

        assert await archiver.archive(delivery, sample_config, 500, "boom") is None
        assert await store.count_dead_letters() == 0

    @pytest.mark.asyncio
    async def test_snapshot_survives_config_change(
        self,
        store: InMemoryWebhookStore,
        seeded_delivery: WebhookDelivery,
        sample_config: WebhookConfig,
    ) -> None:
        """Editing the config later should not change the archived URL."""
        archiver = DeadLetterArchiver(store)
        entry = await archiver.archive(seeded_delivery, sample_config, 500, "boom")
        assert entry is not None

        config = await store.get_webhook(sample_config.id)
        assert config is not None
        config.url = "https://example.com/moved"
        await store.update_webhook(config)

        stored = await store.get_dead_letter(entry.id)
        assert stored is not None
        assert stored.url == "https://example.com/webhook"
