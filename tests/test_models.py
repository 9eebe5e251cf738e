"""Tests for Hookline record and result models."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from hookline.models import (
    MAX_ERROR_LENGTH,
    DeadLetterEntry,
    DeliveryStats,
    WebhookConfig,
    WebhookDelivery,
    WebhookEvent,
    WebhookPayload,
    build_idempotency_key,
    generate_id,
)


class TestGenerateId:
    """Tests for ID generation."""

    def test_prefix_and_length(self):
        record_id = generate_id("dlv")
        prefix, suffix = record_id.split("_")
        assert prefix == "dlv"
        assert len(suffix) == 12

    def test_unique(self):
        assert len({generate_id("evt") for _ in range(100)}) == 100


class TestWebhookConfig:
    """Tests for WebhookConfig."""

    def test_defaults(self, sample_config: WebhookConfig):
        assert sample_config.active is True
        assert sample_config.version == 0
        assert sample_config.deleted_at is None
        assert WebhookConfig(url="https://x.io", secret="s").id.startswith("whk_")

    def test_empty_secret_rejected(self):
        with pytest.raises(ValidationError):
            WebhookConfig(url="https://example.com", events=["grade.created"], secret="")

    def test_extra_fields_forbidden(self):
        with pytest.raises(ValidationError):
            WebhookConfig(url="https://example.com", secret="s", retries=3)

    @pytest.mark.parametrize("url", ["not a url", "ftp://example.com/file", "https://"])
    def test_url_must_be_http(self, url):
        with pytest.raises(ValidationError):
            WebhookConfig(url=url, events=["grade.created"], secret="s")

    def test_url_stored_as_written(self):
        config = WebhookConfig(url="https://Example.com", events=["grade.created"], secret="s")
        assert config.url == "https://Example.com"

    def test_subscribes_to(self, sample_config: WebhookConfig):
        assert sample_config.subscribes_to("grade.created")
        assert not sample_config.subscribes_to("grade.deleted")

    def test_inactive_does_not_subscribe(self, sample_config: WebhookConfig):
        sample_config.active = False
        assert not sample_config.subscribes_to("grade.created")

    def test_deleted_does_not_subscribe(self, sample_config: WebhookConfig):
        sample_config.soft_delete()
        assert sample_config.is_deleted
        assert not sample_config.subscribes_to("grade.created")


class TestWebhookDelivery:
    """Tests for WebhookDelivery transitions."""

    def test_idempotency_key_derived(self):
        delivery = WebhookDelivery(event_id="evt_1", webhook_config_id="whk_1")
        assert delivery.idempotency_key == "evt_1:whk_1"
        assert build_idempotency_key("evt_1", "whk_1") == "evt_1:whk_1"

    def test_for_event_is_due_now(self):
        delivery = WebhookDelivery.for_event("evt_1", "whk_1")
        assert delivery.status == "pending"
        assert delivery.attempts == 0
        assert delivery.id.startswith("dlv_")
        assert delivery.is_due(datetime.now(UTC))

    def test_is_due_respects_next_attempt(self):
        delivery = WebhookDelivery.for_event("evt_1", "whk_1")
        delivery.next_attempt_at = datetime.now(UTC) + timedelta(minutes=5)
        assert not delivery.is_due(datetime.now(UTC))

    def test_invalid_status_rejected(self):
        with pytest.raises(ValidationError):
            WebhookDelivery(event_id="e", webhook_config_id="w", status="retrying")

    def test_negative_attempts_rejected(self):
        with pytest.raises(ValidationError):
            WebhookDelivery(event_id="e", webhook_config_id="w", attempts=-1)

    def test_mark_delivered(self):
        delivery = WebhookDelivery.for_event("evt_1", "whk_1")
        delivery.mark_delivered(200)
        assert delivery.status == "delivered"
        assert delivery.status_code == 200
        assert delivery.attempts == 1
        assert delivery.next_attempt_at is None
        assert delivery.is_terminal

    def test_mark_failed_truncates_error(self):
        delivery = WebhookDelivery.for_event("evt_1", "whk_1")
        delivery.mark_failed("x" * 5000)
        assert delivery.status == "failed"
        assert len(delivery.error_message) == MAX_ERROR_LENGTH
        assert delivery.attempts == 0
        assert not delivery.is_due(datetime.now(UTC))

    def test_schedule_retry(self):
        delivery = WebhookDelivery.for_event("evt_1", "whk_1")
        later = datetime.now(UTC) + timedelta(minutes=1)
        delivery.schedule_retry(later, "error 500", 500, attempts=1)
        assert delivery.status == "pending"
        assert delivery.attempts == 1
        assert delivery.status_code == 500
        assert delivery.next_attempt_at == later
        assert not delivery.is_terminal

    def test_reset_for_replay(self):
        delivery = WebhookDelivery.for_event("evt_1", "whk_1")
        delivery.mark_failed("Max retries exceeded", status_code=500, attempts=6)
        delivery.reset_for_replay()
        assert delivery.status == "pending"
        assert delivery.attempts == 0
        assert delivery.error_message is None
        assert delivery.is_due(datetime.now(UTC))


class TestDeadLetterEntry:
    """Tests for DeadLetterEntry."""

    def test_defaults(self):
        entry = DeadLetterEntry(
            event_id="evt_1",
            webhook_config_id="whk_1",
            event_type="grade.created",
            url="https://example.com",
        )
        assert entry.id.startswith("dlq_")
        assert entry.status == 0
        assert entry.failed_at is not None


class TestWebhookPayload:
    """Tests for the wire body."""

    def test_wire_shape(self, sample_event: WebhookEvent):
        """Serialized body should use the camelCase eventType key."""
        body = json.loads(WebhookPayload.for_event(sample_event).to_json())
        assert body == {
            "id": "evt_test456",
            "eventType": "grade.created",
            "data": {"gradeId": "g1", "score": 95},
            "timestamp": sample_event.created_at.isoformat(),
        }

    def test_accepts_alias(self):
        payload = WebhookPayload.model_validate(
            {"id": "evt_1", "eventType": "user.created", "timestamp": "2024-01-01T00:00:00"}
        )
        assert payload.event_type == "user.created"

    def test_serialization_stable(self, sample_event: WebhookEvent):
        """Same event should always serialize to the same bytes."""
        first = WebhookPayload.for_event(sample_event).to_json()
        second = WebhookPayload.for_event(sample_event).to_json()
        assert first == second


class TestDeliveryStats:
    """Tests for DeliveryStats."""

    def test_success_rate(self):
        stats = DeliveryStats(delivered=3, failed=1, pending=10)
        assert stats.success_rate == 75.0

    def test_success_rate_no_finished(self):
        assert DeliveryStats(pending=4).success_rate == 0.0
