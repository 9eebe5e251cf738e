"""Webhook models for server-to-server event notifications.

Provides subscriber registration, event records, per-subscriber delivery
tracking and the dead letter archive for exhausted deliveries.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    TypeAdapter,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError

from .base import StoredRecord, generate_id, utc_now

# Delivery status
DeliveryStatus = Literal["pending", "delivered", "failed"]

# Response bodies stored on deliveries are truncated to this many characters
MAX_ERROR_LENGTH = 1000

_http_url = TypeAdapter(HttpUrl)


def build_idempotency_key(event_id: str, webhook_config_id: str) -> str:
    """Deterministic key identifying one subscriber's obligation for one event."""
    return f"{event_id}:{webhook_config_id}"


class WebhookConfig(StoredRecord):
    """A subscriber registration.

    Attributes:
        url: Endpoint receiving POSTed events.
        events: Event types this subscriber wants.
        secret: Shared secret for HMAC-SHA256 signatures.
        active: Inactive configs receive nothing; pending deliveries to
            them fail on their next attempt.
        description: Optional human-readable description.
    """

    id: str = Field(default_factory=lambda: generate_id("whk"))
    url: str = Field(description="Endpoint receiving webhook events")
    events: list[str] = Field(
        default_factory=list,
        description="Event types to subscribe to",
    )
    secret: str = Field(min_length=1, description="Shared secret for HMAC-SHA256 signatures")
    active: bool = Field(default=True, description="Whether the subscriber is active")
    description: str | None = Field(default=None, description="Human-readable description")

    @field_validator("url")
    @classmethod
    def _must_be_http_url(cls, value: str) -> str:
        # Stored as the caller wrote it; HttpUrl would normalize it
        try:
            _http_url.validate_python(value)
        except PydanticValidationError as e:
            raise ValueError(f"invalid webhook URL: {value!r}") from e
        return value

    def subscribes_to(self, event_type: str) -> bool:
        """Check if this config should receive the given event type."""
        return self.active and not self.is_deleted and event_type in self.events


class WebhookEvent(StoredRecord):
    """An immutable fact that something happened in the domain.

    Attributes:
        event_type: Event type, e.g. "grade.created".
        data: Opaque domain payload.
        processed: Set once any delivery of this event succeeds.
    """

    id: str = Field(default_factory=lambda: generate_id("evt"))
    event_type: str = Field(min_length=1, description="Event type")
    data: dict[str, Any] = Field(default_factory=dict, description="Domain payload")
    processed: bool = Field(default=False, description="Whether a delivery succeeded")


class WebhookDelivery(StoredRecord):
    """One subscriber's delivery obligation for one event.

    Lifecycle: created ``pending`` with ``attempts=0``. Each attempt
    increments ``attempts``. Success is terminal (``delivered``); a failure
    below the retry ceiling stays ``pending`` with a later
    ``next_attempt_at``; a failure at the ceiling is terminal (``failed``).

    Attributes:
        event_id: Event being delivered.
        webhook_config_id: Subscriber receiving it.
        status: pending, delivered or failed.
        attempts: Completed HTTP attempts.
        status_code: Last HTTP status (0 for network errors).
        error_message: Last error, response body for non-2xx responses.
        next_attempt_at: When the delivery becomes due again.
        idempotency_key: ``event_id:webhook_config_id``.
    """

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    event_id: str = Field(description="ID of the event being delivered")
    webhook_config_id: str = Field(description="ID of the subscriber config")
    status: DeliveryStatus = Field(default="pending", description="Delivery status")
    attempts: int = Field(default=0, ge=0, description="Completed delivery attempts")
    status_code: int | None = Field(default=None, description="Last HTTP status code")
    error_message: str | None = Field(default=None, description="Last error message")
    next_attempt_at: datetime | None = Field(
        default=None,
        description="When the delivery is due for its next attempt",
    )
    idempotency_key: str = Field(default="", description="event_id:webhook_config_id")

    def model_post_init(self, __context: Any) -> None:
        if not self.idempotency_key:
            self.idempotency_key = build_idempotency_key(self.event_id, self.webhook_config_id)

    @classmethod
    def for_event(cls, event_id: str, webhook_config_id: str) -> "WebhookDelivery":
        """Create a pending delivery that is due immediately."""
        now = utc_now()
        return cls(
            event_id=event_id,
            webhook_config_id=webhook_config_id,
            next_attempt_at=now,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status != "pending"

    def is_due(self, now: datetime) -> bool:
        """True if pending and its next attempt time has passed."""
        return (
            self.status == "pending"
            and not self.is_deleted
            and self.next_attempt_at is not None
            and self.next_attempt_at <= now
        )

    def mark_delivered(self, status_code: int) -> "WebhookDelivery":
        """Record a successful attempt."""
        self.status = "delivered"
        self.status_code = status_code
        self.attempts += 1
        self.next_attempt_at = None
        self.touch()
        return self

    def mark_failed(
        self,
        error: str,
        status_code: int | None = None,
        attempts: int | None = None,
    ) -> "WebhookDelivery":
        """Mark delivery as failed (no more retries)."""
        self.status = "failed"
        self.error_message = error[:MAX_ERROR_LENGTH]
        if status_code is not None:
            self.status_code = status_code
        if attempts is not None:
            self.attempts = attempts
        self.next_attempt_at = None
        self.touch()
        return self

    def schedule_retry(
        self,
        next_attempt_at: datetime,
        error: str,
        status_code: int,
        attempts: int,
    ) -> "WebhookDelivery":
        """Keep the delivery pending and push its next attempt out."""
        self.status = "pending"
        self.error_message = error[:MAX_ERROR_LENGTH]
        self.status_code = status_code
        self.attempts = attempts
        self.next_attempt_at = next_attempt_at
        self.touch()
        return self

    def reset_for_replay(self) -> "WebhookDelivery":
        """Return a failed delivery to the queue with a fresh retry budget."""
        self.status = "pending"
        self.attempts = 0
        self.status_code = None
        self.error_message = None
        self.next_attempt_at = utc_now()
        self.touch()
        return self


class DeadLetterEntry(StoredRecord):
    """Permanent record of a delivery that exhausted its retries.

    Captures a snapshot of everything needed to diagnose or replay the
    delivery, independent of later changes to the config or event.
    """

    id: str = Field(default_factory=lambda: generate_id("dlq"))
    event_id: str = Field(description="ID of the undelivered event")
    webhook_config_id: str = Field(description="ID of the subscriber config")
    delivery_id: str | None = Field(default=None, description="ID of the exhausted delivery")
    event_type: str = Field(description="Event type at failure time")
    url: str = Field(description="Destination URL at failure time")
    payload: dict[str, Any] = Field(default_factory=dict, description="Event payload")
    status: int = Field(default=0, ge=0, description="Last HTTP status, 0 if none")
    attempts: int = Field(default=0, ge=0, description="Attempts made")
    error_message: str = Field(default="", description="Last error message")
    failed_at: datetime = Field(default_factory=utc_now, description="When delivery gave up")


class WebhookPayload(BaseModel):
    """JSON body POSTed to subscribers."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str
    event_type: str = Field(alias="eventType")
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: str

    @classmethod
    def for_event(cls, event: WebhookEvent) -> "WebhookPayload":
        return cls(
            id=event.id,
            event_type=event.event_type,
            data=event.data,
            timestamp=event.created_at.isoformat(),
        )

    def to_json(self) -> str:
        """Serialize exactly as sent on the wire."""
        return self.model_dump_json(by_alias=True)


class PublishResult(BaseModel):
    """Outcome of publishing one domain event."""

    model_config = ConfigDict(extra="forbid")

    event: WebhookEvent | None = Field(
        default=None, description="Persisted event, None when nobody subscribed"
    )
    deliveries: list[WebhookDelivery] = Field(
        default_factory=list, description="Deliveries created by this call"
    )
    skipped: int = Field(default=0, ge=0, description="Subscribers that already had a delivery")


class ProcessingSummary(BaseModel):
    """Counts from one run of the batch processor."""

    model_config = ConfigDict(extra="forbid")

    found: int = Field(default=0, ge=0, description="Due deliveries fetched")
    batches: int = Field(default=0, ge=0, description="Batches executed")
    delivered: int = Field(default=0, ge=0)
    rescheduled: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    errors: int = Field(default=0, ge=0, description="Attempts that ended without a state change")


class DeliveryStats(BaseModel):
    """Operator-facing snapshot of delivery health."""

    model_config = ConfigDict(extra="forbid")

    total_events: int = Field(default=0, ge=0)
    pending_events: int = Field(default=0, ge=0, description="Events with no successful delivery")
    total_deliveries: int = Field(default=0, ge=0)
    delivered: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    pending: int = Field(default=0, ge=0)
    dead_letters: int = Field(default=0, ge=0)

    @property
    def success_rate(self) -> float:
        """Percentage of finished deliveries that succeeded."""
        finished = self.delivered + self.failed
        if finished == 0:
            return 0.0
        return self.delivered / finished * 100


class PingResult(BaseModel):
    """Outcome of a signed test ping."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    status_code: int | None = None
    response: str | None = None
    error: str | None = None


__all__ = [
    "MAX_ERROR_LENGTH",
    "DeadLetterEntry",
    "DeliveryStats",
    "DeliveryStatus",
    "ProcessingSummary",
    "PublishResult",
    "PingResult",
    "WebhookConfig",
    "WebhookDelivery",
    "WebhookEvent",
    "WebhookPayload",
    "build_idempotency_key",
]
