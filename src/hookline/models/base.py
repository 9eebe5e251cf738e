"""Base models and shared helpers for Hookline records."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def generate_id(prefix: str) -> str:
    """Generate a unique ID with the given prefix.

    Examples:
        generate_id("evt") -> "evt_a1b2c3d4e5f6"
        generate_id("dlv") -> "dlv_a1b2c3d4e5f6"
    """
    return f"{prefix}_{uuid4().hex[:12]}"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class StoredRecord(BaseModel):
    """Base class for every persisted record.

    Records carry a ``version`` used for optimistic concurrency: the store
    rejects an update whose version differs from the stored one and bumps
    the version on every successful write. ``deleted_at`` marks a soft
    delete; soft-deleted records are invisible to the delivery engine.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    id: str = Field(description="Unique identifier")
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the record was created",
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        description="When the record was last modified",
    )
    deleted_at: datetime | None = Field(
        default=None,
        description="Soft delete timestamp",
    )
    version: int = Field(default=0, ge=0, description="Optimistic concurrency version")

    @property
    def is_deleted(self) -> bool:
        """True if the record has been soft-deleted."""
        return self.deleted_at is not None

    def touch(self) -> None:
        """Refresh ``updated_at``."""
        self.updated_at = utc_now()

    def soft_delete(self) -> None:
        """Mark the record deleted without removing it."""
        now = utc_now()
        self.deleted_at = now
        self.updated_at = now
