"""Error types raised by Hookline.

Everything derives from HooklineError, which carries a machine-readable
``code`` and renders itself for API responses via ``to_dict``. Subclasses
add their own identifying fields through ``details``.
"""

from __future__ import annotations


class HooklineError(Exception):
    """Root of the Hookline error tree.

    Attributes:
        message: Human-readable error description.
        code: Stable identifier for API consumers.
    """

    code: str = "hookline_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def details(self) -> dict[str, object]:
        """Extra fields included in ``to_dict`` for this error type."""
        return {}

    def to_dict(self) -> dict[str, object]:
        """Render as ``{"error": {"code": ..., <details>, "message": ...}}``."""
        return {"error": {"code": self.code, **self.details(), "message": self.message}}


class ValidationError(HooklineError):
    """Caller-supplied value rejected.

    Attributes:
        field: Name of the offending input.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def details(self) -> dict[str, object]:
        return {"field": self.field}


class NotFoundError(HooklineError):
    """No live record with the requested ID.

    Attributes:
        resource_type: Kind of record, e.g. "webhook" or "dead_letter".
        resource_id: The ID that was looked up.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def details(self) -> dict[str, object]:
        return {"resource_type": self.resource_type, "resource_id": self.resource_id}


class StorageError(HooklineError):
    """The storage backend failed or refused a write."""

    code: str = "storage_error"


class ConcurrencyError(StorageError):
    """Version check failed: someone else updated the record first."""

    code: str = "concurrency_conflict"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} {resource_id} was modified concurrently")

    def details(self) -> dict[str, object]:
        return {"resource_type": self.resource_type, "resource_id": self.resource_id}


class DuplicateDeliveryError(StorageError):
    """A live delivery already holds this idempotency key."""

    code: str = "duplicate_delivery"

    def __init__(self, idempotency_key: str) -> None:
        self.idempotency_key = idempotency_key
        super().__init__(f"Delivery already exists for {idempotency_key}")

    def details(self) -> dict[str, object]:
        return {"idempotency_key": self.idempotency_key}


class CircuitOpenError(HooklineError):
    """A destination's breaker rejected the call before any request was made.

    Attributes:
        url: Destination guarded by the breaker.
        retry_after: Seconds until the breaker lets a probe through.
    """

    code: str = "circuit_open"

    def __init__(self, url: str, retry_after: float) -> None:
        self.url = url
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker is open for {url}, retry after {retry_after:.1f}s")

    def details(self) -> dict[str, object]:
        return {"url": self.url, "retry_after": self.retry_after}


class ConfigurationError(HooklineError):
    """Settings name something Hookline cannot build, e.g. an unknown backend."""

    code: str = "configuration_error"
