"""Tests for the Hookline exception hierarchy."""

import pytest

from hookline.exceptions import (
    CircuitOpenError,
    ConcurrencyError,
    ConfigurationError,
    DuplicateDeliveryError,
    HooklineError,
    NotFoundError,
    StorageError,
    ValidationError,
)


class TestHooklineError:
    """Tests for the base exception."""

    def test_message_and_code(self):
        error = HooklineError("something broke")
        assert error.message == "something broke"
        assert error.code == "hookline_error"
        assert str(error) == "something broke"

    def test_to_dict(self):
        assert HooklineError("oops").to_dict() == {
            "error": {"code": "hookline_error", "message": "oops"}
        }

    @pytest.mark.parametrize(
        "error",
        [
            ValidationError("url", "bad"),
            NotFoundError("webhook", "whk_1"),
            StorageError("down"),
            ConcurrencyError("delivery", "dlv_1"),
            DuplicateDeliveryError("evt_1:whk_1"),
            CircuitOpenError("https://example.com", 10.0),
            ConfigurationError("missing"),
        ],
    )
    def test_all_inherit_from_base(self, error):
        assert isinstance(error, HooklineError)


class TestValidationError:
    """Tests for ValidationError."""

    def test_includes_field(self):
        error = ValidationError("url", "Only HTTP and HTTPS protocols are allowed")
        assert error.field == "url"
        assert error.message == "url: Only HTTP and HTTPS protocols are allowed"
        assert error.to_dict()["error"]["field"] == "url"
        assert error.to_dict()["error"]["code"] == "validation_error"


class TestNotFoundError:
    """Tests for NotFoundError."""

    def test_fields(self):
        error = NotFoundError("dead_letter", "dlq_1")
        assert error.resource_type == "dead_letter"
        assert error.resource_id == "dlq_1"
        assert error.message == "dead_letter not found: dlq_1"
        assert error.to_dict()["error"]["resource_id"] == "dlq_1"


class TestStorageErrors:
    """Tests for storage-level conflicts."""

    def test_concurrency_error(self):
        error = ConcurrencyError("delivery", "dlv_1")
        assert isinstance(error, StorageError)
        assert error.code == "concurrency_conflict"
        assert "dlv_1" in error.message

    def test_duplicate_delivery_error(self):
        error = DuplicateDeliveryError("evt_1:whk_1")
        assert isinstance(error, StorageError)
        assert error.idempotency_key == "evt_1:whk_1"
        assert error.code == "duplicate_delivery"


class TestCircuitOpenError:
    """Tests for CircuitOpenError."""

    def test_message(self):
        error = CircuitOpenError("https://example.com/hook", 12.345)
        assert error.message == (
            "Circuit breaker is open for https://example.com/hook, retry after 12.3s"
        )

    def test_to_dict(self):
        data = CircuitOpenError("https://example.com/hook", 5.0).to_dict()
        assert data["error"]["code"] == "circuit_open"
        assert data["error"]["url"] == "https://example.com/hook"
        assert data["error"]["retry_after"] == 5.0


class TestToDict:
    """Tests for details carried into API payloads."""

    def test_concurrency_error_details(self):
        data = ConcurrencyError("webhook", "whk_1").to_dict()["error"]
        assert data["resource_type"] == "webhook"
        assert data["resource_id"] == "whk_1"

    def test_duplicate_delivery_details(self):
        data = DuplicateDeliveryError("evt_1:whk_1").to_dict()["error"]
        assert data == {
            "code": "duplicate_delivery",
            "idempotency_key": "evt_1:whk_1",
            "message": "Delivery already exists for evt_1:whk_1",
        }

    def test_plain_subclass_has_no_details(self):
        assert StorageError("down").to_dict() == {
            "error": {"code": "storage_error", "message": "down"}
        }
