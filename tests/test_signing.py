"""Tests for webhook payload signatures."""

from __future__ import annotations

import hashlib
import hmac

from hookline.webhooks.signing import SIGNATURE_PREFIX, compute_signature, verify_signature


class TestComputeSignature:
    """Tests for compute_signature."""

    def test_format(self) -> None:
        """Signature should be sha256= followed by 64 hex characters."""
        signature = compute_signature('{"id":"evt_1"}', "secret")
        assert signature.startswith(SIGNATURE_PREFIX)
        digest = signature.removeprefix(SIGNATURE_PREFIX)
        assert len(digest) == 64
        int(digest, 16)

    def test_matches_hmac_sha256(self) -> None:
        """Signature should be a plain HMAC-SHA256 over the UTF-8 body."""
        payload = '{"id":"evt_1","eventType":"grade.created"}'
        expected = hmac.new(b"s3cret", payload.encode("utf-8"), hashlib.sha256).hexdigest()
        assert compute_signature(payload, "s3cret") == f"sha256={expected}"

    def test_deterministic(self) -> None:
        assert compute_signature("body", "key") == compute_signature("body", "key")

    def test_differs_by_secret(self) -> None:
        assert compute_signature("body", "key-a") != compute_signature("body", "key-b")

    def test_non_ascii_payload(self) -> None:
        """Non-ASCII bodies should be signed over their UTF-8 bytes."""
        payload = '{"name":"Siti Nurhaliza","note":"café ✓"}'
        expected = hmac.new(b"k", payload.encode("utf-8"), hashlib.sha256).hexdigest()
        assert compute_signature(payload, "k") == f"sha256={expected}"


class TestVerifySignature:
    """Tests for verify_signature."""

    def test_round_trip(self) -> None:
        payload = '{"id":"evt_1"}'
        signature = compute_signature(payload, "secret")
        assert verify_signature(payload, "secret", signature) is True

    def test_wrong_secret(self) -> None:
        payload = '{"id":"evt_1"}'
        signature = compute_signature(payload, "secret")
        assert verify_signature(payload, "other", signature) is False

    def test_tampered_payload(self) -> None:
        signature = compute_signature('{"amount":1}', "secret")
        assert verify_signature('{"amount":100}', "secret", signature) is False

    def test_bare_hex_digest_accepted(self) -> None:
        """A digest without the sha256= prefix should still verify."""
        payload = '{"id":"evt_1"}'
        digest = compute_signature(payload, "secret").removeprefix(SIGNATURE_PREFIX)
        assert verify_signature(payload, "secret", digest) is True

    def test_garbage_signature(self) -> None:
        assert verify_signature("body", "secret", "not-a-signature") is False
