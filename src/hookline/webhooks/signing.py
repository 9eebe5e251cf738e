"""HMAC-SHA256 signatures for webhook payloads.

Subscribers recompute the signature over the raw request body with their
shared secret and compare it to the ``X-Webhook-Signature`` header.
"""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def _hex_digest(payload: str, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def compute_signature(payload: str, secret: str) -> str:
    """Sign the body exactly as it will be sent.

    Returns:
        ``"sha256=<hex digest>"``, deterministic for a given payload and secret.
    """
    return SIGNATURE_PREFIX + _hex_digest(payload, secret)


def verify_signature(payload: str, secret: str, signature: str) -> bool:
    """Check a received signature in constant time.

    Accepts the header value with or without the ``sha256=`` prefix.
    """
    received = signature.removeprefix(SIGNATURE_PREFIX)
    return hmac.compare_digest(_hex_digest(payload, secret).encode(), received.encode("utf-8"))
