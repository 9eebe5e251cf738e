"""Destination URL policy for webhook registration.

Webhook URLs are supplied by operators but requested by the server, so a
URL pointing at loopback, private ranges or cloud metadata endpoints would
let a subscriber probe the internal network.
"""

from __future__ import annotations

import ipaddress

import pydantic
from pydantic import HttpUrl, TypeAdapter

from hookline.exceptions import ValidationError

BLOCKED_HOSTS = frozenset(
    {
        "localhost",
        "metadata.google.internal",
        "metadata.azure",
    }
)

BLOCKED_SUFFIXES = (".local", ".internal", ".localhost")

_http_url = TypeAdapter(HttpUrl)


def _is_private_ip(host: str) -> bool:
    try:
        ip = ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_unspecified
        or ip.is_reserved
        or ip.is_multicast
    )


def _parse(url: str) -> HttpUrl:
    try:
        return _http_url.validate_python(url)
    except pydantic.ValidationError as e:
        if any(err["type"] == "url_scheme" for err in e.errors()):
            raise ValidationError("url", "Only HTTP and HTTPS protocols are allowed") from e
        raise ValidationError("url", "Invalid URL format") from e


def validate_webhook_url(url: str, allow_private: bool = False) -> str:
    """Validate a webhook destination and return it unchanged.

    The URL must parse as a pydantic ``HttpUrl``. Only the literal host is
    checked; hostnames are not resolved.

    Raises:
        ValidationError: The URL is malformed, not http(s), or targets a
            private or internal host while ``allow_private`` is False.
    """
    if not url or not url.strip():
        raise ValidationError("url", "URL is required")

    parsed = _parse(url.strip())
    if not parsed.host:
        raise ValidationError("url", "Invalid URL format")

    if allow_private:
        return url

    host = parsed.host.lower().rstrip(".")
    if host in BLOCKED_HOSTS or host.endswith(BLOCKED_SUFFIXES):
        raise ValidationError("url", "Private/internal hostnames are not allowed")
    if _is_private_ip(host):
        raise ValidationError("url", "Private/internal IP addresses are not allowed")

    return url
