"""Webhook registration mixin for WebhookService.

Provides create, update, delete and test-ping operations for subscriber
configs. Every URL passes the destination policy in
``hookline.webhooks.urls`` before it is stored or requested.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hookline.exceptions import NotFoundError, ValidationError
from hookline.models import PingResult, WebhookConfig
from hookline.webhooks import validate_webhook_url

if TYPE_CHECKING:
    from hookline.config import Settings
    from hookline.storage import WebhookStore
    from hookline.webhooks import DeliveryExecutor

logger = logging.getLogger(__name__)


def _validate_events(events: list[str]) -> list[str]:
    cleaned = [e.strip() for e in events if e and e.strip()]
    if not cleaned:
        raise ValidationError("events", "At least one event must be specified")
    return list(dict.fromkeys(cleaned))


def _validate_secret(secret: str) -> str:
    if not secret:
        raise ValidationError("secret", "Webhook secret is required")
    return secret


class AdminMixin:
    """Mixin providing webhook config management.

    Expects these attributes from the base class:
    - store: WebhookStore
    - settings: Settings
    - executor: DeliveryExecutor
    """

    store: WebhookStore
    settings: Settings
    executor: DeliveryExecutor

    async def register_webhook(
        self,
        url: str,
        events: list[str],
        secret: str,
        active: bool = True,
        description: str | None = None,
    ) -> WebhookConfig:
        """Register a new subscriber.

        Args:
            url: Destination receiving POSTed events.
            events: Event types to subscribe to (at least one).
            secret: Shared secret for request signatures.
            active: Whether the subscriber receives events right away.
            description: Optional human-readable description.

        Returns:
            The stored config.

        Raises:
            ValidationError: Invalid URL, empty event list or empty secret.
        """
        config = WebhookConfig(
            url=validate_webhook_url(url, allow_private=self.settings.allow_private_urls),
            events=_validate_events(events),
            secret=_validate_secret(secret),
            active=active,
            description=description,
        )
        await self.store.store_webhook(config)
        logger.info("Webhook %s registered for %s (%s)", config.id, config.url, config.events)
        return config

    async def get_webhook(self, webhook_id: str) -> WebhookConfig:
        """Get a config by ID.

        Raises:
            NotFoundError: No live config with that ID.
        """
        config = await self.store.get_webhook(webhook_id)
        if config is None:
            raise NotFoundError("webhook", webhook_id)
        return config

    async def list_webhooks(self, active_only: bool = False) -> list[WebhookConfig]:
        return await self.store.list_webhooks(active_only=active_only)

    async def update_webhook(
        self,
        webhook_id: str,
        *,
        url: str | None = None,
        events: list[str] | None = None,
        secret: str | None = None,
        active: bool | None = None,
        description: str | None = None,
    ) -> WebhookConfig:
        """Change fields of an existing config. Omitted fields are kept.

        Deactivating a config does not touch its pending deliveries; they
        fail on their next attempt.

        Raises:
            NotFoundError: No live config with that ID.
            ValidationError: A supplied value is invalid.
        """
        config = await self.get_webhook(webhook_id)

        if url is not None:
            config.url = validate_webhook_url(
                url, allow_private=self.settings.allow_private_urls
            )
        if events is not None:
            config.events = _validate_events(events)
        if secret is not None:
            config.secret = _validate_secret(secret)
        if active is not None:
            config.active = active
        if description is not None:
            config.description = description
        config.touch()

        updated = await self.store.update_webhook(config)
        logger.info("Webhook %s updated", webhook_id)
        return updated

    async def delete_webhook(self, webhook_id: str) -> None:
        """Soft-delete a config.

        Raises:
            NotFoundError: No live config with that ID.
        """
        if not await self.store.delete_webhook(webhook_id):
            raise NotFoundError("webhook", webhook_id)
        logger.info("Webhook %s deleted", webhook_id)

    async def send_test_webhook(self, url: str, secret: str) -> PingResult:
        """Send a signed ``test`` event to a URL without storing anything.

        Raises:
            ValidationError: The URL or secret is invalid.
        """
        validate_webhook_url(url, allow_private=self.settings.allow_private_urls)
        return await self.executor.send_test_webhook(url, _validate_secret(secret))
