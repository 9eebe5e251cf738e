"""Single-attempt webhook delivery with HMAC signatures and scheduled retry.

``DeliveryExecutor.attempt_delivery`` performs exactly one HTTP attempt for
one delivery and writes the resulting state transition:

- 2xx: delivered, and the event is marked processed
- non-2xx, timeout or network error: retried on the escalating delay table,
  or archived to the dead letter queue once ``max_retries`` is reached
- breaker open: failed for this cycle without using an attempt
- missing config/event or inactive config: failed, never retried

The method never raises. Anything unexpected is logged and routed to the
retry path so a single bad delivery cannot abort a batch.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from hookline.config import RetryPolicy, settings
from hookline.exceptions import CircuitOpenError, ConcurrencyError
from hookline.models import (
    MAX_ERROR_LENGTH,
    PingResult,
    WebhookPayload,
    generate_id,
    utc_now,
)

from .dead_letter import DeadLetterArchiver
from .signing import compute_signature

if TYPE_CHECKING:
    from tenacity.wait import wait_base

    from hookline.models import WebhookConfig, WebhookDelivery, WebhookEvent
    from hookline.storage import WebhookStore

    from .breaker import CircuitBreakerRegistry

logger = logging.getLogger(__name__)

CONFIG_NOT_FOUND_ERROR = "Configuration or event not found"
INACTIVE_CONFIG_ERROR = "Webhook configuration is inactive"
TIMEOUT_ERROR = "Request timeout"

# Attempts made by a test ping before giving up
PING_ATTEMPTS = 3


def build_payload(event: WebhookEvent) -> WebhookPayload:
    """Build the wire body for an event."""
    return WebhookPayload.for_event(event)


def _describe_error(exc: BaseException) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return TIMEOUT_ERROR
    return str(exc) or type(exc).__name__


class DeliveryExecutor:
    """Performs delivery attempts and records their outcome.

    Example:
        ```python
        executor = DeliveryExecutor(store, CircuitBreakerRegistry())
        updated = await executor.attempt_delivery(delivery)
        ```
    """

    def __init__(
        self,
        store: WebhookStore,
        breakers: CircuitBreakerRegistry,
        retry_policy: RetryPolicy | None = None,
        user_agent: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        archiver: DeadLetterArchiver | None = None,
        ping_wait: wait_base | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            store: Storage for configs, events and deliveries.
            breakers: Registry supplying one breaker per destination URL.
            retry_policy: Retry ceiling, delay table and timeout.
                Defaults to settings.retry.
            user_agent: User-Agent header. Defaults to settings.user_agent.
            http_client: Shared client. When omitted, each request opens
                its own short-lived client.
            archiver: Dead letter archiver. Defaults to one on ``store``.
            ping_wait: Tenacity wait strategy between test ping attempts.
        """
        self._store = store
        self._breakers = breakers
        self._policy = retry_policy or settings.retry
        self._user_agent = user_agent or settings.user_agent
        self._http_client = http_client
        self._archiver = archiver or DeadLetterArchiver(store)
        self._ping_wait = ping_wait or wait_exponential(multiplier=1, min=1, max=10)

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._policy

    def _build_headers(self, payload: WebhookPayload, body: str, secret: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Webhook-Signature": compute_signature(body, secret),
            "X-Webhook-ID": payload.id,
            "X-Webhook-Timestamp": payload.timestamp,
            "User-Agent": self._user_agent,
        }

    async def _post(self, url: str, body: str, headers: dict[str, str]) -> httpx.Response:
        timeout = self._policy.request_timeout_seconds
        if self._http_client is not None:
            return await self._http_client.post(
                url, content=body, headers=headers, timeout=timeout
            )
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.post(url, content=body, headers=headers)

    async def attempt_delivery(self, delivery: WebhookDelivery) -> WebhookDelivery | None:
        """Make one delivery attempt and persist the outcome.

        The stored record is re-read and must still be pending at the
        version of ``delivery``; otherwise another run has already picked
        it up and nothing is sent. Before the request goes out the delivery
        is claimed with a version-checked write, so a second run holding the
        same snapshot skips it.

        Args:
            delivery: The delivery as fetched by the caller.

        Returns:
            The updated delivery, or None if nothing was written (the
            delivery changed since it was fetched, or another worker won
            the write).
        """
        try:
            return await self._attempt(delivery)
        except ConcurrencyError as e:
            logger.info("Delivery %s was updated concurrently, skipping: %s", delivery.id, e)
            return None
        except Exception as e:
            logger.exception("Unexpected error delivering %s", delivery.id)
            try:
                return await self._record_unexpected_failure(delivery.id, _describe_error(e))
            except Exception:
                logger.exception("Could not record failure for delivery %s", delivery.id)
                return None

    async def _attempt(self, delivery: WebhookDelivery) -> WebhookDelivery | None:
        current = await self._store.get_delivery(delivery.id)
        if current is None or current.status != "pending":
            logger.debug("Delivery %s is no longer pending, skipping", delivery.id)
            return None
        if current.version != delivery.version:
            logger.debug("Delivery %s changed since it was fetched, skipping", delivery.id)
            return None

        config = await self._store.get_webhook(current.webhook_config_id)
        event = await self._store.get_event(current.event_id)

        if config is None or event is None:
            logger.warning(
                "Delivery %s failed: config %s or event %s not found",
                current.id,
                current.webhook_config_id,
                current.event_id,
            )
            current.mark_failed(CONFIG_NOT_FOUND_ERROR)
            return await self._store.update_delivery(current)

        if not config.active:
            logger.warning("Delivery %s failed: config %s is inactive", current.id, config.id)
            current.mark_failed(INACTIVE_CONFIG_ERROR)
            return await self._store.update_delivery(current)

        payload = build_payload(event)
        body = payload.to_json()
        headers = self._build_headers(payload, body, config.secret)
        breaker = self._breakers.get_or_create(config.url)

        # Claim: bumps the version so overlapping runs holding the old one skip
        current.touch()
        current = await self._store.update_delivery(current)

        try:
            response = await breaker.execute(lambda: self._post(config.url, body, headers))
        except CircuitOpenError as e:
            logger.warning("Delivery %s not attempted: %s", current.id, e.message)
            current.mark_failed(e.message)
            return await self._store.update_delivery(current)
        except Exception as e:
            logger.warning("Delivery %s to %s errored: %s", current.id, config.url, e)
            return await self._handle_failure(current, config, 0, _describe_error(e))

        if 200 <= response.status_code < 300:
            current.mark_delivered(response.status_code)
            updated = await self._store.update_delivery(current)
            logger.info(
                "Webhook delivered: %s to %s (status %d, attempt %d)",
                event.event_type,
                config.url,
                response.status_code,
                updated.attempts,
            )
            await self._mark_event_processed(event.id)
            return updated

        error = response.text[:MAX_ERROR_LENGTH] or f"HTTP {response.status_code}"
        return await self._handle_failure(current, config, response.status_code, error)

    async def _handle_failure(
        self,
        delivery: WebhookDelivery,
        config: WebhookConfig,
        status_code: int,
        error: str,
    ) -> WebhookDelivery:
        """Count a failed attempt, then reschedule or archive.

        At the ceiling the failed state is written before the dead letter
        entry. Only the writer that wins that version-checked update
        archives, so a delivery is archived at most once.
        """
        attempts = delivery.attempts + 1

        if attempts >= self._policy.max_retries:
            delivery.attempts = attempts
            delivery.mark_failed(f"Max retries exceeded: {error}", status_code=status_code)
            failed = await self._store.update_delivery(delivery)
            logger.warning(
                "Webhook max retries exceeded: delivery %s to %s after %d attempts",
                failed.id,
                config.url,
                attempts,
            )
            await self._archiver.archive(failed, config, status_code, error)
            return failed

        delay_seconds = self._policy.delay_for(attempts)
        next_attempt_at = utc_now() + timedelta(seconds=delay_seconds)
        delivery.schedule_retry(next_attempt_at, error, status_code, attempts)
        logger.info(
            "Webhook scheduled for retry: delivery %s to %s (attempt %d failed, next at %s)",
            delivery.id,
            config.url,
            attempts,
            next_attempt_at.isoformat(),
        )
        return await self._store.update_delivery(delivery)

    async def _record_unexpected_failure(
        self, delivery_id: str, error: str
    ) -> WebhookDelivery | None:
        current = await self._store.get_delivery(delivery_id)
        if current is None or current.status != "pending":
            return None
        config = await self._store.get_webhook(current.webhook_config_id)
        if config is None:
            current.mark_failed(CONFIG_NOT_FOUND_ERROR)
            return await self._store.update_delivery(current)
        return await self._handle_failure(current, config, 0, error)

    async def _mark_event_processed(self, event_id: str) -> None:
        event = await self._store.get_event(event_id)
        if event is None or event.processed:
            return
        event.processed = True
        event.touch()
        try:
            await self._store.update_event(event)
        except ConcurrencyError:
            # Another delivery of the same event got there first
            logger.debug("Event %s already marked processed", event_id)

    async def send_test_webhook(self, url: str, secret: str) -> PingResult:
        """Send a signed ``test`` event to ``url`` without persisting anything.

        The request goes through the URL's breaker. Transport errors and
        non-2xx responses are retried up to ``PING_ATTEMPTS`` times; an open
        breaker ends the ping immediately.
        """
        payload = WebhookPayload(
            id=generate_id("test"),
            event_type="test",
            data={"message": "Webhook test payload"},
            timestamp=utc_now().isoformat(),
        )
        body = payload.to_json()
        headers = self._build_headers(payload, body, secret)
        breaker = self._breakers.get_or_create(url)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(PING_ATTEMPTS),
            wait=self._ping_wait,
            retry=retry_if_exception_type(httpx.HTTPError),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    response = await breaker.execute(lambda: self._post(url, body, headers))
                    response.raise_for_status()
                    logger.info("Test webhook sent to %s (status %d)", url, response.status_code)
                    return PingResult(
                        success=True,
                        status_code=response.status_code,
                        response=response.text[:MAX_ERROR_LENGTH],
                    )
        except CircuitOpenError as e:
            logger.warning("Test webhook to %s skipped: %s", url, e.message)
            return PingResult(
                success=False,
                error="Circuit breaker is open for this webhook URL. Please wait before retrying.",
            )
        except httpx.HTTPStatusError as e:
            logger.error("Test webhook to %s failed after retries: %s", url, e)
            return PingResult(
                success=False,
                status_code=e.response.status_code,
                response=e.response.text[:MAX_ERROR_LENGTH],
                error=f"HTTP {e.response.status_code}",
            )
        except httpx.HTTPError as e:
            logger.error("Test webhook to %s failed after retries: %s", url, e)
            return PingResult(success=False, error=_describe_error(e))

        return PingResult(success=False, error="No attempt was made")
