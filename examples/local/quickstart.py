#!/usr/bin/env python3
"""Hookline quickstart demo.

Registers a subscriber, publishes two domain events and runs the batch
processor against a simulated endpoint that fails once before recovering.
Then it shows the retry schedule, a dead-lettered delivery and its replay.

No external dependencies required - the endpoint is an in-process
httpx.MockTransport and storage is in memory.
"""

import asyncio
from datetime import timedelta

import httpx

from hookline.config import RetryPolicy, Settings
from hookline.models import utc_now
from hookline.service import WebhookService
from hookline.storage import InMemoryWebhookStore
from hookline.webhooks import verify_signature

SECRET = "quickstart_secret"


class FlakyEndpoint:
    """Receiver that verifies signatures and answers from a script."""

    def __init__(self, *statuses: int) -> None:
        self.statuses = list(statuses)
        self.received = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.received += 1
        body = request.content.decode()
        signature = request.headers["X-Webhook-Signature"]
        valid = verify_signature(body, SECRET, signature)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        print(f"  <- {request.headers['X-Webhook-ID']} signature_valid={valid} -> {status}")
        return httpx.Response(status)


async def main() -> None:
    print("=" * 70)
    print("Hookline Quickstart")
    print("=" * 70)

    settings = Settings(
        _env_file=None,
        log_format="text",
        log_level="WARNING",
        retry=RetryPolicy(max_retries=2),
    )
    endpoint = FlakyEndpoint(200, 503, 200)

    async with httpx.AsyncClient(transport=httpx.MockTransport(endpoint)) as client:
        service = WebhookService(
            store=InMemoryWebhookStore(), settings=settings, http_client=client
        )
        async with service:
            config = await service.register_webhook(
                url="https://partner.example.com/hooks",
                events=["grade.created", "user.created"],
                secret=SECRET,
                description="Partner gradebook sync",
            )
            print(f"\nRegistered {config.id} for {config.events}")

            # -----------------------------------------------------------------
            # Publish and deliver
            # -----------------------------------------------------------------
            print("\n1. Publishing two events")
            await service.trigger_event("grade.created", {"gradeId": "g1", "score": 95})
            await service.trigger_event("user.created", {"userId": "u7"})
            skipped = await service.trigger_event("course.archived", {"courseId": "c1"})
            print(f"  course.archived has no subscribers: event={skipped.event}")

            summary = await service.process_pending_deliveries()
            print(
                f"  found={summary.found} delivered={summary.delivered} "
                f"rescheduled={summary.rescheduled}"
            )

            # -----------------------------------------------------------------
            # Retry schedule
            # -----------------------------------------------------------------
            print("\n2. Waiting out the retry delay")
            summary = await service.process_pending_deliveries()
            print(f"  immediately after: found={summary.found} (not due yet)")
            later = utc_now() + timedelta(minutes=10)
            summary = await service.process_pending_deliveries(later)
            print(f"  ten minutes later: delivered={summary.delivered}")

            # -----------------------------------------------------------------
            # Dead letters
            # -----------------------------------------------------------------
            print("\n3. Exhausting retries on a failing endpoint")
            endpoint.statuses = [500]
            await service.trigger_event("grade.created", {"gradeId": "g2"})
            await service.process_pending_deliveries()
            await service.process_pending_deliveries(utc_now() + timedelta(hours=1))

            for entry in await service.list_dead_letters():
                print(f"  dead letter {entry.id}: {entry.event_type} status={entry.status}")
                endpoint.statuses = [200]
                delivery = await service.replay_dead_letter(entry.id)
                print(f"  replayed as {delivery.id} ({delivery.status})")
            await service.process_pending_deliveries()

            stats = await service.get_delivery_stats()
            print(
                f"\nStats: {stats.delivered} delivered, {stats.pending} pending, "
                f"{stats.dead_letters} dead letters, success rate {stats.success_rate:.0f}%"
            )
            print(f"Endpoint received {endpoint.received} requests")


if __name__ == "__main__":
    asyncio.run(main())
