"""Batch processing of due deliveries.

Fetches every pending delivery whose next attempt time has passed and
attempts them in fixed-size batches. Each batch runs concurrently and must
finish before the next one starts, which bounds in-flight requests to the
batch size.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from hookline.config import settings
from hookline.models import ProcessingSummary, WebhookDelivery, utc_now

if TYPE_CHECKING:
    from hookline.storage import WebhookStore

    from .delivery import DeliveryExecutor

logger = logging.getLogger(__name__)


class BatchProcessor:
    """Drives due deliveries through the executor.

    Intended to be called by an external scheduler. When runs overlap, each
    due delivery is sent by the run that claims it first; the other run
    finds a newer version and skips it. The claim is a version-checked
    write, which the in-memory store performs atomically. The Qdrant store
    checks and writes in two calls, so two processes that fetch the same
    delivery at the same moment can both send it. Run one scheduler per
    Qdrant deployment to rule that out.
    """

    def __init__(
        self,
        store: WebhookStore,
        executor: DeliveryExecutor,
        concurrency_limit: int | None = None,
        batch_limit: int | None = None,
    ) -> None:
        self._store = store
        self._executor = executor
        self._concurrency_limit = concurrency_limit or settings.retry.concurrency_limit
        self._batch_limit = batch_limit or settings.retry.batch_limit

    async def process_pending_deliveries(self, now: datetime | None = None) -> ProcessingSummary:
        """Attempt every delivery that is due.

        Args:
            now: Cut-off for ``next_attempt_at``. Defaults to the current time.

        Returns:
            Counts of deliveries found and how each attempt ended.
        """
        now = now or utc_now()
        due = await self._store.get_pending_deliveries(now, limit=self._batch_limit)
        summary = ProcessingSummary(found=len(due))

        if not due:
            logger.debug("No pending deliveries due")
            return summary

        logger.info("Processing %d pending webhook deliveries", len(due))

        for start in range(0, len(due), self._concurrency_limit):
            batch = due[start : start + self._concurrency_limit]
            results = await asyncio.gather(
                *(self._executor.attempt_delivery(d) for d in batch),
                return_exceptions=True,
            )
            summary.batches += 1
            for delivery, result in zip(batch, results, strict=True):
                self._tally(summary, delivery, result)

        logger.info(
            "Processed %d deliveries: %d delivered, %d rescheduled, %d failed, %d errors",
            summary.found,
            summary.delivered,
            summary.rescheduled,
            summary.failed,
            summary.errors,
        )
        return summary

    @staticmethod
    def _tally(
        summary: ProcessingSummary,
        delivery: WebhookDelivery,
        result: WebhookDelivery | BaseException | None,
    ) -> None:
        if isinstance(result, BaseException):
            logger.error("Delivery %s raised during processing: %s", delivery.id, result)
            summary.errors += 1
        elif result is None:
            summary.errors += 1
        elif result.status == "delivered":
            summary.delivered += 1
        elif result.status == "failed":
            summary.failed += 1
        else:
            summary.rescheduled += 1
