"""Retry scheduling for failed webhook deliveries."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from grant_webhooks.core.config import settings
from grant_webhooks.models.shared import utc_now
from grant_webhooks.models.webhook_delivery import WebhookDelivery
from grant_webhooks.repositories.webhook_delivery_repository import WebhookDeliveryRepository

if TYPE_CHECKING:
    from grant_webhooks.services.webhook_dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)

# Backoff after the Nth failed attempt (0-based): 1m, 5m, 30m, 2h
RETRY_DELAYS_SECONDS = [60, 300, 1800, 7200]


def compute_backoff(attempt_count: int) -> timedelta | None:
    """Return the wait before the next attempt, or None once the table is exhausted.

    Args:
        attempt_count: Attempts already recorded before the one that just failed.
    """
    if attempt_count < 0 or attempt_count >= len(RETRY_DELAYS_SECONDS):
        return None
    return timedelta(seconds=RETRY_DELAYS_SECONDS[attempt_count])


class RetryScheduler:
    """Schedules and sweeps retries of failed deliveries.

    Retry state lives entirely in ``webhook_deliveries.next_retry_at``, so any
    process can pick up a sweep where another left off.
    """

    def __init__(
        self,
        db: Session,
        max_attempts: int | None = None,
        batch_size: int | None = None,
        delay_seconds: float | None = None,
        lease_seconds: int | None = None,
    ):
        self.db = db
        self.delivery_repo = WebhookDeliveryRepository(db)
        self.max_attempts = (
            settings.WEBHOOK_MAX_ATTEMPTS if max_attempts is None else max_attempts
        )
        self.batch_size = (
            settings.WEBHOOK_RETRY_BATCH_SIZE if batch_size is None else batch_size
        )
        self.delay_seconds = (
            settings.WEBHOOK_RETRY_DELAY_MS / 1000 if delay_seconds is None else delay_seconds
        )
        self.lease_seconds = (
            settings.WEBHOOK_RETRY_LEASE_SECONDS if lease_seconds is None else lease_seconds
        )

    def schedule_retry(
        self, delivery: WebhookDelivery, now: datetime | None = None,
    ) -> datetime | None:
        """Compute when a delivery whose current attempt just failed should run again.

        Returns None when this failure uses up the last allowed attempt.
        """
        attempt_count = int(delivery.attempt_count or 0)
        if attempt_count + 1 >= self.max_attempts:
            return None
        backoff = compute_backoff(attempt_count)
        if backoff is None:
            return None
        return (now or utc_now()) + backoff

    def due_for_retry(self, now: datetime | None = None) -> list[WebhookDelivery]:
        """Get the next batch of failed deliveries whose retry time has passed."""
        return self.delivery_repo.find_due_retries(
            limit=self.batch_size,
            max_attempts=self.max_attempts,
            now=now,
        )

    def process_retries(self, dispatcher: WebhookDispatcher, now: datetime | None = None) -> int:
        """Re-attempt every due delivery, one at a time.

        Each delivery is claimed before it is attempted; one already claimed
        by an overlapping sweep is skipped.

        Returns:
            Number of deliveries attempted.
        """
        due = self.due_for_retry(now)
        if not due:
            return 0

        logger.info("Processing %d webhook retries", len(due))
        # Read up front; each dispatch commits and expires the batch
        batch = [
            (delivery.id, int(delivery.attempt_count or 0), delivery) for delivery in due
        ]
        attempted = 0
        for index, (delivery_id, attempt_count, delivery) in enumerate(batch):
            if index and self.delay_seconds > 0:
                time.sleep(self.delay_seconds)
            claimed_at = now or utc_now()
            if not self.delivery_repo.claim_retry(
                delivery_id,
                attempt_count,
                lease_until=claimed_at + timedelta(seconds=self.lease_seconds),
                now=claimed_at,
            ):
                logger.debug("Webhook delivery %s claimed by another sweep, skipping", delivery_id)
                continue
            try:
                dispatcher.deliver(delivery)
            except Exception:
                logger.exception("Unexpected error retrying webhook delivery %s", delivery_id)
                self.db.rollback()
            attempted += 1
        return attempted
