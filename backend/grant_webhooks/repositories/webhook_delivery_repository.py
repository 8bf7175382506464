"""WebhookDelivery repository for data access.

Every attempt outcome is persisted with a single UPDATE statement so a
crash can never leave a delivery half-recorded.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from grant_webhooks.models.shared import utc_now
from grant_webhooks.models.webhook_delivery import DeliveryStatus, WebhookDelivery


class WebhookDeliveryRepository:
    """Repository for WebhookDelivery model."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        webhook_config_id: UUID,
        event_type: str,
        payload: dict[str, Any],
    ) -> WebhookDelivery:
        """Create a new pending delivery."""
        delivery = WebhookDelivery(
            webhook_config_id=webhook_config_id,
            event_type=event_type,
            payload=payload,
            status=DeliveryStatus.PENDING.value,
            attempt_count=0,
        )
        self.db.add(delivery)
        self.db.commit()
        self.db.refresh(delivery)
        return delivery

    def get_by_id(self, delivery_id: UUID) -> WebhookDelivery | None:
        """Get a delivery by ID."""
        return self.db.query(WebhookDelivery).filter(WebhookDelivery.id == delivery_id).first()

    def get_all(
        self,
        webhook_config_id: UUID | None = None,
        status: str | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[WebhookDelivery]:
        """Get deliveries with optional filters, newest first."""
        query = self.db.query(WebhookDelivery)
        if webhook_config_id is not None:
            query = query.filter(WebhookDelivery.webhook_config_id == webhook_config_id)
        if status:
            query = query.filter(WebhookDelivery.status == status)
        return (
            query.order_by(WebhookDelivery.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def mark_delivered(
        self,
        delivery_id: UUID,
        response_status: int,
        response_body: str | None = None,
    ) -> bool:
        """Mark a delivery as delivered.

        Returns False when the delivery does not exist or was already
        delivered; a delivered record is never rewritten.
        """
        updated = (
            self.db.query(WebhookDelivery)
            .filter(
                WebhookDelivery.id == delivery_id,
                WebhookDelivery.status != DeliveryStatus.DELIVERED.value,
            )
            .update(
                {
                    WebhookDelivery.status: DeliveryStatus.DELIVERED.value,
                    WebhookDelivery.response_status: response_status,
                    WebhookDelivery.response_body: response_body,
                    WebhookDelivery.next_retry_at: None,
                    WebhookDelivery.delivered_at: utc_now(),
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated > 0

    def mark_failed(
        self,
        delivery_id: UUID,
        response_status: int | None = None,
        response_body: str | None = None,
        next_retry_at: datetime | None = None,
        expected_attempt_count: int | None = None,
    ) -> bool:
        """Record a failed attempt and the next retry time (None = give up).

        With ``expected_attempt_count`` the row is only written if no other
        worker has recorded an attempt since the count was read. Returns False
        when nothing was written.
        """
        query = self.db.query(WebhookDelivery).filter(
            WebhookDelivery.id == delivery_id,
            WebhookDelivery.status != DeliveryStatus.DELIVERED.value,
        )
        if expected_attempt_count is not None:
            query = query.filter(WebhookDelivery.attempt_count == expected_attempt_count)
        updated = query.update(
            {
                WebhookDelivery.status: DeliveryStatus.FAILED.value,
                WebhookDelivery.response_status: response_status,
                WebhookDelivery.response_body: response_body,
                WebhookDelivery.attempt_count: WebhookDelivery.attempt_count + 1,
                WebhookDelivery.next_retry_at: next_retry_at,
            },
            synchronize_session=False,
        )
        self.db.commit()
        return updated > 0

    def claim_retry(
        self,
        delivery_id: UUID,
        expected_attempt_count: int,
        lease_until: datetime,
        now: datetime | None = None,
    ) -> bool:
        """Take a due retry for this worker by pushing ``next_retry_at`` to ``lease_until``.

        Only one of several overlapping sweeps can claim a given attempt; a
        worker that dies mid-attempt leaves the row due again once the lease
        runs out.
        """
        if now is None:
            now = utc_now()
        updated = (
            self.db.query(WebhookDelivery)
            .filter(
                WebhookDelivery.id == delivery_id,
                WebhookDelivery.status == DeliveryStatus.FAILED.value,
                WebhookDelivery.attempt_count == expected_attempt_count,
                WebhookDelivery.next_retry_at.isnot(None),
                WebhookDelivery.next_retry_at <= now,
            )
            .update({WebhookDelivery.next_retry_at: lease_until}, synchronize_session=False)
        )
        self.db.commit()
        return updated > 0

    def abandon(self, delivery_id: UUID) -> None:
        """Unschedule a delivery without recording an attempt."""
        self.db.query(WebhookDelivery).filter(WebhookDelivery.id == delivery_id).update(
            {WebhookDelivery.next_retry_at: None},
            synchronize_session=False,
        )
        self.db.commit()

    def clear_pending_retries(self, webhook_config_id: UUID, commit: bool = True) -> int:
        """Unschedule every unfinished delivery of a config."""
        updated = (
            self.db.query(WebhookDelivery)
            .filter(
                WebhookDelivery.webhook_config_id == webhook_config_id,
                WebhookDelivery.status != DeliveryStatus.DELIVERED.value,
                WebhookDelivery.next_retry_at.isnot(None),
            )
            .update({WebhookDelivery.next_retry_at: None}, synchronize_session=False)
        )
        if commit:
            self.db.commit()
        return updated

    def find_due_retries(
        self,
        limit: int,
        max_attempts: int,
        now: datetime | None = None,
    ) -> list[WebhookDelivery]:
        """Get failed deliveries whose retry time has passed, oldest due first."""
        if now is None:
            now = utc_now()
        return (
            self.db.query(WebhookDelivery)
            .filter(
                WebhookDelivery.status == DeliveryStatus.FAILED.value,
                WebhookDelivery.next_retry_at.isnot(None),
                WebhookDelivery.next_retry_at <= now,
                WebhookDelivery.attempt_count < max_attempts,
            )
            .order_by(WebhookDelivery.next_retry_at.asc())
            .limit(limit)
            .all()
        )

    def delivery_stats(self, webhook_config_id: UUID | None = None) -> dict[str, int]:
        """Count deliveries by status, optionally for a single config."""
        query = self.db.query(
            func.count(WebhookDelivery.id).label("total"),
            func.sum(
                case((WebhookDelivery.status == DeliveryStatus.DELIVERED.value, 1), else_=0)
            ).label("delivered"),
            func.sum(
                case((WebhookDelivery.status == DeliveryStatus.FAILED.value, 1), else_=0)
            ).label("failed"),
            func.sum(
                case((WebhookDelivery.status == DeliveryStatus.PENDING.value, 1), else_=0)
            ).label("pending"),
        )
        if webhook_config_id is not None:
            query = query.filter(WebhookDelivery.webhook_config_id == webhook_config_id)
        row = query.one()
        return {
            "total": int(row.total or 0),
            "delivered": int(row.delivered or 0),
            "failed": int(row.failed or 0),
            "pending": int(row.pending or 0),
        }

    def delete_older_than(self, days: int) -> int:
        """Purge deliveries created more than ``days`` days ago."""
        cutoff = utc_now() - timedelta(days=days)
        deleted = (
            self.db.query(WebhookDelivery)
            .filter(WebhookDelivery.created_at < cutoff)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted
