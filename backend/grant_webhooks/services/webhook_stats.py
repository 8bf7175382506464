"""Delivery statistics for webhook observability."""

from uuid import UUID

from sqlalchemy.orm import Session

from grant_webhooks.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from grant_webhooks.schemas.webhook import DeliveryStats


class WebhookStatsService:
    """Read-only aggregation over webhook deliveries."""

    def __init__(self, db: Session):
        self.db = db
        self.delivery_repo = WebhookDeliveryRepository(db)

    def get_stats(self, webhook_config_id: UUID | None = None) -> DeliveryStats:
        """Get delivery counts and success rate, globally or for one config.

        ``success_rate`` is a percentage rounded to two decimals, 0 when there
        are no deliveries.
        """
        counts = self.delivery_repo.delivery_stats(webhook_config_id)
        total = counts["total"]
        success_rate = round(counts["delivered"] / total * 100, 2) if total > 0 else 0.0
        return DeliveryStats(
            total=total,
            delivered=counts["delivered"],
            failed=counts["failed"],
            pending=counts["pending"],
            success_rate=success_rate,
        )
