"""Webhook event routing: fan-out of domain events to subscribed configs."""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from grant_webhooks.core.config import settings
from grant_webhooks.models.shared import utc_now
from grant_webhooks.models.webhook_config import WebhookConfig
from grant_webhooks.models.webhook_delivery import WebhookDelivery
from grant_webhooks.repositories.webhook_config_repository import WebhookConfigRepository
from grant_webhooks.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from grant_webhooks.schemas.webhook import (
    TEST_EVENT_TYPE,
    DeadlineReminderData,
    DeliveryStats,
    GrantSummary,
    NewGrantMatchData,
    NewGrantsDiscoveredData,
    SubmissionUpdateData,
    WebhookEvent,
)
from grant_webhooks.services.webhook_dispatcher import DeliveryRequest, WebhookDispatcher
from grant_webhooks.services.webhook_retry import RetryScheduler
from grant_webhooks.services.webhook_stats import WebhookStatsService

logger = logging.getLogger(__name__)


def build_event_payload(event: WebhookEvent, config: WebhookConfig) -> dict[str, Any]:
    """Build the JSON body delivered to a subscriber for an event."""
    return {
        "event_type": event.event_type,
        "timestamp": event.timestamp.isoformat(),
        "data": event.model_dump(mode="json", include={"data"})["data"],
        "webhook": {
            "id": str(config.id),
            "name": config.name,
        },
    }


class WebhookService:
    """Entry point for domain code emitting webhook events."""

    def __init__(self, db: Session):
        self.db = db
        self.config_repo = WebhookConfigRepository(db)
        self.delivery_repo = WebhookDeliveryRepository(db)
        self.retry_scheduler = RetryScheduler(db)
        self.dispatcher = WebhookDispatcher(db, self.retry_scheduler)
        self.stats_service = WebhookStatsService(db)

    def trigger_event(self, event: WebhookEvent) -> list[WebhookDelivery]:
        """Fan an event out to every active config subscribed to it.

        Creates one pending delivery per matching config, then sends all of
        them concurrently and records each outcome. A failure for one config
        is logged and never affects the others; this method does not raise.

        Returns:
            The deliveries created, in config order.
        """
        try:
            configs = self.config_repo.find_active_for_event(event.event_type, event.org_id)
        except Exception:
            logger.exception("Error loading webhook configs for event %s", event.event_type)
            self.db.rollback()
            return []

        if not configs:
            logger.debug(
                "No webhook configs found for event %s (org %s)",
                event.event_type,
                event.org_id,
            )
            return []

        prepared: list[tuple[WebhookDelivery, DeliveryRequest]] = []
        for config in configs:
            config_id = config.id
            delivery_id = None
            try:
                delivery = self.delivery_repo.create(
                    webhook_config_id=config_id,  # type: ignore[arg-type]
                    event_type=event.event_type,
                    payload=build_event_payload(event, config),
                )
                delivery_id = delivery.id
                prepared.append((delivery, self.dispatcher.build_request(delivery, config)))
            except Exception as exc:
                logger.exception(
                    "Error preparing webhook delivery for config %s (event %s)",
                    config_id,
                    event.event_type,
                )
                self.db.rollback()
                if delivery_id is not None:
                    self._fail_for_retry(delivery_id, exc)  # type: ignore[arg-type]

        requests = [request for _, request in prepared]
        outcomes = self.dispatcher.send_many(requests)
        for request, outcome in zip(requests, outcomes, strict=True):
            try:
                self.dispatcher.record(request, outcome)
            except Exception as exc:
                logger.exception(
                    "Error recording outcome of webhook delivery %s", request.delivery_id
                )
                self.db.rollback()
                self._fail_for_retry(request.delivery_id, exc)

        logger.info(
            "Webhook event %s triggered for %d configs (org %s)",
            event.event_type,
            len(prepared),
            event.org_id,
        )
        return [delivery for delivery, _ in prepared]

    def _fail_for_retry(self, delivery_id: UUID, error: Exception) -> None:
        try:
            self.dispatcher.record_error(delivery_id, error)
        except Exception:
            logger.exception("Could not schedule a retry for webhook delivery %s", delivery_id)
            self.db.rollback()

    def deliver(self, delivery: WebhookDelivery, config: WebhookConfig | None = None) -> bool:
        """Attempt a single delivery now."""
        return self.dispatcher.deliver(delivery, config)

    def process_retries(self, now: datetime | None = None) -> int:
        """Re-attempt failed deliveries whose retry time has passed.

        Returns:
            Number of deliveries attempted.
        """
        return self.retry_scheduler.process_retries(self.dispatcher, now)

    def get_stats(self, webhook_config_id: UUID | None = None) -> DeliveryStats:
        return self.stats_service.get_stats(webhook_config_id)

    def cleanup_old_deliveries(self, days_old: int | None = None) -> int:
        """Purge deliveries older than ``days_old`` days (retention setting by default)."""
        if days_old is None:
            days_old = settings.WEBHOOK_RETENTION_DAYS
        deleted = self.delivery_repo.delete_older_than(days_old)
        if deleted:
            logger.info("Purged %d webhook deliveries older than %d days", deleted, days_old)
        return deleted

    def send_test_webhook(self, config_id: UUID) -> WebhookDelivery:
        """Create and immediately dispatch a test delivery for a config.

        Raises:
            LookupError: If the config does not exist.
        """
        config = self.config_repo.get_by_id(config_id)
        if not config:
            raise LookupError(f"Webhook config {config_id} not found")

        delivery = self.delivery_repo.create(
            webhook_config_id=config.id,  # type: ignore[arg-type]
            event_type=TEST_EVENT_TYPE,
            payload={
                "message": "Test webhook delivery",
                "timestamp": utc_now().isoformat(),
                "webhook_config": {
                    "id": str(config.id),
                    "name": config.name,
                    "url": config.url,
                },
            },
        )
        delivery_id = delivery.id
        try:
            self.dispatcher.deliver(delivery, config)
        except Exception as exc:
            logger.exception("Error sending test webhook delivery %s", delivery_id)
            self.db.rollback()
            self._fail_for_retry(delivery_id, exc)  # type: ignore[arg-type]
        return delivery

    # ----- Domain events -----

    def _emit(
        self, event_type: str, data: BaseModel, org_id: UUID | None = None,
    ) -> list[WebhookDelivery]:
        return self.trigger_event(
            WebhookEvent(
                event_type=event_type,
                org_id=org_id,
                data=data.model_dump(mode="json"),
            )
        )

    def notify_new_grant_match(
        self, org_id: UUID, grant: GrantSummary, match_score: float,
    ) -> list[WebhookDelivery]:
        try:
            data = NewGrantMatchData(
                grant=grant,
                match_score=match_score,
                message=f"New grant match found: {grant.title}",
            )
        except ValidationError as exc:
            logger.error("Invalid new grant match notification for grant %s: %s", grant.id, exc)
            return []
        return self._emit("new_grant_match", data, org_id)

    def notify_deadline_reminder(
        self, org_id: UUID, grant: GrantSummary, days_until_deadline: int,
    ) -> list[WebhookDelivery]:
        try:
            data = DeadlineReminderData(
                grant=grant,
                days_until_deadline=days_until_deadline,
                message=(
                    f"Grant deadline approaching: {grant.title} "
                    f"({days_until_deadline} days remaining)"
                ),
            )
        except ValidationError as exc:
            logger.error("Invalid deadline reminder for grant %s: %s", grant.id, exc)
            return []
        return self._emit("deadline_reminder", data, org_id)

    def notify_submission_update(
        self, org_id: UUID, submission_id: str, status: str,
    ) -> list[WebhookDelivery]:
        data = SubmissionUpdateData(
            submission_id=submission_id,
            new_status=status,
            message=f"Grant submission status updated: {status}",
        )
        return self._emit("submission_update", data, org_id)

    def notify_new_grants_discovered(self, source_id: str, count: int) -> list[WebhookDelivery]:
        """Broadcast a crawler discovery to every organization's subscribers."""
        try:
            data = NewGrantsDiscoveredData(
                source_id=source_id,
                grants_count=count,
                message=f"{count} new grants discovered from crawler",
            )
        except ValidationError as exc:
            logger.error("Invalid new grants discovered notification from %s: %s", source_id, exc)
            return []
        return self._emit("new_grants_discovered", data)
