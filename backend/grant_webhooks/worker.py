import logging
from typing import Any

from arq import cron

from grant_webhooks.core.database import SessionLocal
from grant_webhooks.schemas.webhook import WebhookEvent
from grant_webhooks.services.webhook_service import WebhookService
from grant_webhooks.tasks import redis_settings

logger = logging.getLogger(__name__)


async def process_webhook_retries_task(ctx: dict[str, Any]) -> int:
    """Background task: re-attempt failed webhook deliveries that are due.

    Runs every minute.
    """
    db = SessionLocal()
    try:
        service = WebhookService(db)
        count = service.process_retries()
        if count > 0:
            logger.info("Retried %d webhook deliveries", count)
        return count
    finally:
        db.close()


async def cleanup_old_deliveries_task(ctx: dict[str, Any]) -> int:
    """Background task: purge webhook deliveries past the retention period.

    Runs daily.
    """
    db = SessionLocal()
    try:
        service = WebhookService(db)
        return service.cleanup_old_deliveries()
    finally:
        db.close()


async def trigger_webhook_event_task(ctx: dict[str, Any], event: dict[str, Any]) -> int:
    """Background task: fan out an event queued with ``enqueue_webhook_event``.

    Args:
        ctx: ARQ worker context.
        event: JSON-serialized ``WebhookEvent``.

    Returns:
        Number of deliveries created.
    """
    db = SessionLocal()
    try:
        service = WebhookService(db)
        deliveries = service.trigger_event(WebhookEvent.model_validate(event))
        return len(deliveries)
    finally:
        db.close()


class WorkerSettings:
    functions = [
        process_webhook_retries_task,
        cleanup_old_deliveries_task,
        trigger_webhook_event_task,
    ]
    cron_jobs = [
        cron(process_webhook_retries_task, second=0),  # every minute
        cron(cleanup_old_deliveries_task, hour=3, minute=0),  # daily at 03:00
    ]
    redis_settings = redis_settings
