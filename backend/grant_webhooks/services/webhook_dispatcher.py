"""Single-attempt HTTP delivery of webhook payloads."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from grant_webhooks.core.config import settings
from grant_webhooks.models.webhook_config import WebhookConfig
from grant_webhooks.models.webhook_delivery import DeliveryStatus, WebhookDelivery
from grant_webhooks.repositories.webhook_config_repository import WebhookConfigRepository
from grant_webhooks.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from grant_webhooks.services.webhook_retry import RetryScheduler
from grant_webhooks.services.webhook_signing import (
    SIGNATURE_HEADER,
    SIGNATURE_PREFIX,
    generate_hmac_signature,
    serialize_payload,
)

logger = logging.getLogger(__name__)


@dataclass
class DeliveryRequest:
    """Everything needed to POST one delivery, detached from the ORM session."""

    delivery_id: UUID
    config_id: UUID
    event_type: str
    url: str
    content: bytes
    headers: dict[str, str]


@dataclass
class DeliveryOutcome:
    """Result of one HTTP attempt."""

    accepted: bool
    status_code: int | None = None
    body: str | None = None


def _truncate(text: str | None) -> str | None:
    if not text:
        return None
    return text[: settings.WEBHOOK_RESPONSE_BODY_LIMIT]


class WebhookDispatcher:
    """Performs delivery attempts and records their outcome.

    ``send`` and ``send_many`` only do HTTP I/O on ``DeliveryRequest`` objects
    and are safe to run off the session's thread; ``build_request`` and
    ``record`` touch the database and must stay on it.
    """

    def __init__(self, db: Session, scheduler: RetryScheduler | None = None):
        self.db = db
        self.config_repo = WebhookConfigRepository(db)
        self.delivery_repo = WebhookDeliveryRepository(db)
        self.scheduler = scheduler or RetryScheduler(db)

    def build_request(self, delivery: WebhookDelivery, config: WebhookConfig) -> DeliveryRequest:
        """Serialize the payload and build headers, signing when the config has a secret."""
        content = serialize_payload(delivery.payload)  # type: ignore[arg-type]
        headers = {
            "Content-Type": "application/json",
            "User-Agent": settings.WEBHOOK_USER_AGENT,
        }
        if config.secret_key:
            # Signed over the exact bytes that go on the wire
            headers[SIGNATURE_HEADER] = SIGNATURE_PREFIX + generate_hmac_signature(
                content, str(config.secret_key)
            )
        return DeliveryRequest(
            delivery_id=delivery.id,  # type: ignore[arg-type]
            config_id=config.id,  # type: ignore[arg-type]
            event_type=str(delivery.event_type),
            url=str(config.url),
            content=content,
            headers=headers,
        )

    def send(self, request: DeliveryRequest) -> DeliveryOutcome:
        """POST a delivery once.

        Any status below 500 counts as accepted: a 4xx means the receiver got
        the payload and rejected it, which retrying will not change.
        """
        try:
            with httpx.Client(
                timeout=settings.WEBHOOK_TIMEOUT_SECONDS,
                follow_redirects=False,
            ) as client:
                resp = client.post(
                    request.url,
                    content=request.content,
                    headers=request.headers,
                )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning(
                "Webhook delivery %s to %s raised %s: %s",
                request.delivery_id,
                request.url,
                exc.__class__.__name__,
                exc,
            )
            return DeliveryOutcome(
                accepted=False,
                body=_truncate(str(exc)) or exc.__class__.__name__,
            )

        return DeliveryOutcome(
            accepted=resp.status_code < 500,
            status_code=resp.status_code,
            body=_truncate(resp.text),
        )

    def _send_isolated(self, request: DeliveryRequest) -> DeliveryOutcome:
        try:
            return self.send(request)
        except Exception as exc:
            logger.exception("Unexpected error sending webhook delivery %s", request.delivery_id)
            return DeliveryOutcome(accepted=False, body=_truncate(str(exc)))

    def send_many(self, requests: list[DeliveryRequest]) -> list[DeliveryOutcome]:
        """Send several deliveries concurrently, one outcome per request, in order.

        A slow or failing endpoint only occupies its own worker thread.
        """
        if not requests:
            return []
        if len(requests) == 1:
            return [self._send_isolated(requests[0])]

        workers = max(1, min(len(requests), settings.WEBHOOK_MAX_CONCURRENCY))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="webhook-send") as pool:
            return list(pool.map(self._send_isolated, requests))

    def record(self, request: DeliveryRequest, outcome: DeliveryOutcome) -> bool:
        """Persist the outcome of an attempt.

        Returns:
            True if the delivery is now delivered, False otherwise.
        """
        if outcome.accepted:
            if self.delivery_repo.mark_delivered(
                request.delivery_id, outcome.status_code, outcome.body,  # type: ignore[arg-type]
            ):
                self.config_repo.touch_last_triggered(request.config_id)
            logger.info(
                "Webhook delivery %s delivered to %s (status %s, event %s)",
                request.delivery_id,
                request.url,
                outcome.status_code,
                request.event_type,
            )
            return True

        delivery = self.delivery_repo.get_by_id(request.delivery_id)
        if delivery is None:
            logger.error(
                "Webhook delivery %s vanished before its outcome was recorded",
                request.delivery_id,
            )
            return False

        attempt = int(delivery.attempt_count or 0)
        next_retry_at = self.scheduler.schedule_retry(delivery)
        if not self.delivery_repo.mark_failed(
            request.delivery_id,
            response_status=outcome.status_code,
            response_body=outcome.body,
            next_retry_at=next_retry_at,
            expected_attempt_count=attempt,
        ):
            logger.info(
                "Webhook delivery %s attempt %d was already recorded elsewhere, skipping",
                request.delivery_id,
                attempt + 1,
            )
            return False
        if next_retry_at is None:
            logger.warning(
                "Webhook delivery %s to %s failed on attempt %d, giving up: %s",
                request.delivery_id,
                request.url,
                attempt + 1,
                outcome.body,
            )
        else:
            logger.warning(
                "Webhook delivery %s to %s failed on attempt %d, retrying at %s: %s",
                request.delivery_id,
                request.url,
                attempt + 1,
                next_retry_at.isoformat(),
                outcome.body,
            )
        return False

    def record_error(self, delivery_id: UUID, error: Exception) -> None:
        """Fail a delivery whose attempt broke outside the HTTP call.

        The attempt is counted and a retry scheduled, so the row is picked up
        by the next sweep instead of staying pending forever.
        """
        self.db.rollback()
        delivery = self.delivery_repo.get_by_id(delivery_id)
        if delivery is None or delivery.status == DeliveryStatus.DELIVERED.value:
            return

        attempt = int(delivery.attempt_count or 0)
        next_retry_at = self.scheduler.schedule_retry(delivery)
        self.delivery_repo.mark_failed(
            delivery_id,
            response_body=_truncate(str(error)) or error.__class__.__name__,
            next_retry_at=next_retry_at,
            expected_attempt_count=attempt,
        )
        if next_retry_at is None:
            logger.warning(
                "Webhook delivery %s errored on attempt %d, giving up", delivery_id, attempt + 1
            )
        else:
            logger.warning(
                "Webhook delivery %s errored on attempt %d, retrying at %s",
                delivery_id,
                attempt + 1,
                next_retry_at.isoformat(),
            )

    def deliver(self, delivery: WebhookDelivery, config: WebhookConfig | None = None) -> bool:
        """Attempt a delivery and record the outcome.

        Loads the config when not supplied. A delivery whose config no longer
        exists is unscheduled and left alone. Calling this on an already
        delivered record changes nothing.

        Returns:
            True if the delivery is delivered, False otherwise.
        """
        if delivery.status == DeliveryStatus.DELIVERED.value:
            logger.debug("Webhook delivery %s already delivered, skipping", delivery.id)
            return True

        if config is None:
            config = self.config_repo.get_by_id(delivery.webhook_config_id)  # type: ignore[arg-type]
            if config is None:
                logger.error(
                    "Webhook config %s not found for delivery %s",
                    delivery.webhook_config_id,
                    delivery.id,
                )
                self.delivery_repo.abandon(delivery.id)  # type: ignore[arg-type]
                return False

        request = self.build_request(delivery, config)
        outcome = self.send(request)
        return self.record(request, outcome)
