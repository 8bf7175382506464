"""WebhookDelivery model for tracking delivery of one event to one subscriber."""

from enum import Enum

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, func
from sqlalchemy.types import JSON

from grant_webhooks.core.database import Base
from grant_webhooks.models.shared import UUIDType, generate_uuid


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class WebhookDelivery(Base):
    """Attempt-tracked delivery of a single event to a single webhook config.

    ``webhook_config_id`` is a plain reference rather than a foreign key so
    delivery history outlives the config it was sent to.
    """

    __tablename__ = "webhook_deliveries"
    __table_args__ = (
        Index("ix_webhook_deliveries_webhook_config_id", "webhook_config_id"),
        Index("ix_webhook_deliveries_status", "status"),
        Index("ix_webhook_deliveries_next_retry_at", "next_retry_at"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    webhook_config_id = Column(UUIDType, nullable=False)
    event_type = Column(String(100), nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default=DeliveryStatus.PENDING.value)
    response_status = Column(Integer, nullable=True)
    response_body = Column(Text, nullable=True)
    attempt_count = Column(Integer, nullable=False, default=0)
    next_retry_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
