"""WebhookConfig model for subscriber registrations."""

from sqlalchemy import Boolean, Column, DateTime, Index, String, func
from sqlalchemy.types import JSON

from grant_webhooks.core.database import Base
from grant_webhooks.models.shared import UUIDType, generate_uuid


class WebhookConfig(Base):
    """A subscriber URL registered for a set of event types."""

    __tablename__ = "webhook_configs"
    __table_args__ = (
        Index("ix_webhook_configs_org_id", "org_id"),
        Index("ix_webhook_configs_is_active", "is_active"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    org_id = Column(UUIDType, nullable=True)
    name = Column(String(255), nullable=False)
    url = Column(String(2048), nullable=False)
    events = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    secret_key = Column(String(255), nullable=True)
    last_triggered_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
