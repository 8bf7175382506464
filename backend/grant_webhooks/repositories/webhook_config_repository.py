"""WebhookConfig repository for data access."""

from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from grant_webhooks.models.shared import utc_now
from grant_webhooks.models.webhook_config import WebhookConfig
from grant_webhooks.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from grant_webhooks.schemas.webhook import WebhookConfigCreate, WebhookConfigUpdate


class WebhookConfigRepository:
    """Repository for WebhookConfig model."""

    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self, org_id: UUID | None = None, skip: int = 0, limit: int = 100,
    ) -> list[WebhookConfig]:
        """Get webhook configs, optionally scoped to one organization."""
        query = self.db.query(WebhookConfig)
        if org_id is not None:
            query = query.filter(WebhookConfig.org_id == org_id)
        return (
            query.order_by(WebhookConfig.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count(self, org_id: UUID | None = None) -> int:
        """Count webhook configs."""
        query = self.db.query(func.count(WebhookConfig.id))
        if org_id is not None:
            query = query.filter(WebhookConfig.org_id == org_id)
        return query.scalar() or 0

    def get_by_id(self, config_id: UUID) -> WebhookConfig | None:
        """Get a webhook config by ID."""
        return self.db.query(WebhookConfig).filter(WebhookConfig.id == config_id).first()

    def find_active_for_event(
        self, event_type: str, org_id: UUID | None = None,
    ) -> list[WebhookConfig]:
        """Get active configs subscribed to ``event_type``.

        With an ``org_id`` the configs of that organization and global configs
        (no organization) match; without one every organization matches. The
        event membership test runs in Python so the JSON column works the same
        on SQLite and PostgreSQL.
        """
        query = self.db.query(WebhookConfig).filter(WebhookConfig.is_active.is_(True))
        if org_id is not None:
            query = query.filter(
                or_(WebhookConfig.org_id == org_id, WebhookConfig.org_id.is_(None))
            )
        configs = query.order_by(WebhookConfig.created_at.desc()).all()
        return [config for config in configs if event_type in (config.events or [])]

    def create(self, data: WebhookConfigCreate) -> WebhookConfig:
        """Create a new webhook config."""
        config = WebhookConfig(
            org_id=data.org_id,
            name=data.name,
            url=data.url,
            events=data.events,
            secret_key=data.secret_key,
            is_active=data.is_active,
        )
        self.db.add(config)
        self.db.commit()
        self.db.refresh(config)
        return config

    def update(self, config_id: UUID, data: WebhookConfigUpdate) -> WebhookConfig | None:
        """Update a webhook config by ID."""
        config = self.get_by_id(config_id)
        if not config:
            return None

        update_data = data.model_dump(exclude_unset=True)
        for key, value in update_data.items():
            setattr(config, key, value)

        self.db.commit()
        self.db.refresh(config)
        return config

    def delete(self, config_id: UUID) -> bool:
        """Delete a webhook config and stop retries of its unfinished deliveries.

        The deliveries themselves are kept as history.
        """
        config = self.get_by_id(config_id)
        if not config:
            return False

        WebhookDeliveryRepository(self.db).clear_pending_retries(config_id, commit=False)
        self.db.delete(config)
        self.db.commit()
        return True

    def touch_last_triggered(self, config_id: UUID) -> None:
        """Stamp the config with the time of its latest successful dispatch."""
        self.db.query(WebhookConfig).filter(WebhookConfig.id == config_id).update(
            {WebhookConfig.last_triggered_at: utc_now()},
            synchronize_session=False,
        )
        self.db.commit()
