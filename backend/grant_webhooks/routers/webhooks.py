"""Webhook configuration and delivery API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from grant_webhooks.core.database import get_db
from grant_webhooks.models.webhook_config import WebhookConfig
from grant_webhooks.models.webhook_delivery import DeliveryStatus, WebhookDelivery
from grant_webhooks.repositories.webhook_config_repository import WebhookConfigRepository
from grant_webhooks.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from grant_webhooks.schemas.webhook import (
    DeliveryStats,
    WebhookConfigCreate,
    WebhookConfigResponse,
    WebhookConfigUpdate,
    WebhookDeliveryResponse,
    WebhookTestResult,
)
from grant_webhooks.services.webhook_service import WebhookService

router = APIRouter()


def _get_config_or_404(repo: WebhookConfigRepository, config_id: UUID) -> WebhookConfig:
    config = repo.get_by_id(config_id)
    if not config:
        raise HTTPException(status_code=404, detail="Webhook config not found")
    return config


@router.post(
    "/",
    response_model=WebhookConfigResponse,
    status_code=201,
    summary="Register webhook",
    responses={422: {"description": "Validation error"}},
)
async def create_webhook_config(
    data: WebhookConfigCreate,
    db: Session = Depends(get_db),
) -> WebhookConfig:
    """Register a new webhook config."""
    repo = WebhookConfigRepository(db)
    return repo.create(data)


@router.get(
    "/",
    response_model=list[WebhookConfigResponse],
    summary="List webhooks",
)
async def list_webhook_configs(
    response: Response,
    org_id: UUID | None = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> list[WebhookConfig]:
    """List webhook configs, optionally for one organization."""
    repo = WebhookConfigRepository(db)
    response.headers["X-Total-Count"] = str(repo.count(org_id))
    return repo.get_all(org_id, skip=skip, limit=limit)


@router.get(
    "/stats",
    response_model=DeliveryStats,
    summary="Get delivery stats for all webhooks",
)
async def get_global_stats(db: Session = Depends(get_db)) -> DeliveryStats:
    return WebhookService(db).get_stats()


@router.get(
    "/{config_id}",
    response_model=WebhookConfigResponse,
    summary="Get webhook",
    responses={404: {"description": "Webhook config not found"}},
)
async def get_webhook_config(
    config_id: UUID,
    db: Session = Depends(get_db),
) -> WebhookConfig:
    """Get a webhook config by ID."""
    return _get_config_or_404(WebhookConfigRepository(db), config_id)


@router.put(
    "/{config_id}",
    response_model=WebhookConfigResponse,
    summary="Update webhook",
    responses={
        404: {"description": "Webhook config not found"},
        422: {"description": "Validation error"},
    },
)
async def update_webhook_config(
    config_id: UUID,
    data: WebhookConfigUpdate,
    db: Session = Depends(get_db),
) -> WebhookConfig:
    """Update a webhook config."""
    repo = WebhookConfigRepository(db)
    config = repo.update(config_id, data)
    if not config:
        raise HTTPException(status_code=404, detail="Webhook config not found")
    return config


@router.delete(
    "/{config_id}",
    status_code=204,
    summary="Deregister webhook",
    responses={404: {"description": "Webhook config not found"}},
)
async def delete_webhook_config(
    config_id: UUID,
    db: Session = Depends(get_db),
) -> None:
    """Delete a webhook config. Its delivery history is kept."""
    repo = WebhookConfigRepository(db)
    if not repo.delete(config_id):
        raise HTTPException(status_code=404, detail="Webhook config not found")


@router.post(
    "/{config_id}/test",
    response_model=WebhookTestResult,
    summary="Send test delivery",
    responses={404: {"description": "Webhook config not found"}},
)
async def send_test_delivery(
    config_id: UUID,
    db: Session = Depends(get_db),
) -> WebhookTestResult:
    """Send a test payload to the webhook URL right away."""
    service = WebhookService(db)
    try:
        delivery = service.send_test_webhook(config_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Webhook config not found") from None
    return WebhookTestResult(
        message="Test webhook sent",
        delivery=WebhookDeliveryResponse.model_validate(delivery),
    )


@router.get(
    "/{config_id}/deliveries",
    response_model=list[WebhookDeliveryResponse],
    summary="List deliveries for a webhook",
    responses={404: {"description": "Webhook config not found"}},
)
async def list_webhook_deliveries(
    config_id: UUID,
    status: DeliveryStatus | None = None,
    limit: int = Query(default=50, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> list[WebhookDelivery]:
    """Get the delivery history of a webhook config, newest first."""
    _get_config_or_404(WebhookConfigRepository(db), config_id)
    repo = WebhookDeliveryRepository(db)
    return repo.get_all(
        webhook_config_id=config_id,
        status=status.value if status else None,
        limit=limit,
    )


@router.get(
    "/{config_id}/stats",
    response_model=DeliveryStats,
    summary="Get delivery stats for a webhook",
    responses={404: {"description": "Webhook config not found"}},
)
async def get_webhook_stats(
    config_id: UUID,
    db: Session = Depends(get_db),
) -> DeliveryStats:
    _get_config_or_404(WebhookConfigRepository(db), config_id)
    return WebhookService(db).get_stats(config_id)
