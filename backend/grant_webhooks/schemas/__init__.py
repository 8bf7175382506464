from grant_webhooks.schemas.webhook import (
    EVENT_DATA_SCHEMAS,
    WEBHOOK_EVENT_TYPES,
    DeliveryStats,
    GrantSummary,
    WebhookConfigCreate,
    WebhookConfigResponse,
    WebhookConfigUpdate,
    WebhookDeliveryResponse,
    WebhookEvent,
)

__all__ = [
    "EVENT_DATA_SCHEMAS",
    "WEBHOOK_EVENT_TYPES",
    "DeliveryStats",
    "GrantSummary",
    "WebhookConfigCreate",
    "WebhookConfigResponse",
    "WebhookConfigUpdate",
    "WebhookDeliveryResponse",
    "WebhookEvent",
]
