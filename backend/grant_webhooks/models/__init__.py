from grant_webhooks.models.webhook_config import WebhookConfig
from grant_webhooks.models.webhook_delivery import DeliveryStatus, WebhookDelivery

__all__ = [
    "DeliveryStatus",
    "WebhookConfig",
    "WebhookDelivery",
]
