from grant_webhooks.repositories.webhook_config_repository import WebhookConfigRepository
from grant_webhooks.repositories.webhook_delivery_repository import WebhookDeliveryRepository

__all__ = [
    "WebhookConfigRepository",
    "WebhookDeliveryRepository",
]
