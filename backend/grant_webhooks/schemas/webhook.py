"""WebhookConfig, WebhookDelivery and webhook event schemas."""

from datetime import datetime
from typing import Any
from urllib.parse import urlparse
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from grant_webhooks.models.shared import as_utc, utc_now

# Event types a config may subscribe to
WEBHOOK_EVENT_TYPES = [
    "new_grant_match",
    "deadline_reminder",
    "submission_update",
    "new_grants_discovered",
]

# Only produced by the test-delivery endpoint, never subscribable
TEST_EVENT_TYPE = "test"

REDACTED_SECRET = "****"


def validate_webhook_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("url must be a valid HTTP/HTTPS URL")
    return value


def validate_event_types(value: list[str]) -> list[str]:
    if not value:
        raise ValueError("events must be a non-empty array")
    invalid = [event for event in value if event not in WEBHOOK_EVENT_TYPES]
    if invalid:
        raise ValueError(
            f"Invalid events: {', '.join(invalid)}. "
            f"Valid events: {', '.join(WEBHOOK_EVENT_TYPES)}"
        )
    return list(dict.fromkeys(value))


class WebhookConfigCreate(BaseModel):
    org_id: UUID | None = None
    name: str = Field(min_length=1, max_length=255)
    url: str = Field(max_length=2048)
    events: list[str]
    secret_key: str | None = Field(default=None, min_length=1, max_length=255)
    is_active: bool = True

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str) -> str:
        return validate_webhook_url(v)

    @field_validator("events")
    @classmethod
    def check_events(cls, v: list[str]) -> list[str]:
        return validate_event_types(v)


class WebhookConfigUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    url: str | None = Field(default=None, max_length=2048)
    events: list[str] | None = None
    is_active: bool | None = None
    # An explicit null clears the secret
    secret_key: str | None = Field(default=None, min_length=1, max_length=255)

    @field_validator("name", "url", "events", "is_active")
    @classmethod
    def reject_explicit_null(cls, v: Any) -> Any:
        # Defaults are not validated, so None here means the client sent null
        if v is None:
            raise ValueError("field cannot be null")
        return v

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str) -> str:
        return validate_webhook_url(v)

    @field_validator("events")
    @classmethod
    def check_events(cls, v: list[str]) -> list[str]:
        return validate_event_types(v)


class WebhookConfigResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    org_id: UUID | None = None
    name: str
    url: str
    events: list[str]
    is_active: bool
    secret_key: str | None = None
    last_triggered_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("secret_key", mode="before")
    @classmethod
    def redact_secret(cls, v: Any) -> str | None:
        return REDACTED_SECRET if v else None

    @field_validator("last_triggered_at", "created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v)


class WebhookDeliveryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    webhook_config_id: UUID
    event_type: str
    payload: dict[str, Any]
    status: str
    response_status: int | None = None
    response_body: str | None = None
    attempt_count: int
    next_retry_at: datetime | None = None
    delivered_at: datetime | None = None
    created_at: datetime

    @field_validator("next_retry_at", "delivered_at", "created_at")
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v)


class DeliveryStats(BaseModel):
    total: int
    delivered: int
    failed: int
    pending: int
    success_rate: float


class WebhookTestResult(BaseModel):
    message: str
    delivery: WebhookDeliveryResponse


# ----- Event payloads -----


class GrantSummary(BaseModel):
    id: str
    title: str
    funder: str | None = None
    deadline: datetime | None = None
    amount_min: float | None = None
    amount_max: float | None = None
    url: str | None = None


class NewGrantMatchData(BaseModel):
    grant: GrantSummary
    match_score: float
    message: str


class DeadlineReminderData(BaseModel):
    grant: GrantSummary
    days_until_deadline: int
    message: str


class SubmissionUpdateData(BaseModel):
    submission_id: str
    new_status: str
    message: str


class NewGrantsDiscoveredData(BaseModel):
    source_id: str
    grants_count: int = Field(ge=0)
    message: str


EVENT_DATA_SCHEMAS: dict[str, type[BaseModel]] = {
    "new_grant_match": NewGrantMatchData,
    "deadline_reminder": DeadlineReminderData,
    "submission_update": SubmissionUpdateData,
    "new_grants_discovered": NewGrantsDiscoveredData,
}


class WebhookEvent(BaseModel):
    """A domain event to fan out to subscribed webhook configs.

    ``data`` is checked against the schema registered for ``event_type`` but
    is otherwise carried through untouched.
    """

    event_type: str = Field(min_length=1, max_length=100)
    data: dict[str, Any] = Field(default_factory=dict)
    org_id: UUID | None = None
    user_id: UUID | None = None
    timestamp: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def check_data_shape(self) -> "WebhookEvent":
        schema = EVENT_DATA_SCHEMAS.get(self.event_type)
        if schema is not None:
            schema.model_validate(self.data)
        return self
