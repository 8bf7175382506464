"""Tests for webhook request/response and event schemas."""

from datetime import UTC, datetime
from types import SimpleNamespace
from uuid import uuid4

import pytest
from pydantic import ValidationError

from grant_webhooks.models.shared import utc_now
from grant_webhooks.schemas.webhook import (
    REDACTED_SECRET,
    WEBHOOK_EVENT_TYPES,
    WebhookConfigCreate,
    WebhookConfigResponse,
    WebhookConfigUpdate,
    WebhookEvent,
)


class TestWebhookConfigCreate:
    """Tests for config registration validation."""

    def test_valid(self):
        data = WebhookConfigCreate(
            name="CRM",
            url="https://crm.example/hooks",
            events=["new_grant_match", "deadline_reminder"],
        )
        assert data.is_active is True
        assert data.org_id is None
        assert data.secret_key is None

    @pytest.mark.parametrize(
        "url", ["ftp://example.com/hook", "example.com/hook", "https://", "not a url"]
    )
    def test_invalid_url(self, url):
        with pytest.raises(ValidationError, match="valid HTTP/HTTPS URL"):
            WebhookConfigCreate(name="x", url=url, events=["new_grant_match"])

    def test_http_allowed(self):
        data = WebhookConfigCreate(
            name="x", url="http://localhost:8080/in", events=["submission_update"]
        )
        assert data.url == "http://localhost:8080/in"

    def test_empty_events(self):
        with pytest.raises(ValidationError, match="non-empty"):
            WebhookConfigCreate(name="x", url="https://a.example", events=[])

    def test_unknown_event(self):
        with pytest.raises(ValidationError, match="Invalid events: grant_deleted"):
            WebhookConfigCreate(name="x", url="https://a.example", events=["grant_deleted"])

    def test_test_event_not_subscribable(self):
        with pytest.raises(ValidationError):
            WebhookConfigCreate(name="x", url="https://a.example", events=["test"])

    def test_duplicate_events_collapsed(self):
        data = WebhookConfigCreate(
            name="x",
            url="https://a.example",
            events=["deadline_reminder", "deadline_reminder", "new_grant_match"],
        )
        assert data.events == ["deadline_reminder", "new_grant_match"]

    def test_empty_name(self):
        with pytest.raises(ValidationError):
            WebhookConfigCreate(name="", url="https://a.example", events=["new_grant_match"])

    def test_all_event_types_accepted(self):
        data = WebhookConfigCreate(name="x", url="https://a.example", events=WEBHOOK_EVENT_TYPES)
        assert data.events == WEBHOOK_EVENT_TYPES


class TestWebhookConfigUpdate:
    """Tests for partial update validation."""

    def test_only_sent_fields_are_set(self):
        data = WebhookConfigUpdate(name="New")
        assert data.model_dump(exclude_unset=True) == {"name": "New"}

    @pytest.mark.parametrize("field", ["name", "url", "events", "is_active"])
    def test_explicit_null_rejected(self, field):
        with pytest.raises(ValidationError, match="cannot be null"):
            WebhookConfigUpdate.model_validate({field: None})

    def test_explicit_null_secret_allowed(self):
        data = WebhookConfigUpdate.model_validate({"secret_key": None})
        assert data.model_dump(exclude_unset=True) == {"secret_key": None}

    def test_url_validated(self):
        with pytest.raises(ValidationError):
            WebhookConfigUpdate(url="mailto:ops@example.com")

    def test_events_validated(self):
        with pytest.raises(ValidationError):
            WebhookConfigUpdate(events=[])


class TestWebhookConfigResponse:
    """Tests for secret redaction on output."""

    def _config(self, secret_key):
        now = utc_now()
        return SimpleNamespace(
            id=uuid4(),
            org_id=None,
            name="x",
            url="https://a.example",
            events=["new_grant_match"],
            is_active=True,
            secret_key=secret_key,
            last_triggered_at=None,
            created_at=now,
            updated_at=now,
        )

    def test_secret_redacted(self):
        response = WebhookConfigResponse.model_validate(self._config("whsec_real"))
        assert response.secret_key == REDACTED_SECRET
        assert "whsec_real" not in response.model_dump_json()

    def test_no_secret(self):
        assert WebhookConfigResponse.model_validate(self._config(None)).secret_key is None

    def test_naive_timestamps_read_as_utc(self):
        config = self._config(None)
        config.created_at = datetime(2026, 10, 19, 6, 30)
        config.updated_at = datetime(2026, 10, 19, 6, 30)

        response = WebhookConfigResponse.model_validate(config)

        assert response.created_at == datetime(2026, 10, 19, 6, 30, tzinfo=UTC)
        assert response.updated_at.tzinfo == UTC


class TestWebhookEvent:
    """Tests for domain event validation."""

    def test_known_event_data_validated(self):
        with pytest.raises(ValidationError):
            WebhookEvent(event_type="new_grant_match", data={"match_score": 0.5})

    def test_known_event_data_kept_as_given(self):
        data = {
            "submission_id": "s-1",
            "new_status": "submitted",
            "message": "updated",
            "extra": 1,
        }
        event = WebhookEvent(event_type="submission_update", data=data)
        assert event.data == data

    def test_unknown_event_type_passes_through(self):
        event = WebhookEvent(event_type="custom", data={"anything": True})
        assert event.data == {"anything": True}
        assert event.timestamp is not None

    def test_empty_event_type_rejected(self):
        with pytest.raises(ValidationError):
            WebhookEvent(event_type="")

    def test_negative_grants_count_rejected(self):
        with pytest.raises(ValidationError):
            WebhookEvent(
                event_type="new_grants_discovered",
                data={"source_id": "c", "grants_count": -3, "message": "m"},
            )
