"""Tests for worker background tasks and cron job registration."""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from grant_webhooks.core import database as db_module
from grant_webhooks.models.shared import utc_now
from grant_webhooks.models.webhook_delivery import DeliveryStatus
from grant_webhooks.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from grant_webhooks.worker import (
    WorkerSettings,
    cleanup_old_deliveries_task,
    process_webhook_retries_task,
    trigger_webhook_event_task,
)
from tests.conftest import DEFAULT_ORG_ID, create_config, mock_http_client

CLIENT_PATH = "grant_webhooks.services.webhook_dispatcher.httpx.Client"


class TestProcessWebhookRetriesTask:
    """Tests for the process_webhook_retries_task worker function."""

    @pytest.mark.asyncio
    async def test_returns_retry_count(self):
        """Test that the task calls WebhookService.process_retries and returns count."""
        mock_service = MagicMock()
        mock_service.process_retries.return_value = 3

        with patch("grant_webhooks.worker.WebhookService", return_value=mock_service):
            result = await process_webhook_retries_task({})

        assert result == 3
        mock_service.process_retries.assert_called_once()

    @pytest.mark.asyncio
    async def test_closes_session_on_exception(self):
        """Test that the DB session is closed even when an exception occurs."""
        mock_service = MagicMock()
        mock_service.process_retries.side_effect = RuntimeError("DB error")
        mock_session = MagicMock()

        with (
            patch("grant_webhooks.worker.SessionLocal", return_value=mock_session),
            patch("grant_webhooks.worker.WebhookService", return_value=mock_service),
            pytest.raises(RuntimeError, match="DB error"),
        ):
            await process_webhook_retries_task({})

        mock_session.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_integration_with_no_due_retries(self, db_session):
        """Integration test: task runs against real DB with nothing to retry."""
        with patch("grant_webhooks.worker.SessionLocal", db_module.SessionLocal):
            result = await process_webhook_retries_task({})
        assert result == 0

    @pytest.mark.asyncio
    async def test_integration_with_due_retry(self, db_session):
        """Integration test: task re-delivers a failed delivery that is due."""
        config = create_config(db_session)
        repo = WebhookDeliveryRepository(db_session)
        delivery = repo.create(config.id, "new_grant_match", {"event_type": "new_grant_match"})
        repo.mark_failed(delivery.id, 503, "down", next_retry_at=utc_now() - timedelta(seconds=5))

        with (
            patch("grant_webhooks.worker.SessionLocal", db_module.SessionLocal),
            patch(CLIENT_PATH) as mock_cls,
        ):
            mock_http_client(mock_cls, status_code=200, text="OK")
            result = await process_webhook_retries_task({})

        assert result == 1
        db_session.expire_all()
        updated = repo.get_by_id(delivery.id)
        assert updated.status == DeliveryStatus.DELIVERED.value


class TestCleanupOldDeliveriesTask:
    """Tests for the cleanup_old_deliveries_task worker function."""

    @pytest.mark.asyncio
    async def test_returns_deleted_count(self):
        mock_service = MagicMock()
        mock_service.cleanup_old_deliveries.return_value = 5

        with patch("grant_webhooks.worker.WebhookService", return_value=mock_service):
            result = await cleanup_old_deliveries_task({})

        assert result == 5
        mock_service.cleanup_old_deliveries.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_integration_purges_expired(self, db_session):
        config = create_config(db_session)
        repo = WebhookDeliveryRepository(db_session)
        old = repo.create(config.id, "new_grant_match", {})
        repo.create(config.id, "new_grant_match", {})
        old.created_at = utc_now() - timedelta(days=60)
        db_session.commit()

        with patch("grant_webhooks.worker.SessionLocal", db_module.SessionLocal):
            result = await cleanup_old_deliveries_task({})

        assert result == 1


class TestTriggerWebhookEventTask:
    """Tests for the trigger_webhook_event_task worker function."""

    @pytest.mark.asyncio
    async def test_fans_out_serialized_event(self, db_session):
        create_config(db_session)
        event = {
            "event_type": "submission_update",
            "org_id": str(DEFAULT_ORG_ID),
            "data": {"submission_id": "s-1", "new_status": "approved", "message": "m"},
        }
        create_config(db_session, name="Submissions", events=["submission_update"])

        with (
            patch("grant_webhooks.worker.SessionLocal", db_module.SessionLocal),
            patch(CLIENT_PATH) as mock_cls,
        ):
            mock_client = mock_http_client(mock_cls)
            result = await trigger_webhook_event_task({}, event)

        assert result == 1
        mock_client.post.assert_called_once()

    @pytest.mark.asyncio
    async def test_invalid_event_raises(self):
        with (
            patch("grant_webhooks.worker.WebhookService"),
            pytest.raises(ValueError),
        ):
            await trigger_webhook_event_task({}, {"event_type": "new_grant_match", "data": {}})


class TestWorkerSettings:
    """Tests for WorkerSettings configuration."""

    def test_functions_registered(self):
        func_names = [f.__name__ for f in WorkerSettings.functions]
        assert func_names == [
            "process_webhook_retries_task",
            "cleanup_old_deliveries_task",
            "trigger_webhook_event_task",
        ]

    def test_cron_jobs(self):
        cron_func_names = [job.coroutine.__name__ for job in WorkerSettings.cron_jobs]
        assert cron_func_names == [
            "process_webhook_retries_task",
            "cleanup_old_deliveries_task",
        ]

    def test_retry_sweep_runs_every_minute(self):
        retry_job = WorkerSettings.cron_jobs[0]
        assert retry_job.second == 0
        assert retry_job.minute is None

    def test_cleanup_runs_daily(self):
        cleanup_job = WorkerSettings.cron_jobs[1]
        assert cleanup_job.hour == 3
        assert cleanup_job.minute == 0
