from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from grant_webhooks.core.config import settings
from grant_webhooks.schemas.webhook import WebhookEvent

# Redis connection settings
redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)


async def get_redis_pool() -> ArqRedis:
    """Get or create Redis pool for arq"""
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job:
    """
    Enqueue a task to the arq worker.

    Args:
        task_name: Name of the task function
        *args: Positional arguments for the task
        **kwargs: Keyword arguments for the task

    Returns:
        Job object from arq
    """
    pool = await get_redis_pool()
    try:
        job = await pool.enqueue_job(task_name, *args, **kwargs)
        return job  # type: ignore[return-value]
    finally:
        await pool.close()


async def enqueue_webhook_event(event: WebhookEvent) -> Job:
    """Queue an event for fan-out by the worker instead of delivering inline."""
    return await enqueue_task("trigger_webhook_event_task", event.model_dump(mode="json"))


async def enqueue_process_webhook_retries() -> Job:
    """Enqueue an out-of-schedule retry sweep."""
    return await enqueue_task("process_webhook_retries_task")
