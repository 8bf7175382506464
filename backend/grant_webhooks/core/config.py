from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "grant-webhooks"
    version: str = "1.0.0"
    DEBUG: bool = False
    APP_DATABASE_DSN: str = "sqlite:////tmp/grant_webhooks.db"
    REDIS_URL: str = "redis://localhost:6379"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Outbound webhook delivery
    WEBHOOK_USER_AGENT: str = "eTownz-Grants-Webhook/1.0"
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0
    WEBHOOK_MAX_ATTEMPTS: int = 4
    WEBHOOK_RETRY_BATCH_SIZE: int = 100
    WEBHOOK_RETRY_DELAY_MS: int = 100  # pause between retries within one sweep
    WEBHOOK_RETRY_LEASE_SECONDS: int = 300  # hold on a claimed retry while it is attempted
    WEBHOOK_MAX_CONCURRENCY: int = 8  # fan-out worker threads per event
    WEBHOOK_RESPONSE_BODY_LIMIT: int = 1000
    WEBHOOK_RETENTION_DAYS: int = 30


settings = Settings()
