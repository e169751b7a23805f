from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "newsdesk"
    APP_ENV: str = "local"
    LOG_LEVEL: str = "INFO"

    ADMIN_TOKEN: str = "change-me-admin-token"
    AUTH_DISABLED: bool = False

    DATABASE_URL: str

    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"
    CELERY_TASK_ALWAYS_EAGER: bool = False

    # Saved responses are replayed for this long, then the key may be reused.
    IDEMPOTENCY_TTL_HOURS: int = 24

    # Delivery worker backoff (seconds).
    WORKER_IDLE_POLL_S: float = 10.0
    WORKER_ERROR_RETRY_S: float = 1.0
    # Max queue items drained by a single Celery invocation.
    WORKER_DRAIN_LIMIT: int = 100

    APP_BASE_URL: str = "http://localhost:8000"

    # Postmark-compatible transactional email API.
    EMAIL_API_BASE: str = "http://localhost:8025"
    EMAIL_SENDER: str = "newsletter@localhost.localdomain"
    EMAIL_AUTH_TOKEN: str = "change-me-email-token"
    EMAIL_TIMEOUT_MS: int = 10_000

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
