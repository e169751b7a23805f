from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from newsdesk.core.config import Settings
from newsdesk.delivery.worker import DeliveryWorker, WorkerConfig
from newsdesk.integrations.email_client import EmailClient, EmailSender


def build_worker(
    settings: Settings,
    session_factory: sessionmaker[Session],
    *,
    email_client: EmailSender | None = None,
) -> DeliveryWorker:
    return DeliveryWorker(
        session_factory,
        email_client or EmailClient.from_settings(settings),
        base_url=settings.APP_BASE_URL,
        config=WorkerConfig(
            idle_poll_interval_s=settings.WORKER_IDLE_POLL_S,
            error_retry_interval_s=settings.WORKER_ERROR_RETRY_S,
        ),
    )
