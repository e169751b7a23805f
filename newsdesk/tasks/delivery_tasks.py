from __future__ import annotations

import logging

from newsdesk.core.celery_app import celery
from newsdesk.core.config import settings
from newsdesk.core.db import SessionLocal
from newsdesk.delivery.factory import build_worker
from newsdesk.delivery.worker import ExecutionOutcome
from newsdesk.integrations.email_client import EmailClient

log = logging.getLogger("newsdesk.tasks")


@celery.task(name="newsdesk.tasks.delivery_tasks.deliver_pending_issues")
def deliver_pending_issues(*, limit: int | None = None) -> dict:
    """Drain up to `limit` queued deliveries, then stop.

    For beat-scheduled deployments; the long-running alternative is
    scripts/run_delivery_worker.py. Storage errors propagate to Celery.
    """

    limit = settings.WORKER_DRAIN_LIMIT if limit is None else limit

    email_client = EmailClient.from_settings(settings)
    try:
        worker = build_worker(settings, SessionLocal, email_client=email_client)

        delivered = 0
        drained = False
        while delivered < limit:
            if worker.try_execute_one() is ExecutionOutcome.EMPTY_QUEUE:
                drained = True
                break
            delivered += 1
    finally:
        email_client.close()

    log.info("Delivery pass finished: delivered=%s drained=%s", delivered, drained)
    return {"ok": True, "delivered": delivered, "drained": drained}
