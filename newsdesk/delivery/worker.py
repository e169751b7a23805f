from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from newsdesk.domain.subscriber_email import InvalidSubscriberEmail, parse_subscriber_email
from newsdesk.integrations.email_client import EmailSender, EmailSendError
from newsdesk.models.tables import NewsletterIssue, Subscription, SubscriptionToken
from newsdesk.outbox.service import delete_task, dequeue_task

log = logging.getLogger("newsdesk.delivery")


class ExecutionOutcome(enum.Enum):
    TASK_COMPLETED = "task_completed"
    EMPTY_QUEUE = "empty_queue"


@dataclass(frozen=True)
class WorkerConfig:
    idle_poll_interval_s: float = 10.0
    error_retry_interval_s: float = 1.0


def unsubscribe_url(base_url: str, subscription_token: str) -> str:
    return f"{base_url.rstrip('/')}/subscriptions/unsubscribe?subscription_token={subscription_token}"


def add_unsubscribe_footer(
    *, html_content: str, text_content: str, base_url: str, subscription_token: str
) -> tuple[str, str]:
    link = unsubscribe_url(base_url, subscription_token)
    html = f'{html_content}<hr><p><small>To unsubscribe, <a href="{link}">click here</a></small></p>'
    text = f"{text_content}\n\n---\nTo unsubscribe, visit: {link}"
    return html, text


class DeliveryWorker:
    """Drains issue_delivery_queue one row per transaction.

    Safe to run in any number of processes: a row is claimed by locking it
    (SKIP LOCKED) and deleted in the same transaction. Each claimed row is
    attempted at most once; delivery failures are logged, never retried.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        email_client: EmailSender,
        *,
        base_url: str,
        config: WorkerConfig = WorkerConfig(),
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._email_client = email_client
        self._base_url = base_url
        self.config = config
        self._sleep = sleep

    def run_forever(self) -> None:
        while True:
            try:
                outcome = self.try_execute_one()
            except Exception:
                log.exception("Delivery iteration failed; retrying in %ss", self.config.error_retry_interval_s)
                self._sleep(self.config.error_retry_interval_s)
                continue

            if outcome is ExecutionOutcome.EMPTY_QUEUE:
                self._sleep(self.config.idle_poll_interval_s)

    def try_execute_one(self) -> ExecutionOutcome:
        with self._session_factory() as db:
            task = dequeue_task(db)
            if task is None:
                db.rollback()
                return ExecutionOutcome.EMPTY_QUEUE

            issue_id, email = task
            self._deliver(db, newsletter_issue_id=issue_id, subscriber_email=email)

            delete_task(db, newsletter_issue_id=issue_id, subscriber_email=email)
            db.commit()
            return ExecutionOutcome.TASK_COMPLETED

    def _deliver(self, db: Session, *, newsletter_issue_id: str, subscriber_email: str) -> None:
        try:
            recipient = parse_subscriber_email(subscriber_email)
        except InvalidSubscriberEmail:
            log.error(
                "Skipping a confirmed subscriber. Their stored contact details are invalid (issue=%s email=%r)",
                newsletter_issue_id,
                subscriber_email,
                exc_info=True,
            )
            return

        issue = db.query(NewsletterIssue).filter(NewsletterIssue.newsletter_issue_id == newsletter_issue_id).one()

        html_content, text_content = issue.html_content, issue.text_content
        token = _subscription_token_for(db, subscriber_email)
        if token:
            html_content, text_content = add_unsubscribe_footer(
                html_content=html_content,
                text_content=text_content,
                base_url=self._base_url,
                subscription_token=token,
            )
        else:
            log.warning("No subscription token found for confirmed subscriber: %s", subscriber_email)

        try:
            self._email_client.send_email(
                recipient=recipient,
                subject=issue.title,
                html_content=html_content,
                text_content=text_content,
            )
        except EmailSendError:
            log.error(
                "Failed to deliver issue %s to a confirmed subscriber (%s). Skipping.",
                newsletter_issue_id,
                subscriber_email,
                exc_info=True,
            )


def _subscription_token_for(db: Session, email: str) -> str | None:
    return (
        db.query(SubscriptionToken.subscription_token)
        .join(Subscription, SubscriptionToken.subscriber_id == Subscription.id)
        .filter(Subscription.email == email)
        .limit(1)
        .scalar()
    )
