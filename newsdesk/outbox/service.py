from __future__ import annotations

from sqlalchemy import delete, func, literal, select
from sqlalchemy.orm import Session

from newsdesk.core.db import begin_exclusive, dialect_name, insert_ignore
from newsdesk.models.tables import (
    SUBSCRIPTION_CONFIRMED,
    IssueDeliveryTask,
    NewsletterIssue,
    Subscription,
)
from newsdesk.util.ids import new_uuid
from newsdesk.util.time import now_utc


def insert_newsletter_issue(db: Session, *, title: str, text_content: str, html_content: str) -> str:
    issue_id = new_uuid()
    db.add(
        NewsletterIssue(
            newsletter_issue_id=issue_id,
            title=title,
            text_content=text_content,
            html_content=html_content,
            published_at=now_utc(),
        )
    )
    db.flush()
    return issue_id


def enqueue_delivery_tasks(db: Session, *, newsletter_issue_id: str) -> int:
    """Queue one delivery per confirmed subscriber, set-based, inside the caller's transaction."""

    confirmed = select(
        literal(newsletter_issue_id).label("newsletter_issue_id"),
        Subscription.email,
    ).where(Subscription.status == SUBSCRIPTION_CONFIRMED)

    stmt = insert_ignore(db, IssueDeliveryTask.__table__).from_select(
        ["newsletter_issue_id", "subscriber_email"], confirmed
    )
    return max(db.execute(stmt).rowcount, 0)


def dequeue_task(db: Session) -> tuple[str, str] | None:
    """Claim one pending delivery for the lifetime of the session's transaction.

    Postgres: FOR UPDATE SKIP LOCKED hides rows other workers hold.
    SQLite: the whole claim runs under BEGIN IMMEDIATE.
    """

    begin_exclusive(db)

    q = select(IssueDeliveryTask.newsletter_issue_id, IssueDeliveryTask.subscriber_email).limit(1)
    if dialect_name(db) == "postgresql":
        q = q.with_for_update(skip_locked=True)

    row = db.execute(q).first()
    if row is None:
        return None
    return row.newsletter_issue_id, row.subscriber_email


def delete_task(db: Session, *, newsletter_issue_id: str, subscriber_email: str) -> None:
    db.execute(
        delete(IssueDeliveryTask).where(
            IssueDeliveryTask.newsletter_issue_id == newsletter_issue_id,
            IssueDeliveryTask.subscriber_email == subscriber_email,
        )
    )


def pending_deliveries(db: Session) -> dict[str, int]:
    rows = (
        db.query(IssueDeliveryTask.newsletter_issue_id, func.count())
        .group_by(IssueDeliveryTask.newsletter_issue_id)
        .order_by(IssueDeliveryTask.newsletter_issue_id)
        .all()
    )
    return {issue_id: n for issue_id, n in rows}
