from __future__ import annotations

from sqlalchemy import DateTime, ForeignKey, Integer, LargeBinary, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

# Use JSONB on Postgres, fallback to JSON for SQLite/test environments.
JSONType = JSON().with_variant(JSONB, "postgresql")

from newsdesk.models.base import Base

SUBSCRIPTION_PENDING = "pending_confirmation"
SUBSCRIPTION_CONFIRMED = "confirmed"


class Subscription(Base):
    __tablename__ = "subscriptions"
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)  # pending_confirmation/confirmed
    subscribed_at: Mapped["DateTime"] = mapped_column(DateTime(timezone=True), nullable=False)


class SubscriptionToken(Base):
    __tablename__ = "subscription_tokens"
    subscription_token: Mapped[str] = mapped_column(String(64), primary_key=True)
    subscriber_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False
    )


class NewsletterIssue(Base):
    __tablename__ = "newsletter_issues"
    newsletter_issue_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    text_content: Mapped[str] = mapped_column(Text, nullable=False)
    html_content: Mapped[str] = mapped_column(Text, nullable=False)
    published_at: Mapped["DateTime"] = mapped_column(DateTime(timezone=True), nullable=False)


class IssueDeliveryTask(Base):
    """One pending delivery. Row present == pending; there is no status column."""

    __tablename__ = "issue_delivery_queue"
    newsletter_issue_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("newsletter_issues.newsletter_issue_id"), primary_key=True
    )
    subscriber_email: Mapped[str] = mapped_column(String(320), primary_key=True)


class IdempotencyRecord(Base):
    __tablename__ = "idempotency"
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    idempotency_key: Mapped[str] = mapped_column(String(50), primary_key=True)
    created_at: Mapped["DateTime"] = mapped_column(DateTime(timezone=True), nullable=False)

    # NULL until the request that claimed the key completes.
    response_status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_headers: Mapped[list | None] = mapped_column(JSONType, nullable=True)  # [[name, latin-1 value], ...]
    response_body: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
