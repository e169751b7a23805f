"""idempotency records + issue delivery queue (outbox)

Revision ID: 0002_idempotency_and_delivery_queue
Revises: 0001_init
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0002_idempotency_and_delivery_queue"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "idempotency",
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("idempotency_key", sa.String(length=50), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("response_status_code", sa.Integer(), nullable=True),
        sa.Column(
            "response_headers",
            sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql"),
            nullable=True,
        ),
        sa.Column("response_body", sa.LargeBinary(), nullable=True),
        sa.PrimaryKeyConstraint("user_id", "idempotency_key"),
    )

    # No status column: a row is a pending delivery.
    op.create_table(
        "issue_delivery_queue",
        sa.Column(
            "newsletter_issue_id",
            sa.String(length=36),
            sa.ForeignKey("newsletter_issues.newsletter_issue_id"),
            nullable=False,
        ),
        sa.Column("subscriber_email", sa.String(length=320), nullable=False),
        sa.PrimaryKeyConstraint("newsletter_issue_id", "subscriber_email"),
    )


def downgrade() -> None:
    op.drop_table("issue_delivery_queue")
    op.drop_table("idempotency")
