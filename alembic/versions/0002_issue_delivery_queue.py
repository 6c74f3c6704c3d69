"""Add issue_delivery_queue table

One row per (issue, recipient) still to be emailed.  n_retries and
execute_after let the delivery worker back off from failing recipients.

Revision ID: 0002_issue_delivery_queue
Revises: 0001_initial
Create Date: 2026-10-05

"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "0002_issue_delivery_queue"
down_revision: str | None = "0001_initial"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "issue_delivery_queue",
        sa.Column("newsletter_issue_id", sa.Uuid(), nullable=False),
        sa.Column("subscriber_email", sa.String(length=320), nullable=False),
        sa.Column("n_retries", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("execute_after", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["newsletter_issue_id"], ["newsletter_issues.newsletter_issue_id"]),
        sa.PrimaryKeyConstraint("newsletter_issue_id", "subscriber_email"),
    )


def downgrade() -> None:
    op.drop_table("issue_delivery_queue")
