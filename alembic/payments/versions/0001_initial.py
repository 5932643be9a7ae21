"""initial payments schema

Revision ID: 0001_payments
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_payments"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "payments",
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("payment_id", sa.String(), nullable=False),
        sa.Column("amount_in_minor", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("reference", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("hosted_authorization_link", sa.String(), nullable=True),
        sa.Column("failure_reason", sa.String(), nullable=True),
        sa.Column("failure_stage", sa.String(), nullable=True),
        sa.Column("gateway_data", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("owner_id", "payment_id"),
    )
    op.create_index("ix_payments_owner_status", "payments", ["owner_id", "status"])
    op.create_index("ix_payments_owner_created_at", "payments", ["owner_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_payments_owner_created_at", table_name="payments")
    op.drop_index("ix_payments_owner_status", table_name="payments")
    op.drop_table("payments")
