"""users and billings tables

Revision ID: 001_billing_tables
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_billing_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # --- billings ---
    op.create_table(
        "billings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(128), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("plan_id", sa.String(128), nullable=False),
        sa.Column("cycle", sa.String(16), nullable=False, server_default="MONTHLY"),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("provider_customer_id", sa.String(128), nullable=True),
        sa.Column("provider_subscription_id", sa.String(128), nullable=True),
        sa.Column("provider_payment_link", sa.Text, nullable=True),
        sa.Column("price_cents", sa.Integer, nullable=True),
        sa.Column("metadata_json", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_billings_user_id", "billings", ["user_id"])
    op.create_index("ix_billings_status", "billings", ["status"])
    op.create_index("ix_billings_provider_subscription_id", "billings", ["provider_subscription_id"])
    op.create_index("ix_billings_created_at", "billings", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_billings_created_at", table_name="billings")
    op.drop_index("ix_billings_provider_subscription_id", table_name="billings")
    op.drop_index("ix_billings_status", table_name="billings")
    op.drop_index("ix_billings_user_id", table_name="billings")
    op.drop_table("billings")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
