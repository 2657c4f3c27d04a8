"""Create webhook_logs table - one row per verification attempt

Revision ID: 001
Revises:
Create Date: 2026-03-02
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "webhook_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("event", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("payload", postgresql.JSONB, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("attempt", sa.Integer, nullable=False, server_default="0"),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        # NULL external ids never collide, so retries are never deduplicated
        sa.UniqueConstraint("provider", "external_id", name="uq_webhook_logs_provider_external_id"),
    )
    op.create_index("ix_webhook_logs_provider", "webhook_logs", ["provider"])
    op.create_index("ix_webhook_logs_event", "webhook_logs", ["event"])
    op.create_index("ix_webhook_logs_status", "webhook_logs", ["status"])
    op.create_index("ix_webhook_logs_created_at", "webhook_logs", ["created_at"])
    op.create_index(
        "ix_webhook_logs_lookup",
        "webhook_logs",
        ["provider", "event", "status", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_webhook_logs_lookup", table_name="webhook_logs")
    op.drop_index("ix_webhook_logs_created_at", table_name="webhook_logs")
    op.drop_index("ix_webhook_logs_status", table_name="webhook_logs")
    op.drop_index("ix_webhook_logs_event", table_name="webhook_logs")
    op.drop_index("ix_webhook_logs_provider", table_name="webhook_logs")
    op.drop_table("webhook_logs")
