"""dispatch units and scheduler locks

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

DUTY_KINDS = (
    "SERVER_STATUS", "CONTAINER_STATUS", "LOG_DRAIN_CHECK", "PRE_PULL", "BACKUP", "TASK", "AUTO_UPDATE", "DEPLOY",
)
UNIT_STATES = (
    "CREATED", "QUEUED", "CLAIMED", "STARTED", "COMPLETED", "FAILED", "CANCELLED",
)


def upgrade() -> None:
    op.create_table(
        "dispatch_units",
        sa.Column("unit_id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("duty", sa.Enum(*DUTY_KINDS, name="duty_kind"), nullable=False),
        sa.Column("target_id", sa.String(255), nullable=False),
        sa.Column("server_id", sa.Integer(), nullable=False),
        sa.Column("lock_key", sa.String(512), nullable=True),
        sa.Column("lock_owner", sa.String(255), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("event_kind", sa.String(100), nullable=False),
        sa.Column("state", sa.Enum(*UNIT_STATES, name="unit_state"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("queued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lease_owner", sa.String(255), nullable=True),
        sa.Column("lease_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("output", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_dispatch_units_duty", "dispatch_units", ["duty"])
    op.create_index("ix_dispatch_units_target_id", "dispatch_units", ["target_id"])
    op.create_index("ix_dispatch_units_lock_key", "dispatch_units", ["lock_key"])
    op.create_index("ix_dispatch_units_state", "dispatch_units", ["state"])
    op.create_index("ix_dispatch_units_lease_owner", "dispatch_units", ["lease_owner"])
    op.create_index(
        "ix_dispatch_units_queued_lookup",
        "dispatch_units",
        ["state", "created_at"],
        postgresql_where=sa.text("state = 'QUEUED'"),
    )

    op.create_table(
        "scheduler_locks",
        sa.Column("lock_key", sa.String(512), primary_key=True),
        sa.Column("owner", sa.String(255), nullable=False),
        sa.Column("expires_at", sa.Float(), nullable=False),
    )
    op.create_index("ix_scheduler_locks_expires_at", "scheduler_locks", ["expires_at"])


def downgrade() -> None:
    op.drop_table("scheduler_locks")
    op.drop_index("ix_dispatch_units_queued_lookup", table_name="dispatch_units")
    op.drop_table("dispatch_units")
    sa.Enum(name="unit_state").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="duty_kind").drop(op.get_bind(), checkfirst=True)
