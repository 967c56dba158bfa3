"""Initial schema for the safety event sync.

Revision ID: e1a7c3b95d20
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "e1a7c3b95d20"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "sync_checkpoints",
        sa.Column("source", sa.String(length=50), primary_key=True, nullable=False),
        sa.Column("last_updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "last_sync_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("record_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        if_not_exists=True,
    )

    op.create_table(
        "lytx_safety_events",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("event_id", sa.String(length=64), nullable=False),
        sa.Column("vehicle_id", sa.String(length=64), nullable=True),
        sa.Column("vehicle_registration", sa.String(length=64), nullable=True),
        sa.Column("device_serial", sa.String(length=64), nullable=True),
        sa.Column("driver_name", sa.String(length=255), nullable=True),
        sa.Column("employee_id", sa.String(length=64), nullable=True),
        sa.Column("group_name", sa.String(length=255), nullable=True),
        sa.Column("depot", sa.String(length=100), nullable=True),
        sa.Column("carrier", sa.String(length=100), nullable=True),
        sa.Column("event_datetime", sa.DateTime(timezone=True), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=True),
        sa.Column("score", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("status_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("trigger", sa.String(length=255), nullable=True),
        sa.Column("behaviors", postgresql.JSONB(), nullable=False),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("excluded", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("reviewed_by", sa.String(length=255), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("raw_data", postgresql.JSONB(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.UniqueConstraint("event_id"),
        if_not_exists=True,
    )

    op.create_table(
        "data_import_batches",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("source_type", sa.String(length=50), nullable=False),
        sa.Column("source_subtype", sa.String(length=50), nullable=True),
        sa.Column("batch_reference", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("records_processed", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("records_failed", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("error_summary", postgresql.JSONB(), nullable=True),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("batch_reference"),
        if_not_exists=True,
    )

    # Indexes - safety events
    op.create_index(
        "ix_lytx_safety_events_driver_name",
        "lytx_safety_events",
        ["driver_name"],
        if_not_exists=True,
    )
    op.create_index(
        "idx_lytx_event_datetime",
        "lytx_safety_events",
        [sa.text("event_datetime DESC")],
        if_not_exists=True,
    )
    op.create_index(
        "idx_lytx_carrier_depot",
        "lytx_safety_events",
        ["carrier", "depot"],
        if_not_exists=True,
    )

    # Indexes - run log
    op.create_index(
        "ix_data_import_batches_source_type",
        "data_import_batches",
        ["source_type"],
        if_not_exists=True,
    )


def downgrade() -> None:
    op.drop_index(
        "ix_data_import_batches_source_type",
        table_name="data_import_batches",
        if_exists=True,
    )
    op.drop_index("idx_lytx_carrier_depot", table_name="lytx_safety_events", if_exists=True)
    op.drop_index("idx_lytx_event_datetime", table_name="lytx_safety_events", if_exists=True)
    op.drop_index(
        "ix_lytx_safety_events_driver_name",
        table_name="lytx_safety_events",
        if_exists=True,
    )

    op.drop_table("data_import_batches", if_exists=True)
    op.drop_table("lytx_safety_events", if_exists=True)
    op.drop_table("sync_checkpoints", if_exists=True)
