"""create reminders, reminder_schedule and owner_settings

Revision ID: 20261018_01
Revises: None
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261018_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "reminders",
        sa.Column("reminder_id", sa.String(length=36), primary_key=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("reminder_text", sa.Text(), nullable=False),
        sa.Column("schedule", sa.JSON(), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("next_fire_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_reminders_owner_id", "reminders", ["owner_id"])

    # Global time-ordered index of scheduled reminders
    op.create_table(
        "reminder_schedule",
        sa.Column("owner_id", sa.String(), primary_key=True),
        sa.Column("reminder_id", sa.String(length=36), primary_key=True),
        sa.Column("next_fire_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_reminder_schedule_next_fire_at", "reminder_schedule", ["next_fire_at"])

    op.create_table(
        "owner_settings",
        sa.Column("owner_id", sa.String(), primary_key=True),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("owner_settings")
    op.drop_index("ix_reminder_schedule_next_fire_at", table_name="reminder_schedule")
    op.drop_table("reminder_schedule")
    op.drop_index("ix_reminders_owner_id", table_name="reminders")
    op.drop_table("reminders")
