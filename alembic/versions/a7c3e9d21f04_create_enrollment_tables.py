"""create enrollment tables

Revision ID: a7c3e9d21f04
Revises:
Create Date: 2026-10-16 09:00:00.000000

This migration:
1. Creates class_capacities (seat counters, source of truth for admission)
2. Creates enrollments with the enrollment_status enum
3. Creates waitlist_entries with the offer_status enum
4. Creates enrollment_audit_log with the enrollment_audit_action enum
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a7c3e9d21f04"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ENROLLMENT_STATUS_VALUES = ("pending", "enrolled", "waitlisted", "dropped", "denied")
OFFER_STATUS_VALUES = ("none", "offered", "accepted", "declined", "expired")
AUDIT_ACTION_VALUES = (
    "enrolled",
    "waitlisted",
    "denied",
    "dropped",
    "offered",
    "accepted",
    "declined",
    "expired",
    "capacity_changed",
)


def upgrade() -> None:
    """Create the capacity, enrollment, waitlist and audit tables."""
    op.create_table(
        "class_capacities",
        sa.Column("class_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("teacher_id", sa.String(length=64), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("enrolled_count", sa.Integer(), nullable=False),
        sa.Column("is_archived", sa.Boolean(), nullable=False),
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
        sa.CheckConstraint("capacity >= 0", name="ck_class_capacities_capacity_non_negative"),
        sa.CheckConstraint(
            "enrolled_count >= 0", name="ck_class_capacities_enrolled_count_non_negative"
        ),
        sa.CheckConstraint(
            "enrolled_count <= capacity", name="ck_class_capacities_enrolled_within_capacity"
        ),
        sa.PrimaryKeyConstraint("class_id"),
    )
    op.create_index(
        "ix_class_capacities_teacher_id", "class_capacities", ["teacher_id"], unique=False
    )

    op.create_table(
        "enrollments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("student_id", sa.String(length=64), nullable=False),
        sa.Column("class_id", sa.String(length=64), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*ENROLLMENT_STATUS_VALUES, name="enrollment_status"),
            nullable=False,
        ),
        sa.Column("justification", sa.Text(), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_enrollments_student_class", "enrollments", ["student_id", "class_id"], unique=False
    )
    op.create_index(
        "ix_enrollments_class_status", "enrollments", ["class_id", "status"], unique=False
    )

    op.create_table(
        "waitlist_entries",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("student_id", sa.String(length=64), nullable=False),
        sa.Column("class_id", sa.String(length=64), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "offer_status",
            sa.Enum(*OFFER_STATUS_VALUES, name="offer_status"),
            nullable=False,
        ),
        sa.Column("offered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("offer_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    # Position is deliberately not unique: renumbering updates rows one at a time
    op.create_index(
        "ix_waitlist_entries_class_position",
        "waitlist_entries",
        ["class_id", "position"],
        unique=False,
    )
    op.create_index(
        "ix_waitlist_entries_student_class",
        "waitlist_entries",
        ["student_id", "class_id"],
        unique=True,
    )
    op.create_index(
        "ix_waitlist_entries_offer_expires_at",
        "waitlist_entries",
        ["offer_status", "offer_expires_at"],
        unique=False,
    )

    op.create_table(
        "enrollment_audit_log",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("class_id", sa.String(length=64), nullable=False),
        sa.Column("student_id", sa.String(length=64), nullable=True),
        sa.Column(
            "action",
            sa.Enum(*AUDIT_ACTION_VALUES, name="enrollment_audit_action"),
            nullable=False,
        ),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_enrollment_audit_log_class_created",
        "enrollment_audit_log",
        ["class_id", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    """Drop the enrollment tables and their enum types."""
    op.drop_index("ix_enrollment_audit_log_class_created", table_name="enrollment_audit_log")
    op.drop_table("enrollment_audit_log")

    op.drop_index("ix_waitlist_entries_offer_expires_at", table_name="waitlist_entries")
    op.drop_index("ix_waitlist_entries_student_class", table_name="waitlist_entries")
    op.drop_index("ix_waitlist_entries_class_position", table_name="waitlist_entries")
    op.drop_table("waitlist_entries")

    op.drop_index("ix_enrollments_class_status", table_name="enrollments")
    op.drop_index("ix_enrollments_student_class", table_name="enrollments")
    op.drop_table("enrollments")

    op.drop_index("ix_class_capacities_teacher_id", table_name="class_capacities")
    op.drop_table("class_capacities")

    bind = op.get_bind()
    for enum_name in ("enrollment_audit_action", "offer_status", "enrollment_status"):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
