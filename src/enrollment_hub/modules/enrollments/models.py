"""
Enrollment Models

Database models for enrollment records, waitlist entries and the enrollment
audit log.

Enrollment rows are never deleted: ``dropped`` and ``denied`` are terminal
statuses kept for audit. Waitlist entries are physically removed when a
student leaves the queue; remaining positions are renumbered so they stay
contiguous from 1.
"""

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from enrollment_hub.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist enum values (not member names) in the database."""
    return [member.value for member in enum_cls]


class EnrollmentStatus(str, enum.Enum):
    """Status of one student's admission to one class."""

    PENDING = "pending"
    ENROLLED = "enrolled"
    WAITLISTED = "waitlisted"
    DROPPED = "dropped"
    DENIED = "denied"


# Statuses that block a new request for the same (student, class) pair
ACTIVE_ENROLLMENT_STATUSES = frozenset(
    {
        EnrollmentStatus.PENDING,
        EnrollmentStatus.ENROLLED,
        EnrollmentStatus.WAITLISTED,
    }
)


class OfferStatus(str, enum.Enum):
    """State of the seat offer attached to a waitlist entry."""

    NONE = "none"
    OFFERED = "offered"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class OfferResponse(str, enum.Enum):
    """A student's answer to a waitlist offer."""

    ACCEPT = "accept"
    DECLINE = "decline"


class AuditAction(str, enum.Enum):
    """Actions recorded in the enrollment audit log."""

    ENROLLED = "enrolled"
    WAITLISTED = "waitlisted"
    DENIED = "denied"
    DROPPED = "dropped"
    OFFERED = "offered"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    CAPACITY_CHANGED = "capacity_changed"


class Enrollment(Base):
    """
    One student's admission record for one class.

    At most one row per (student_id, class_id) may be in an active status
    (pending, enrolled, waitlisted) at any time.
    """

    __tablename__ = "enrollments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    class_id: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[EnrollmentStatus] = mapped_column(
        Enum(EnrollmentStatus, name="enrollment_status", values_callable=_enum_values),
        nullable=False,
        default=EnrollmentStatus.PENDING,
    )
    justification: Mapped[str | None] = mapped_column(Text, nullable=True)

    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_enrollments_student_class", "student_id", "class_id"),
        Index("ix_enrollments_class_status", "class_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Enrollment {self.student_id}@{self.class_id} {self.status.value}>"


class WaitlistEntry(Base):
    """
    One student's place in a class waitlist.

    Positions within a class form the contiguous sequence 1..n. Uniqueness is
    maintained by the waitlist engine (renumbering decrements rows one by
    one, so a unique index on position would trip mid-renumber).
    """

    __tablename__ = "waitlist_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    class_id: Mapped[str] = mapped_column(String(64), nullable=False)

    position: Mapped[int] = mapped_column(Integer, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    # Offer tracking
    offer_status: Mapped[OfferStatus] = mapped_column(
        Enum(OfferStatus, name="offer_status", values_callable=_enum_values),
        nullable=False,
        default=OfferStatus.NONE,
    )
    offered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    offer_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reminder_sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_waitlist_entries_class_position", "class_id", "position"),
        Index("ix_waitlist_entries_student_class", "student_id", "class_id", unique=True),
        Index("ix_waitlist_entries_offer_expires_at", "offer_status", "offer_expires_at"),
    )

    def __repr__(self) -> str:
        return f"<WaitlistEntry {self.student_id}@{self.class_id} #{self.position}>"


class EnrollmentAuditLog(Base):
    """Append-only log of admission-affecting actions."""

    __tablename__ = "enrollment_audit_log"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    class_id: Mapped[str] = mapped_column(String(64), nullable=False)
    student_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    action: Mapped[AuditAction] = mapped_column(
        Enum(AuditAction, name="enrollment_audit_action", values_callable=_enum_values),
        nullable=False,
    )
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    __table_args__ = (Index("ix_enrollment_audit_log_class_created", "class_id", "created_at"),)
