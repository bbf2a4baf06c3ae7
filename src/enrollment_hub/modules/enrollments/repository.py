"""
Enrollments Repository

Database operations for enrollment records, waitlist entries and the audit
log.

Design Principles:
- All queries are parameterized (no SQL injection)
- Async operations for non-blocking I/O
- Single responsibility - only database operations, no business logic
- No commits: the enrollment coordinator owns the transaction, so every
  mutation of one operation becomes visible atomically or not at all
"""

from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    ACTIVE_ENROLLMENT_STATUSES,
    AuditAction,
    Enrollment,
    EnrollmentAuditLog,
    EnrollmentStatus,
    OfferStatus,
    WaitlistEntry,
)

# ============================================
# Enrollment State Machine
# ============================================

# Valid status transitions - prevents invalid state changes
VALID_STATUS_TRANSITIONS: dict[EnrollmentStatus, set[EnrollmentStatus]] = {
    EnrollmentStatus.PENDING: {
        EnrollmentStatus.ENROLLED,  # Seat reserved
        EnrollmentStatus.WAITLISTED,  # Class full, queued
        EnrollmentStatus.DENIED,  # Rejected by policy
    },
    EnrollmentStatus.ENROLLED: {
        EnrollmentStatus.DROPPED,  # Student or admin drop
    },
    EnrollmentStatus.WAITLISTED: {
        EnrollmentStatus.ENROLLED,  # Offer accepted
        EnrollmentStatus.DROPPED,  # Left queue, declined or offer expired
    },
    # Terminal states - no transitions allowed
    EnrollmentStatus.DROPPED: set(),
    EnrollmentStatus.DENIED: set(),
}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid enrollment status transition is attempted."""

    def __init__(
        self,
        current_status: EnrollmentStatus,
        new_status: EnrollmentStatus,
    ):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


async def create_enrollment(
    db: AsyncSession,
    student_id: str,
    class_id: str,
    justification: str | None = None,
) -> Enrollment:
    """Create a new enrollment record in the PENDING state."""
    enrollment = Enrollment(
        student_id=student_id,
        class_id=class_id,
        status=EnrollmentStatus.PENDING,
        justification=justification,
    )
    db.add(enrollment)
    await db.flush()
    return enrollment


async def update_status(
    db: AsyncSession,
    enrollment: Enrollment,
    status: EnrollmentStatus,
    decided_at: datetime,
) -> Enrollment:
    """
    Move an enrollment to a new status.

    Args:
        db: Database session
        enrollment: The enrollment record to update
        status: Target status
        decided_at: Decision timestamp (UTC)

    Returns:
        The updated enrollment

    Raises:
        InvalidStatusTransitionError: If the transition is not allowed
    """
    valid_transitions = VALID_STATUS_TRANSITIONS.get(enrollment.status, set())
    if status not in valid_transitions:
        raise InvalidStatusTransitionError(enrollment.status, status)

    enrollment.status = status
    enrollment.decided_at = decided_at
    await db.flush()
    return enrollment


async def get_active_enrollment(
    db: AsyncSession,
    student_id: str,
    class_id: str,
) -> Enrollment | None:
    """Get the pending/enrolled/waitlisted enrollment for a pair, if any."""
    result = await db.execute(
        select(Enrollment)
        .where(
            Enrollment.student_id == student_id,
            Enrollment.class_id == class_id,
            Enrollment.status.in_(ACTIVE_ENROLLMENT_STATUSES),
        )
        .order_by(Enrollment.requested_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_latest_enrollment(
    db: AsyncSession,
    student_id: str,
    class_id: str,
) -> Enrollment | None:
    """Get the most recent enrollment for a pair regardless of status."""
    result = await db.execute(
        select(Enrollment)
        .where(
            Enrollment.student_id == student_id,
            Enrollment.class_id == class_id,
        )
        .order_by(Enrollment.requested_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def count_enrollments_by_status(
    db: AsyncSession,
    class_id: str,
) -> dict[EnrollmentStatus, int]:
    """Count a class's enrollment records grouped by status."""
    result = await db.execute(
        select(Enrollment.status, func.count())
        .where(Enrollment.class_id == class_id)
        .group_by(Enrollment.status)
    )
    counts = {status: 0 for status in EnrollmentStatus}
    for status, count in result.all():
        counts[EnrollmentStatus(status)] = count
    return counts


# ============================================
# Waitlist Entries
# ============================================


async def get_waitlist(db: AsyncSession, class_id: str) -> list[WaitlistEntry]:
    """Get all waitlist entries for a class ordered by position."""
    result = await db.execute(
        select(WaitlistEntry)
        .where(WaitlistEntry.class_id == class_id)
        .order_by(WaitlistEntry.position.asc())
    )
    return list(result.scalars().all())


async def get_waitlist_entry(
    db: AsyncSession,
    class_id: str,
    student_id: str,
) -> WaitlistEntry | None:
    """Get one student's waitlist entry for a class."""
    result = await db.execute(
        select(WaitlistEntry).where(
            WaitlistEntry.class_id == class_id,
            WaitlistEntry.student_id == student_id,
        )
    )
    return result.scalar_one_or_none()


async def get_max_position(db: AsyncSession, class_id: str) -> int:
    """Highest occupied waitlist position for a class (0 when empty)."""
    result = await db.execute(
        select(func.max(WaitlistEntry.position)).where(WaitlistEntry.class_id == class_id)
    )
    return result.scalar() or 0


async def count_waitlist(db: AsyncSession, class_id: str) -> int:
    """Number of students currently on a class waitlist."""
    result = await db.execute(
        select(func.count()).select_from(WaitlistEntry).where(WaitlistEntry.class_id == class_id)
    )
    return result.scalar() or 0


async def add_waitlist_entry(
    db: AsyncSession,
    class_id: str,
    student_id: str,
    position: int,
) -> WaitlistEntry:
    """Insert a waitlist entry at an explicit position."""
    entry = WaitlistEntry(
        class_id=class_id,
        student_id=student_id,
        position=position,
        offer_status=OfferStatus.NONE,
    )
    db.add(entry)
    await db.flush()
    return entry


async def delete_waitlist_entry(db: AsyncSession, entry: WaitlistEntry) -> None:
    """Physically remove a waitlist entry (renumbering is the caller's job)."""
    await db.delete(entry)
    await db.flush()


async def get_entries_after_position(
    db: AsyncSession,
    class_id: str,
    position: int,
) -> list[WaitlistEntry]:
    """Get the entries queued behind ``position``, in ascending order."""
    result = await db.execute(
        select(WaitlistEntry)
        .where(
            WaitlistEntry.class_id == class_id,
            WaitlistEntry.position > position,
        )
        .order_by(WaitlistEntry.position.asc())
    )
    return list(result.scalars().all())


async def get_outstanding_offers(db: AsyncSession, class_id: str) -> list[WaitlistEntry]:
    """Get the entries holding an unresolved offer for a class, by position."""
    result = await db.execute(
        select(WaitlistEntry)
        .where(
            WaitlistEntry.class_id == class_id,
            WaitlistEntry.offer_status == OfferStatus.OFFERED,
        )
        .order_by(WaitlistEntry.position.asc())
    )
    return list(result.scalars().all())


async def get_next_unoffered_entry(db: AsyncSession, class_id: str) -> WaitlistEntry | None:
    """Get the lowest-position entry that has not been offered a seat."""
    result = await db.execute(
        select(WaitlistEntry)
        .where(
            WaitlistEntry.class_id == class_id,
            WaitlistEntry.offer_status == OfferStatus.NONE,
        )
        .order_by(WaitlistEntry.position.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_expired_offers(db: AsyncSession, now: datetime) -> list[WaitlistEntry]:
    """
    Get offered entries whose deadline has passed, across all classes.

    Used by the expiry sweep job. The result is only a candidate list; each
    entry is re-checked under its class lock before being resolved.
    """
    result = await db.execute(
        select(WaitlistEntry)
        .where(
            WaitlistEntry.offer_status == OfferStatus.OFFERED,
            WaitlistEntry.offer_expires_at.is_not(None),
            WaitlistEntry.offer_expires_at <= now,
        )
        .order_by(WaitlistEntry.offer_expires_at.asc())
    )
    return list(result.scalars().all())


async def get_offers_needing_reminder(
    db: AsyncSession,
    expires_before: datetime,
    now: datetime,
) -> list[WaitlistEntry]:
    """
    Get open offers expiring before ``expires_before`` with no reminder sent.

    Args:
        db: Database session
        expires_before: Reminder threshold (e.g. now + 4 hours)
        now: Current time; offers already expired are left to the sweep

    Returns:
        List of waitlist entries needing a deadline reminder
    """
    result = await db.execute(
        select(WaitlistEntry).where(
            WaitlistEntry.offer_status == OfferStatus.OFFERED,
            WaitlistEntry.reminder_sent_at.is_(None),
            WaitlistEntry.offer_expires_at.is_not(None),
            WaitlistEntry.offer_expires_at > now,
            WaitlistEntry.offer_expires_at <= expires_before,
        )
    )
    return list(result.scalars().all())


# ============================================
# Audit Log
# ============================================


async def add_audit_log(
    db: AsyncSession,
    class_id: str,
    action: AuditAction,
    student_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> EnrollmentAuditLog:
    """Append an entry to the enrollment audit log."""
    entry = EnrollmentAuditLog(
        class_id=class_id,
        student_id=student_id,
        action=action,
        details=details,
    )
    db.add(entry)
    await db.flush()
    return entry


async def count_recent_actions(
    db: AsyncSession,
    class_id: str,
    since: datetime,
) -> dict[str, int]:
    """Count a class's audit actions recorded since ``since``, keyed by action value."""
    result = await db.execute(
        select(EnrollmentAuditLog.action, func.count())
        .where(
            EnrollmentAuditLog.class_id == class_id,
            EnrollmentAuditLog.created_at >= since,
        )
        .group_by(EnrollmentAuditLog.action)
    )
    return {AuditAction(action).value: count for action, count in result.all()}
