"""
Enrollments Service Layer

Business logic for enrollment requests, drops, capacity changes and waitlist
offers. Every mutating function here expects to run inside a coordinated
operation (class lock held, transaction owned by the coordinator) and records
its realtime events on the supplied ``EventCollector``.

This module implements:
1. Enrollment Requests:
   - Reject a second active enrollment for the same student and class
   - Reserve a seat atomically when the class has room and nobody is waiting
   - Otherwise append the student to the waitlist

2. Drops:
   - Enrolled students release their seat and the next waitlisted student
     receives an offer
   - Waitlisted students leave the queue; later entries move up
   - Dropping something that is not active is a successful no-op

3. Capacity Changes:
   - Capacity may never go below the current enrolled count
   - An increase starts the offer cascade

4. Waitlist Offers:
   - Responses and expiry are delegated to the waitlist engine

5. Read Models:
   - Class summary events appended after every state change
   - Waitlist listings, per-student position and realtime statistics
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from enrollment_hub.modules.classes.models import ClassCapacity
from enrollment_hub.modules.classes.repository import ClassCapacityRepository
from enrollment_hub.modules.enrollments import repository, waitlist
from enrollment_hub.modules.enrollments.events import EventCollector, RealtimeEventType
from enrollment_hub.modules.enrollments.exceptions import (
    ClassArchivedError,
    ClassNotFoundError,
    InvalidCapacityError,
    InvalidIdentifierError,
)
from enrollment_hub.modules.enrollments.helpers import (
    describe_wait,
    ensure_utc,
    estimate_wait_days,
    is_valid_identifier,
)
from enrollment_hub.modules.enrollments.models import (
    AuditAction,
    EnrollmentStatus,
    OfferResponse,
    OfferStatus,
)
from enrollment_hub.modules.enrollments.schemas import (
    EnrollmentCounts,
    OperationResult,
    RecentActivity,
    WaitlistEntryResponse,
    WaitlistPositionResponse,
    WaitlistResponse,
    WaitlistSummary,
)

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_WINDOW = timedelta(hours=24)


def validate_identifiers(*, class_id: str, student_id: str | None = None) -> None:
    """
    Reject malformed ids before any lock is taken or any row is touched.

    Raises:
        InvalidIdentifierError: If an id is empty or malformed
    """
    if not is_valid_identifier(class_id):
        raise InvalidIdentifierError("class_id")
    if student_id is not None and not is_valid_identifier(student_id):
        raise InvalidIdentifierError("student_id")


def validate_capacity(capacity: int) -> None:
    if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity < 0:
        raise InvalidCapacityError("Capacity must be a non-negative integer")


async def _load_class(
    db: AsyncSession,
    events: EventCollector,
    class_id: str,
) -> ClassCapacity:
    record = await ClassCapacityRepository.get_by_class_id(db, class_id)
    if record is None:
        raise ClassNotFoundError(class_id)

    # Class-level events are mirrored to the teacher from here on
    events.teacher_id = record.teacher_id
    return record


# ============================================
# Enrollment Requests
# ============================================


async def request_enrollment(
    db: AsyncSession,
    events: EventCollector,
    student_id: str,
    class_id: str,
    justification: str | None = None,
    now: datetime | None = None,
) -> OperationResult:
    """
    Admit a student to a class or put them on its waitlist.

    While anybody is already waiting, new requests queue behind them even if
    a seat is momentarily free; that seat is being offered to the head of the
    queue.

    Returns:
        OperationResult with status ENROLLED, WAITLISTED (with position), or a
        DENIED failure for a duplicate request

    Raises:
        ClassNotFoundError: If the class is unknown
        ClassArchivedError: If the class no longer accepts enrollments
    """
    now = now or datetime.now(UTC)
    klass = await _load_class(db, events, class_id)
    if klass.is_archived:
        raise ClassArchivedError(class_id)

    existing = await repository.get_active_enrollment(db, student_id, class_id)
    if existing is not None:
        await repository.add_audit_log(
            db,
            class_id,
            AuditAction.DENIED,
            student_id=student_id,
            details={"reason": "duplicate", "existing_status": existing.status.value},
        )
        logger.info(
            f"Duplicate enrollment request from {student_id} for class {class_id} "
            f"(already {existing.status.value})"
        )
        return OperationResult.failure(
            class_id,
            "DUPLICATE_ENROLLMENT",
            f"Student already has an active enrollment ({existing.status.value}) for this class",
            student_id=student_id,
            status=EnrollmentStatus.DENIED,
        )

    enrollment = await repository.create_enrollment(db, student_id, class_id, justification)

    queue_length = await repository.count_waitlist(db, class_id)
    if queue_length == 0 and await ClassCapacityRepository.try_reserve_seat(db, class_id):
        await repository.update_status(db, enrollment, EnrollmentStatus.ENROLLED, now)
        await repository.add_audit_log(db, class_id, AuditAction.ENROLLED, student_id=student_id)
        events.student_event(
            RealtimeEventType.ENROLLMENT_CONFIRMED,
            student_id,
            status=EnrollmentStatus.ENROLLED.value,
            via="request",
        )
        logger.info(f"Enrolled student {student_id} in class {class_id}")
        return OperationResult(
            success=True,
            class_id=class_id,
            student_id=student_id,
            status=EnrollmentStatus.ENROLLED,
            message="Enrollment confirmed.",
        )

    entry = await waitlist.join(db, class_id, student_id)
    await repository.update_status(db, enrollment, EnrollmentStatus.WAITLISTED, now)
    await repository.add_audit_log(
        db,
        class_id,
        AuditAction.WAITLISTED,
        student_id=student_id,
        details={"position": entry.position},
    )
    events.student_event(
        RealtimeEventType.WAITLIST_JOINED,
        student_id,
        position=entry.position,
    )

    # A seat can be free with nobody holding an offer (e.g. after an offer
    # was reset by a capacity cut and capacity came back)
    if queue_length > 0:
        await waitlist.promote_next(db, events, class_id, now)

    return OperationResult(
        success=True,
        class_id=class_id,
        student_id=student_id,
        status=EnrollmentStatus.WAITLISTED,
        position=entry.position,
        message=f"Class is full. You are number {entry.position} on the waitlist.",
    )


# ============================================
# Drops
# ============================================


async def drop_enrollment(
    db: AsyncSession,
    events: EventCollector,
    student_id: str,
    class_id: str,
    now: datetime | None = None,
) -> OperationResult:
    """
    Drop a student's active enrollment or waitlist entry.

    Idempotent: with nothing active to drop, the call succeeds without
    changing any state and reports the student's latest status.
    """
    now = now or datetime.now(UTC)

    klass = await ClassCapacityRepository.get_by_class_id(db, class_id)
    if klass is not None:
        events.teacher_id = klass.teacher_id

    enrollment = await repository.get_active_enrollment(db, student_id, class_id)
    if enrollment is None:
        latest = await repository.get_latest_enrollment(db, student_id, class_id)
        return OperationResult(
            success=True,
            class_id=class_id,
            student_id=student_id,
            status=latest.status if latest else None,
            message="No active enrollment to drop.",
        )

    previous_status = enrollment.status
    await repository.update_status(db, enrollment, EnrollmentStatus.DROPPED, now)

    details = {"previous_status": previous_status.value}
    was_enrolled = previous_status == EnrollmentStatus.ENROLLED
    if was_enrolled:
        details["enrolled_count"] = await ClassCapacityRepository.release_seat(db, class_id)

    await repository.add_audit_log(
        db, class_id, AuditAction.DROPPED, student_id=student_id, details=details
    )
    events.student_event(
        RealtimeEventType.ENROLLMENT_DROPPED,
        student_id,
        previous_status=previous_status.value,
    )

    if was_enrolled:
        await waitlist.promote_next(db, events, class_id, now)
    else:
        await waitlist.leave(db, events, class_id, student_id, now)

    logger.info(f"Dropped student {student_id} from class {class_id} ({previous_status.value})")
    return OperationResult(
        success=True,
        class_id=class_id,
        student_id=student_id,
        status=EnrollmentStatus.DROPPED,
        message="Enrollment dropped.",
    )


# ============================================
# Capacity
# ============================================


async def adjust_capacity(
    db: AsyncSession,
    events: EventCollector,
    class_id: str,
    new_capacity: int,
    now: datetime | None = None,
) -> OperationResult:
    """
    Change the number of seats in a class.

    Raises:
        ClassNotFoundError: If the class is unknown
        InvalidCapacityError: If ``new_capacity`` is below the enrolled count
    """
    validate_capacity(new_capacity)
    klass = await _load_class(db, events, class_id)

    if new_capacity < klass.enrolled_count:
        raise InvalidCapacityError(
            f"Capacity {new_capacity} is below the current enrollment of {klass.enrolled_count}"
        )

    previous = await ClassCapacityRepository.set_capacity(db, class_id, new_capacity)
    if previous is None:
        raise ClassNotFoundError(class_id)
    if previous == new_capacity:
        return OperationResult(success=True, class_id=class_id, message="Capacity unchanged.")

    await repository.add_audit_log(
        db,
        class_id,
        AuditAction.CAPACITY_CHANGED,
        details={"old_capacity": previous, "new_capacity": new_capacity},
    )
    events.class_event(
        RealtimeEventType.CAPACITY_UPDATE,
        old_capacity=previous,
        new_capacity=new_capacity,
        capacity_change=new_capacity - previous,
    )
    logger.info(f"Capacity of class {class_id} changed {previous} -> {new_capacity}")

    if new_capacity > previous:
        await waitlist.promote_next(db, events, class_id, now)

    return OperationResult(
        success=True,
        class_id=class_id,
        message=f"Capacity updated to {new_capacity}.",
    )


# ============================================
# Waitlist Offers
# ============================================


async def respond_to_offer(
    db: AsyncSession,
    events: EventCollector,
    student_id: str,
    class_id: str,
    response: OfferResponse,
    now: datetime | None = None,
) -> OperationResult:
    """Accept or decline a waitlist offer."""
    await _load_class(db, events, class_id)
    result = await waitlist.resolve_offer(db, events, class_id, student_id, response, now)
    if result.success and result.status == EnrollmentStatus.ENROLLED:
        logger.info(f"Student {student_id} accepted offer for class {class_id}")
    return result


async def promote_next(
    db: AsyncSession,
    events: EventCollector,
    class_id: str,
    now: datetime | None = None,
) -> OperationResult:
    """
    Offer the class's unoffered free seats to the head of the waitlist.

    The result describes the first new offer; ``message`` lists everyone
    who received one.
    """
    await _load_class(db, events, class_id)
    offered = await waitlist.promote_next(db, events, class_id, now)
    if not offered:
        return OperationResult(success=True, class_id=class_id, message="No offer made.")

    head = offered[0]
    return OperationResult(
        success=True,
        class_id=class_id,
        student_id=head.student_id,
        status=EnrollmentStatus.WAITLISTED,
        position=head.position,
        offer_expires_at=ensure_utc(head.offer_expires_at),
        message=f"Offer made to {', '.join(entry.student_id for entry in offered)}.",
    )


async def expire_offer(
    db: AsyncSession,
    events: EventCollector,
    student_id: str,
    class_id: str,
    now: datetime | None = None,
) -> OperationResult:
    """Expire a lapsed offer (no-op if it was resolved in the meantime)."""
    await _load_class(db, events, class_id)
    expired = await waitlist.expire_offer(db, events, class_id, student_id, now)
    return OperationResult(
        success=True,
        class_id=class_id,
        student_id=student_id,
        status=EnrollmentStatus.DROPPED if expired else None,
        message="Offer expired." if expired else "No lapsed offer.",
    )


async def send_offer_reminder(
    db: AsyncSession,
    events: EventCollector,
    student_id: str,
    class_id: str,
    now: datetime | None = None,
) -> OperationResult:
    """Record a deadline reminder for an open offer."""
    await _load_class(db, events, class_id)
    reminded = await waitlist.mark_offer_reminded(db, events, class_id, student_id, now)
    return OperationResult(
        success=True,
        class_id=class_id,
        student_id=student_id,
        message="Reminder sent." if reminded else "No reminder needed.",
    )


# ============================================
# Read Models
# ============================================


async def append_class_summary(
    db: AsyncSession,
    events: EventCollector,
    class_id: str,
    now: datetime | None = None,
) -> None:
    """
    Append count and queue summaries for class watchers.

    Computed inside the operation's transaction, after all its changes, so
    the summary matches the state that is about to be committed.
    """
    snapshot = await ClassCapacityRepository.get_snapshot(db, class_id)
    if snapshot is None:
        return

    entries, average_wait = await waitlist.get_waitlist_stats(db, class_id, now)
    events.class_event(
        RealtimeEventType.ENROLLMENT_COUNT_UPDATE,
        current_enrollment=snapshot.enrolled_count,
        capacity=snapshot.capacity,
        available_spots=snapshot.available_spots,
        waitlist_count=len(entries),
    )
    events.class_event(
        RealtimeEventType.WAITLIST_UPDATE,
        total_waitlisted=len(entries),
        average_wait_days=average_wait,
    )


async def get_class_waitlist(db: AsyncSession, class_id: str) -> WaitlistResponse:
    """
    Get a class's ordered waitlist.

    Raises:
        ClassNotFoundError: If the class is unknown
    """
    if await ClassCapacityRepository.get_snapshot(db, class_id) is None:
        raise ClassNotFoundError(class_id)

    entries, average_wait = await waitlist.get_waitlist_stats(db, class_id)
    return WaitlistResponse(
        class_id=class_id,
        total_waitlisted=len(entries),
        average_wait_days=average_wait,
        entries=[WaitlistEntryResponse.model_validate(entry) for entry in entries],
    )


async def get_waitlist_position(
    db: AsyncSession,
    class_id: str,
    student_id: str,
    now: datetime | None = None,
) -> WaitlistPositionResponse | None:
    """
    Get one student's standing on a class waitlist, or None if not queued.

    The wait estimate scales the queue's average wait by the student's
    position; a student holding an offer has nothing left to wait for.
    """
    entry = await repository.get_waitlist_entry(db, class_id, student_id)
    if entry is None:
        return None

    entries, average_wait = await waitlist.get_waitlist_stats(db, class_id, now)
    if entry.offer_status == OfferStatus.OFFERED:
        estimated_days = 0.0
    else:
        estimated_days = estimate_wait_days(entry.position, average_wait)

    return WaitlistPositionResponse(
        class_id=class_id,
        student_id=student_id,
        position=entry.position,
        total_waitlisted=len(entries),
        students_ahead=entry.position - 1,
        offer_status=entry.offer_status,
        offer_expires_at=ensure_utc(entry.offer_expires_at),
        estimated_wait_days=estimated_days,
        estimated_wait=describe_wait(estimated_days),
    )


async def get_realtime_stats(
    db: AsyncSession,
    class_id: str,
    now: datetime | None = None,
) -> tuple[EnrollmentCounts, WaitlistSummary, RecentActivity]:
    """
    Collect dashboard statistics for a class.

    Returns:
        Tuple of (enrollment counts with per-status totals, waitlist summary,
        last-24h activity)

    Raises:
        ClassNotFoundError: If the class is unknown
    """
    now = now or datetime.now(UTC)
    snapshot = await ClassCapacityRepository.get_snapshot(db, class_id)
    if snapshot is None:
        raise ClassNotFoundError(class_id)

    entries, average_wait = await waitlist.get_waitlist_stats(db, class_id, now)
    actions = await repository.count_recent_actions(db, class_id, now - RECENT_ACTIVITY_WINDOW)
    statuses = await repository.count_enrollments_by_status(db, class_id)

    return (
        EnrollmentCounts(
            current=snapshot.enrolled_count,
            capacity=snapshot.capacity,
            available=snapshot.available_spots,
            by_status={status.value: count for status, count in statuses.items()},
        ),
        WaitlistSummary(total=len(entries), average_wait_days=average_wait),
        RecentActivity(
            enrollments=actions.get(AuditAction.ENROLLED.value, 0)
            + actions.get(AuditAction.ACCEPTED.value, 0),
            drops=actions.get(AuditAction.DROPPED.value, 0),
            waitlisted=actions.get(AuditAction.WAITLISTED.value, 0),
            offers=actions.get(AuditAction.OFFERED.value, 0),
        ),
    )
