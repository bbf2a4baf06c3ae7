"""
Waitlist Ordering Engine

Maintains a strictly FIFO queue per class and runs the seat-offer cycle:

1. Join:
   - New entries are appended at position max + 1 (1 for an empty queue)

2. Promotion:
   - Whenever seats may have opened (drop, capacity increase, resolved
     offer) the lowest-position entries without an offer receive one, valid
     for ``offer_window_hours``
   - Live offers never outnumber free seats; stale offers found during
     promotion are expired first (lazy expiry)

3. Offer resolution:
   - accept: reserve the seat, remove the entry, enroll the student
   - decline / expiry: remove the entry, drop the student, promote the next
     entry (cascade until an offer is pending or the queue is empty)

4. Renumbering:
   - Removing the entry at position p moves every later entry up by one and
     reports the change to each affected student

Every function here runs inside a coordinated operation: the caller holds the
class lock and owns the transaction. Events are recorded on the supplied
``EventCollector`` and published by the coordinator after commit.
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from enrollment_hub.core.config import settings
from enrollment_hub.modules.classes.repository import ClassCapacityRepository
from enrollment_hub.modules.enrollments import repository
from enrollment_hub.modules.enrollments.events import EventCollector, RealtimeEventType
from enrollment_hub.modules.enrollments.exceptions import NoActiveOfferError
from enrollment_hub.modules.enrollments.helpers import (
    ensure_utc,
    is_offer_expired,
    wait_time_days,
)
from enrollment_hub.modules.enrollments.models import (
    AuditAction,
    Enrollment,
    EnrollmentStatus,
    OfferResponse,
    OfferStatus,
    WaitlistEntry,
)
from enrollment_hub.modules.enrollments.schemas import OperationResult

logger = logging.getLogger(__name__)


def _offer_window() -> timedelta:
    return timedelta(hours=settings.offer_window_hours)


async def join(db: AsyncSession, class_id: str, student_id: str) -> WaitlistEntry:
    """
    Append a student to the tail of a class waitlist.

    Returns:
        The new entry; its ``position`` is the student's place in line
    """
    position = await repository.get_max_position(db, class_id) + 1
    entry = await repository.add_waitlist_entry(db, class_id, student_id, position)
    logger.info(f"Student {student_id} joined waitlist for class {class_id} at position {position}")
    return entry


async def _renumber_after(
    db: AsyncSession,
    events: EventCollector,
    class_id: str,
    removed_position: int,
) -> None:
    """Close the gap left at ``removed_position``."""
    for entry in await repository.get_entries_after_position(db, class_id, removed_position):
        old_position = entry.position
        entry.position = old_position - 1
        events.student_event(
            RealtimeEventType.WAITLIST_POSITION_CHANGE,
            entry.student_id,
            broadcast=False,
            old_position=old_position,
            new_position=entry.position,
            position_change=1,
        )
    await db.flush()


async def remove_entry(
    db: AsyncSession,
    events: EventCollector,
    entry: WaitlistEntry,
    reason: str,
) -> None:
    """Delete a waitlist entry and renumber the entries behind it."""
    class_id = entry.class_id
    student_id = entry.student_id
    removed_position = entry.position

    await repository.delete_waitlist_entry(db, entry)
    await _renumber_after(db, events, class_id, removed_position)

    events.student_event(
        RealtimeEventType.WAITLIST_REMOVED,
        student_id,
        broadcast=False,
        reason=reason,
        previous_position=removed_position,
    )
    logger.info(
        f"Removed student {student_id} from waitlist for class {class_id} "
        f"(position {removed_position}, reason={reason})"
    )


async def _close_offer(
    db: AsyncSession,
    events: EventCollector,
    entry: WaitlistEntry,
    enrollment: Enrollment | None,
    outcome: OfferStatus,
    now: datetime,
) -> None:
    """Resolve an offer as declined or expired: the student leaves the queue."""
    student_id = entry.student_id
    class_id = entry.class_id

    entry.offer_status = outcome
    await repository.add_audit_log(
        db,
        class_id,
        AuditAction.EXPIRED if outcome == OfferStatus.EXPIRED else AuditAction.DECLINED,
        student_id=student_id,
        details={"position": entry.position},
    )

    await remove_entry(db, events, entry, reason=outcome.value)

    if enrollment is not None:
        await repository.update_status(db, enrollment, EnrollmentStatus.DROPPED, now)

    if outcome == OfferStatus.EXPIRED:
        events.student_event(RealtimeEventType.WAITLIST_OFFER_EXPIRED, student_id)
    else:
        events.student_event(
            RealtimeEventType.ENROLLMENT_DROPPED,
            student_id,
            previous_status=EnrollmentStatus.WAITLISTED.value,
            reason="offer_declined",
        )


async def _make_offer(
    db: AsyncSession,
    events: EventCollector,
    entry: WaitlistEntry,
    now: datetime,
) -> None:
    expires_at = now + _offer_window()
    entry.offer_status = OfferStatus.OFFERED
    entry.offered_at = now
    entry.offer_expires_at = expires_at
    entry.reminder_sent_at = None
    await db.flush()

    await repository.add_audit_log(
        db,
        entry.class_id,
        AuditAction.OFFERED,
        student_id=entry.student_id,
        details={"position": entry.position, "offer_expires_at": expires_at.isoformat()},
    )

    events.student_event(
        RealtimeEventType.WAITLIST_ADVANCEMENT,
        entry.student_id,
        broadcast=False,
        message=(
            f"A spot is now available! You have {settings.offer_window_hours} hours to respond."
        ),
        response_deadline=expires_at.isoformat(),
        position=entry.position,
    )

    logger.info(
        f"Offered seat in class {entry.class_id} to student {entry.student_id}, "
        f"expires {expires_at.isoformat()}"
    )


async def promote_next(
    db: AsyncSession,
    events: EventCollector,
    class_id: str,
    now: datetime | None = None,
) -> list[WaitlistEntry]:
    """
    Offer every free seat to the students next in line.

    Lapsed offers are expired first. Each free seat backs at most one live
    offer, so nothing happens while every free seat is already offered, when
    the class is full, or when nobody is waiting. Seats are only reserved
    when a student accepts.

    Returns:
        The entries that received an offer, in queue order
    """
    now = now or datetime.now(UTC)

    live_offers = 0
    for offer in await repository.get_outstanding_offers(db, class_id):
        if not is_offer_expired(offer.offer_expires_at, now):
            live_offers += 1
            continue
        enrollment = await repository.get_active_enrollment(db, offer.student_id, class_id)
        await _close_offer(db, events, offer, enrollment, OfferStatus.EXPIRED, now)

    snapshot = await ClassCapacityRepository.get_snapshot(db, class_id)
    if snapshot is None:
        return []

    unoffered_seats = snapshot.available_spots - live_offers
    if unoffered_seats <= 0:
        logger.debug(
            f"No unoffered seat in class {class_id} "
            f"({snapshot.available_spots} free, {live_offers} offers open)"
        )
        return []

    promoted: list[WaitlistEntry] = []
    while len(promoted) < unoffered_seats:
        candidate = await repository.get_next_unoffered_entry(db, class_id)
        if candidate is None:
            logger.debug(f"Waitlist for class {class_id} is exhausted, seats stay open")
            break
        await _make_offer(db, events, candidate, now)
        promoted.append(candidate)

    return promoted


async def resolve_offer(
    db: AsyncSession,
    events: EventCollector,
    class_id: str,
    student_id: str,
    response: OfferResponse,
    now: datetime | None = None,
) -> OperationResult:
    """
    Apply a student's answer to their waitlist offer.

    An accept that arrives after the deadline is handled as an expiry.

    Raises:
        NoActiveOfferError: If the student holds no open offer for the class
    """
    now = now or datetime.now(UTC)

    entry = await repository.get_waitlist_entry(db, class_id, student_id)
    if entry is None or entry.offer_status != OfferStatus.OFFERED:
        raise NoActiveOfferError(class_id, student_id)

    enrollment = await repository.get_active_enrollment(db, student_id, class_id)

    if is_offer_expired(entry.offer_expires_at, now):
        await _close_offer(db, events, entry, enrollment, OfferStatus.EXPIRED, now)
        await promote_next(db, events, class_id, now)
        return OperationResult.failure(
            class_id,
            "OFFER_EXPIRED",
            "This waitlist offer has expired.",
            student_id=student_id,
            status=EnrollmentStatus.DROPPED,
        )

    if response == OfferResponse.DECLINE:
        await _close_offer(db, events, entry, enrollment, OfferStatus.DECLINED, now)
        await promote_next(db, events, class_id, now)
        return OperationResult(
            success=True,
            class_id=class_id,
            student_id=student_id,
            status=EnrollmentStatus.DROPPED,
            message="Waitlist offer declined.",
        )

    if not await ClassCapacityRepository.try_reserve_seat(db, class_id):
        # Capacity was lowered while the offer was open: back in line, no offer
        entry.offer_status = OfferStatus.NONE
        entry.offered_at = None
        entry.offer_expires_at = None
        entry.reminder_sent_at = None
        await db.flush()
        events.student_event(
            RealtimeEventType.WAITLIST_OFFER_WITHDRAWN,
            student_id,
            broadcast=False,
            reason="no_seat_available",
            position=entry.position,
        )
        logger.info(
            f"Withdrew offer to student {student_id} for class {class_id}: no seat left"
        )
        return OperationResult.failure(
            class_id,
            "NO_SEAT_AVAILABLE",
            "The offered seat is no longer available. You remain on the waitlist.",
            student_id=student_id,
            status=EnrollmentStatus.WAITLISTED,
        )

    entry.offer_status = OfferStatus.ACCEPTED
    await repository.add_audit_log(
        db,
        class_id,
        AuditAction.ACCEPTED,
        student_id=student_id,
        details={"position": entry.position},
    )
    await remove_entry(db, events, entry, reason=OfferStatus.ACCEPTED.value)

    if enrollment is not None:
        await repository.update_status(db, enrollment, EnrollmentStatus.ENROLLED, now)

    events.student_event(
        RealtimeEventType.ENROLLMENT_CONFIRMED,
        student_id,
        status=EnrollmentStatus.ENROLLED.value,
        via="waitlist",
    )

    # Fill any free seat that no live offer covers yet
    await promote_next(db, events, class_id, now)

    return OperationResult(
        success=True,
        class_id=class_id,
        student_id=student_id,
        status=EnrollmentStatus.ENROLLED,
        message="Waitlist offer accepted. You are enrolled.",
    )


async def leave(
    db: AsyncSession,
    events: EventCollector,
    class_id: str,
    student_id: str,
    now: datetime | None = None,
) -> bool:
    """
    Remove a student who drops out of the queue voluntarily.

    If the student was holding the class's open offer, the offer passes on
    to the next entry.

    Returns:
        True if an entry was removed
    """
    entry = await repository.get_waitlist_entry(db, class_id, student_id)
    if entry is None:
        return False

    held_offer = entry.offer_status == OfferStatus.OFFERED
    await remove_entry(db, events, entry, reason="left")

    if held_offer:
        await promote_next(db, events, class_id, now)
    return True


async def expire_offer(
    db: AsyncSession,
    events: EventCollector,
    class_id: str,
    student_id: str,
    now: datetime | None = None,
) -> bool:
    """
    Expire a student's offer if its deadline has passed, then cascade.

    Idempotent: returns False when there is nothing (left) to expire.
    """
    now = now or datetime.now(UTC)

    entry = await repository.get_waitlist_entry(db, class_id, student_id)
    if entry is None or entry.offer_status != OfferStatus.OFFERED:
        return False
    if not is_offer_expired(entry.offer_expires_at, now):
        return False

    enrollment = await repository.get_active_enrollment(db, student_id, class_id)
    await _close_offer(db, events, entry, enrollment, OfferStatus.EXPIRED, now)
    await promote_next(db, events, class_id, now)
    return True


async def mark_offer_reminded(
    db: AsyncSession,
    events: EventCollector,
    class_id: str,
    student_id: str,
    now: datetime | None = None,
) -> bool:
    """
    Record a deadline reminder for an open offer.

    Returns:
        True if a reminder event was recorded, False if the offer is gone,
        already expired or was already reminded
    """
    now = now or datetime.now(UTC)

    entry = await repository.get_waitlist_entry(db, class_id, student_id)
    if entry is None or entry.offer_status != OfferStatus.OFFERED:
        return False
    if entry.reminder_sent_at is not None or is_offer_expired(entry.offer_expires_at, now):
        return False

    expires_at = ensure_utc(entry.offer_expires_at)
    entry.reminder_sent_at = now
    await db.flush()

    hours_remaining = max(0, int((expires_at - now).total_seconds() // 3600))
    events.student_event(
        RealtimeEventType.WAITLIST_OFFER_REMINDER,
        student_id,
        broadcast=False,
        response_deadline=expires_at.isoformat(),
        hours_remaining=hours_remaining,
    )
    return True


async def get_waitlist_stats(
    db: AsyncSession,
    class_id: str,
    now: datetime | None = None,
) -> tuple[list[WaitlistEntry], float]:
    """
    Get a class's ordered waitlist and the average wait so far.

    Returns:
        Tuple of (entries ordered by position, average wait in days)
    """
    now = now or datetime.now(UTC)
    entries = await repository.get_waitlist(db, class_id)
    if not entries:
        return entries, 0.0

    total_days = sum(wait_time_days(entry.joined_at, now) for entry in entries)
    return entries, round(total_days / len(entries), 1)
