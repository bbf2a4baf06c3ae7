"""
Waitlist Background Jobs

Scheduled tasks that keep waitlist offers moving when nobody touches a class:
1. Expire offers whose response window has passed and pass the seat on
2. Remind students shortly before their offer deadline

Design Principles:
- Jobs are idempotent (safe to run multiple times)
- Candidates are found with a plain read; every change goes through the
  enrollment coordinator, which re-checks the entry under the class lock
- Jobs continue processing even if individual items fail
- Lazy expiry during promotion and offer responses covers the gap between
  runs, so the schedule only bounds how long an idle class can stall

Schedule:
- Both jobs run every OFFER_SWEEP_INTERVAL_MINUTES (default 5)
- Jobs can also be triggered manually via the debug endpoints
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from enrollment_hub.core.config import settings
from enrollment_hub.core.database import async_session_maker
from enrollment_hub.core.scheduler import register_job
from enrollment_hub.modules.enrollments import repository
from enrollment_hub.modules.enrollments.coordinator import (
    EnrollmentCoordinator,
    get_coordinator,
)

logger = logging.getLogger(__name__)

# Job IDs for registration and manual triggering
JOB_ID_EXPIRE_OFFERS = "waitlist_expire_offers"
JOB_ID_SEND_OFFER_REMINDERS = "waitlist_send_offer_reminders"


async def expire_waitlist_offers(
    coordinator: EnrollmentCoordinator | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> dict[str, Any]:
    """
    Expire every offer whose deadline has passed.

    Each expiry removes the student from the waitlist, renumbers the queue
    and offers the seat to the next student.

    Returns:
        Dict with job execution summary including:
        - executed_at: When the job ran
        - offers: Per-offer results
        - total_expired: Offers actually expired
        - total_errors: Number of processing errors
    """
    coordinator = coordinator or get_coordinator()
    session_factory = session_factory or async_session_maker
    executed_at = datetime.now(UTC)

    results: dict[str, Any] = {
        "executed_at": executed_at.isoformat(),
        "offers": [],
        "total_expired": 0,
        "total_errors": 0,
    }

    async with session_factory() as db:
        candidates = [
            (entry.class_id, entry.student_id)
            for entry in await repository.get_expired_offers(db, executed_at)
        ]

    logger.info(f"Found {len(candidates)} lapsed waitlist offers")

    for class_id, student_id in candidates:
        try:
            result = await coordinator.expire_offer(student_id, class_id)
        except Exception as e:
            logger.error(
                f"Error expiring offer for student {student_id} in class {class_id}: {e}",
                exc_info=True,
            )
            results["offers"].append(
                {"class_id": class_id, "student_id": student_id, "status": "error", "error": str(e)}
            )
            results["total_errors"] += 1
            continue

        if not result.success:
            results["offers"].append(
                {
                    "class_id": class_id,
                    "student_id": student_id,
                    "status": "error",
                    "error": result.error_code,
                }
            )
            results["total_errors"] += 1
        elif result.status is not None:
            results["offers"].append(
                {"class_id": class_id, "student_id": student_id, "status": "expired"}
            )
            results["total_expired"] += 1
        else:
            # Resolved by the student between the read and the lock
            results["offers"].append(
                {"class_id": class_id, "student_id": student_id, "status": "skipped"}
            )

    logger.info(
        f"Offer expiry job completed. "
        f"Expired: {results['total_expired']}, Errors: {results['total_errors']}"
    )
    return results


async def send_waitlist_offer_reminders(
    coordinator: EnrollmentCoordinator | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> dict[str, Any]:
    """
    Remind students whose offer expires within OFFER_REMINDER_HOURS.

    Each offer is reminded at most once (``reminder_sent_at`` is recorded).
    """
    coordinator = coordinator or get_coordinator()
    session_factory = session_factory or async_session_maker
    executed_at = datetime.now(UTC)

    results: dict[str, Any] = {
        "executed_at": executed_at.isoformat(),
        "total_reminded": 0,
        "total_errors": 0,
    }

    if settings.offer_reminder_hours <= 0:
        logger.debug("Offer reminders disabled (OFFER_REMINDER_HOURS=0)")
        return results

    threshold = executed_at + timedelta(hours=settings.offer_reminder_hours)
    async with session_factory() as db:
        candidates = [
            (entry.class_id, entry.student_id)
            for entry in await repository.get_offers_needing_reminder(db, threshold, executed_at)
        ]

    logger.info(f"Found {len(candidates)} waitlist offers needing a reminder")

    for class_id, student_id in candidates:
        try:
            result = await coordinator.send_offer_reminder(student_id, class_id)
            if result.success:
                results["total_reminded"] += 1
            else:
                results["total_errors"] += 1
        except Exception as e:
            logger.error(
                f"Error sending offer reminder to {student_id} for class {class_id}: {e}",
                exc_info=True,
            )
            results["total_errors"] += 1

    logger.info(
        f"Offer reminder job completed. "
        f"Reminded: {results['total_reminded']}, Errors: {results['total_errors']}"
    )
    return results


def register_waitlist_jobs() -> None:
    """
    Register the waitlist background jobs with the scheduler.

    Call during application startup, before the scheduler is started.
    """
    interval = settings.offer_sweep_interval_minutes

    register_job(
        job_id=JOB_ID_EXPIRE_OFFERS,
        func=expire_waitlist_offers,
        trigger=IntervalTrigger(minutes=interval),
    )
    register_job(
        job_id=JOB_ID_SEND_OFFER_REMINDERS,
        func=send_waitlist_offer_reminders,
        trigger=IntervalTrigger(minutes=interval),
    )
    logger.info(f"Registered waitlist jobs (interval: {interval} minutes)")
