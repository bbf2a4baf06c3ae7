"""
Fixtures for enrollment tests.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select

from enrollment_hub.modules.classes.repository import ClassCapacityRepository
from enrollment_hub.modules.enrollments import repository
from enrollment_hub.modules.enrollments.coordinator import EnrollmentCoordinator
from enrollment_hub.modules.enrollments.events import class_topic, student_topic
from enrollment_hub.modules.enrollments.models import (
    ACTIVE_ENROLLMENT_STATUSES,
    Enrollment,
    EnrollmentStatus,
)


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def notifier():
    """Notification dispatcher stand-in recording dispatched events."""
    dispatcher = MagicMock()
    dispatcher.dispatch = MagicMock(return_value=None)
    dispatcher.drain = AsyncMock()
    return dispatcher


@pytest.fixture
def coordinator(session_factory, hub, notifier, clock):
    return EnrollmentCoordinator(
        session_factory=session_factory,
        hub=hub,
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture
def create_class(session_factory):
    """Register a class directly in the test database."""

    async def _create(class_id: str, capacity: int, teacher_id: str | None = None):
        async with session_factory() as db:
            record = await ClassCapacityRepository.create(
                db, class_id=class_id, capacity=capacity, teacher_id=teacher_id
            )
            await db.commit()
            return record

    return _create


@pytest.fixture
def watch(hub, subscriber_factory):
    """Subscribe a recording subscriber to a class or student topic."""

    async def _watch(*, class_id: str | None = None, student_id: str | None = None):
        subscriber = subscriber_factory()
        if class_id is not None:
            await hub.subscribe(class_topic(class_id), subscriber)
        if student_id is not None:
            await hub.subscribe(student_topic(student_id), subscriber)
        return subscriber

    return _watch


@pytest.fixture
def sample_enrollment():
    """An enrolled record (not persisted)."""
    return Enrollment(
        student_id="stu-1",
        class_id="cls-1",
        status=EnrollmentStatus.ENROLLED,
        justification=None,
    )


@pytest.fixture
def read_state(session_factory):
    """Read a class's counters, waitlist and enrollment statuses in a fresh session."""

    async def _read(class_id: str) -> dict:
        async with session_factory() as db:
            snapshot = await ClassCapacityRepository.get_snapshot(db, class_id)
            waitlist = await repository.get_waitlist(db, class_id)
            result = await db.execute(
                select(Enrollment)
                .where(Enrollment.class_id == class_id)
                .order_by(Enrollment.requested_at.asc())
            )
            enrollments = list(result.scalars().all())

        active: dict[str, EnrollmentStatus] = {}
        for enrollment in enrollments:
            if enrollment.status in ACTIVE_ENROLLMENT_STATUSES:
                active[enrollment.student_id] = enrollment.status

        return {
            "capacity": snapshot.capacity,
            "enrolled_count": snapshot.enrolled_count,
            "waitlist": [(entry.student_id, entry.position) for entry in waitlist],
            "offers": {entry.student_id: entry.offer_status for entry in waitlist},
            "active": active,
            "enrollments": enrollments,
        }

    return _read
