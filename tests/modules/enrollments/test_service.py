"""
Unit tests for enrollments service layer.

These tests cover:
- Identifier and capacity validation
- Enrollment requests (seat reserved, waitlisted, duplicate, archived)
- Drops (enrolled, waitlisted, idempotent)
- Capacity changes
- Class summary events

Repositories and the waitlist engine are mocked; end-to-end behaviour is
covered by the coordinator tests.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from enrollment_hub.modules.classes.repository import CapacitySnapshot
from enrollment_hub.modules.enrollments.events import EventCollector, RealtimeEventType
from enrollment_hub.modules.enrollments.exceptions import (
    ClassArchivedError,
    ClassNotFoundError,
    InvalidCapacityError,
    InvalidIdentifierError,
)
from enrollment_hub.modules.enrollments.models import AuditAction, EnrollmentStatus, OfferStatus
from enrollment_hub.modules.enrollments.service import (
    adjust_capacity,
    append_class_summary,
    drop_enrollment,
    get_realtime_stats,
    get_waitlist_position,
    request_enrollment,
    validate_capacity,
    validate_identifiers,
)

SERVICE = "enrollment_hub.modules.enrollments.service"
NOW = datetime(2025, 9, 1, 9, 0, tzinfo=UTC)


def make_class(enrolled_count: int = 0, capacity: int = 2, archived: bool = False):
    klass = MagicMock()
    klass.class_id = "cls-1"
    klass.teacher_id = "t-1"
    klass.capacity = capacity
    klass.enrolled_count = enrolled_count
    klass.is_archived = archived
    return klass


@pytest.fixture
def events():
    return EventCollector("cls-1")


@pytest.fixture
def mocks():
    """Patch the repositories and waitlist engine used by the service."""
    with (
        patch(f"{SERVICE}.repository") as mock_repo,
        patch(f"{SERVICE}.ClassCapacityRepository") as mock_capacity,
        patch(f"{SERVICE}.waitlist") as mock_waitlist,
    ):
        mock_repo.get_active_enrollment = AsyncMock(return_value=None)
        mock_repo.get_latest_enrollment = AsyncMock(return_value=None)
        mock_repo.create_enrollment = AsyncMock(return_value=MagicMock())
        mock_repo.update_status = AsyncMock()
        mock_repo.add_audit_log = AsyncMock()
        mock_repo.count_waitlist = AsyncMock(return_value=0)

        mock_capacity.get_by_class_id = AsyncMock(return_value=make_class())
        mock_capacity.try_reserve_seat = AsyncMock(return_value=True)
        mock_capacity.release_seat = AsyncMock(return_value=0)
        mock_capacity.set_capacity = AsyncMock(return_value=2)

        mock_waitlist.join = AsyncMock(return_value=MagicMock(position=1))
        mock_waitlist.promote_next = AsyncMock(return_value=[])
        mock_waitlist.leave = AsyncMock(return_value=True)

        yield MagicMock(repo=mock_repo, capacity=mock_capacity, waitlist=mock_waitlist)


class TestValidation:
    def test_valid_identifiers(self):
        validate_identifiers(class_id="cls-1", student_id="stu-1")
        validate_identifiers(class_id="cls-1")

    def test_malformed_class_id(self):
        with pytest.raises(InvalidIdentifierError) as exc_info:
            validate_identifiers(class_id="", student_id="stu-1")
        assert "class_id" in exc_info.value.message

    def test_malformed_student_id(self):
        with pytest.raises(InvalidIdentifierError) as exc_info:
            validate_identifiers(class_id="cls-1", student_id="stu 1")
        assert "student_id" in exc_info.value.message

    @pytest.mark.parametrize("capacity", [-1, 2.5, True, "3"])
    def test_invalid_capacity(self, capacity):
        with pytest.raises(InvalidCapacityError):
            validate_capacity(capacity)

    def test_zero_capacity_is_allowed(self):
        validate_capacity(0)


class TestRequestEnrollment:
    @pytest.mark.asyncio
    async def test_seat_available_enrolls(self, mock_db, events, mocks):
        result = await request_enrollment(mock_db, events, "stu-1", "cls-1", now=NOW)

        assert result.success is True
        assert result.status == EnrollmentStatus.ENROLLED
        mocks.repo.update_status.assert_awaited_once()
        assert mocks.repo.update_status.call_args.args[2] == EnrollmentStatus.ENROLLED
        mocks.waitlist.join.assert_not_called()

        [confirmed] = events.of_type(RealtimeEventType.ENROLLMENT_CONFIRMED)
        assert confirmed.student_id == "stu-1"
        assert "teacher:t-1" in confirmed.topics

    @pytest.mark.asyncio
    async def test_full_class_waitlists(self, mock_db, events, mocks):
        mocks.capacity.try_reserve_seat = AsyncMock(return_value=False)
        mocks.waitlist.join = AsyncMock(return_value=MagicMock(position=4))

        result = await request_enrollment(mock_db, events, "stu-1", "cls-1", now=NOW)

        assert result.status == EnrollmentStatus.WAITLISTED
        assert result.position == 4
        assert "4" in result.message
        assert mocks.repo.update_status.call_args.args[2] == EnrollmentStatus.WAITLISTED
        [joined] = events.of_type(RealtimeEventType.WAITLIST_JOINED)
        assert joined.data == {"position": 4}
        mocks.waitlist.promote_next.assert_not_called()

    @pytest.mark.asyncio
    async def test_existing_queue_takes_precedence(self, mock_db, events, mocks):
        """A free seat is not handed to a newcomer while students are waiting."""
        mocks.repo.count_waitlist = AsyncMock(return_value=2)
        mocks.waitlist.join = AsyncMock(return_value=MagicMock(position=3))

        result = await request_enrollment(mock_db, events, "stu-1", "cls-1", now=NOW)

        assert result.status == EnrollmentStatus.WAITLISTED
        mocks.capacity.try_reserve_seat.assert_not_called()
        mocks.waitlist.promote_next.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_duplicate_request_denied(self, mock_db, events, mocks):
        existing = MagicMock(status=EnrollmentStatus.WAITLISTED)
        mocks.repo.get_active_enrollment = AsyncMock(return_value=existing)

        result = await request_enrollment(mock_db, events, "stu-1", "cls-1", now=NOW)

        assert result.success is False
        assert result.error_code == "DUPLICATE_ENROLLMENT"
        assert result.status == EnrollmentStatus.DENIED
        mocks.repo.create_enrollment.assert_not_called()
        assert mocks.repo.add_audit_log.call_args.args[2] == AuditAction.DENIED
        assert len(events) == 0

    @pytest.mark.asyncio
    async def test_unknown_class(self, mock_db, events, mocks):
        mocks.capacity.get_by_class_id = AsyncMock(return_value=None)

        with pytest.raises(ClassNotFoundError):
            await request_enrollment(mock_db, events, "stu-1", "cls-1", now=NOW)

    @pytest.mark.asyncio
    async def test_archived_class(self, mock_db, events, mocks):
        mocks.capacity.get_by_class_id = AsyncMock(return_value=make_class(archived=True))

        with pytest.raises(ClassArchivedError):
            await request_enrollment(mock_db, events, "stu-1", "cls-1", now=NOW)
        mocks.repo.create_enrollment.assert_not_called()


class TestDropEnrollment:
    @pytest.mark.asyncio
    async def test_drop_enrolled_releases_seat_and_promotes(self, mock_db, events, mocks):
        enrollment = MagicMock(status=EnrollmentStatus.ENROLLED)
        mocks.repo.get_active_enrollment = AsyncMock(return_value=enrollment)

        result = await drop_enrollment(mock_db, events, "stu-1", "cls-1", now=NOW)

        assert result.status == EnrollmentStatus.DROPPED
        mocks.capacity.release_seat.assert_awaited_once_with(mock_db, "cls-1")
        mocks.waitlist.promote_next.assert_awaited_once_with(mock_db, events, "cls-1", NOW)
        mocks.waitlist.leave.assert_not_called()
        [dropped] = events.of_type(RealtimeEventType.ENROLLMENT_DROPPED)
        assert dropped.data["previous_status"] == "enrolled"

    @pytest.mark.asyncio
    async def test_drop_waitlisted_leaves_queue(self, mock_db, events, mocks):
        enrollment = MagicMock(status=EnrollmentStatus.WAITLISTED)
        mocks.repo.get_active_enrollment = AsyncMock(return_value=enrollment)

        await drop_enrollment(mock_db, events, "stu-1", "cls-1", now=NOW)

        mocks.capacity.release_seat.assert_not_called()
        mocks.waitlist.leave.assert_awaited_once_with(mock_db, events, "cls-1", "stu-1", NOW)

    @pytest.mark.asyncio
    async def test_nothing_active_is_a_no_op(self, mock_db, events, mocks):
        mocks.repo.get_latest_enrollment = AsyncMock(
            return_value=MagicMock(status=EnrollmentStatus.DROPPED)
        )

        result = await drop_enrollment(mock_db, events, "stu-1", "cls-1", now=NOW)

        assert result.success is True
        assert result.status == EnrollmentStatus.DROPPED
        mocks.repo.update_status.assert_not_called()
        mocks.repo.add_audit_log.assert_not_called()
        assert len(events) == 0


class TestAdjustCapacity:
    @pytest.mark.asyncio
    async def test_increase_promotes(self, mock_db, events, mocks):
        mocks.capacity.get_by_class_id = AsyncMock(return_value=make_class(enrolled_count=2))
        mocks.capacity.set_capacity = AsyncMock(return_value=2)

        result = await adjust_capacity(mock_db, events, "cls-1", 4, now=NOW)

        assert result.success is True
        mocks.waitlist.promote_next.assert_awaited_once()
        [update] = events.of_type(RealtimeEventType.CAPACITY_UPDATE)
        assert update.data["capacity_change"] == 2

    @pytest.mark.asyncio
    async def test_decrease_does_not_promote(self, mock_db, events, mocks):
        mocks.capacity.get_by_class_id = AsyncMock(return_value=make_class(enrolled_count=1))
        mocks.capacity.set_capacity = AsyncMock(return_value=5)

        await adjust_capacity(mock_db, events, "cls-1", 3, now=NOW)

        mocks.waitlist.promote_next.assert_not_called()
        assert events.of_type(RealtimeEventType.CAPACITY_UPDATE)[0].data["capacity_change"] == -2

    @pytest.mark.asyncio
    async def test_below_enrolled_rejected(self, mock_db, events, mocks):
        mocks.capacity.get_by_class_id = AsyncMock(return_value=make_class(enrolled_count=3))

        with pytest.raises(InvalidCapacityError):
            await adjust_capacity(mock_db, events, "cls-1", 2, now=NOW)
        mocks.capacity.set_capacity.assert_not_called()

    @pytest.mark.asyncio
    async def test_unchanged_capacity_is_silent(self, mock_db, events, mocks):
        mocks.capacity.set_capacity = AsyncMock(return_value=2)

        result = await adjust_capacity(mock_db, events, "cls-1", 2, now=NOW)

        assert result.success is True
        assert len(events) == 0
        mocks.repo.add_audit_log.assert_not_called()


class TestAppendClassSummary:
    @pytest.mark.asyncio
    async def test_summary_events(self, mock_db, events, mocks):
        mocks.capacity.get_snapshot = AsyncMock(
            return_value=CapacitySnapshot(class_id="cls-1", capacity=3, enrolled_count=3)
        )
        mocks.waitlist.get_waitlist_stats = AsyncMock(
            return_value=([MagicMock(), MagicMock()], 1.5)
        )

        await append_class_summary(mock_db, events, "cls-1", NOW)

        [count] = events.of_type(RealtimeEventType.ENROLLMENT_COUNT_UPDATE)
        assert count.data == {
            "current_enrollment": 3,
            "capacity": 3,
            "available_spots": 0,
            "waitlist_count": 2,
        }
        [queue] = events.of_type(RealtimeEventType.WAITLIST_UPDATE)
        assert queue.data == {"total_waitlisted": 2, "average_wait_days": 1.5}


class TestWaitlistPosition:
    @pytest.mark.asyncio
    async def test_estimate_follows_average_wait(self, mock_db, mocks):
        mocks.repo.get_waitlist_entry = AsyncMock(
            return_value=MagicMock(position=2, offer_status=OfferStatus.NONE, offer_expires_at=None)
        )
        mocks.waitlist.get_waitlist_stats = AsyncMock(return_value=([MagicMock()] * 3, 1.5))

        position = await get_waitlist_position(mock_db, "cls-1", "stu-b", NOW)

        assert position.total_waitlisted == 3
        assert position.students_ahead == 1
        assert position.estimated_wait_days == 3.0
        assert position.estimated_wait == "3 days"

    @pytest.mark.asyncio
    async def test_open_offer_has_no_wait(self, mock_db, mocks):
        mocks.repo.get_waitlist_entry = AsyncMock(
            return_value=MagicMock(
                position=1, offer_status=OfferStatus.OFFERED, offer_expires_at=NOW
            )
        )
        mocks.waitlist.get_waitlist_stats = AsyncMock(return_value=([MagicMock()], 4.0))

        position = await get_waitlist_position(mock_db, "cls-1", "stu-a", NOW)

        assert position.estimated_wait_days == 0.0
        assert position.estimated_wait == "Less than 1 day"

    @pytest.mark.asyncio
    async def test_not_queued(self, mock_db, mocks):
        mocks.repo.get_waitlist_entry = AsyncMock(return_value=None)

        assert await get_waitlist_position(mock_db, "cls-1", "stu-z", NOW) is None


class TestRealtimeStats:
    @pytest.mark.asyncio
    async def test_counts_include_every_status(self, mock_db, mocks):
        mocks.capacity.get_snapshot = AsyncMock(
            return_value=CapacitySnapshot(class_id="cls-1", capacity=2, enrolled_count=2)
        )
        mocks.waitlist.get_waitlist_stats = AsyncMock(return_value=([MagicMock()], 0.5))
        mocks.repo.count_recent_actions = AsyncMock(return_value={"dropped": 1})
        mocks.repo.count_enrollments_by_status = AsyncMock(
            return_value={status: 0 for status in EnrollmentStatus}
            | {EnrollmentStatus.ENROLLED: 2, EnrollmentStatus.DROPPED: 1}
        )

        counts, queue, activity = await get_realtime_stats(mock_db, "cls-1", NOW)

        assert counts.by_status == {
            "pending": 0,
            "enrolled": 2,
            "waitlisted": 0,
            "dropped": 1,
            "denied": 0,
        }
        assert counts.available == 0
        assert queue.total == 1
        assert activity.drops == 1
