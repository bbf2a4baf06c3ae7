"""
Tests for the class capacity store.

The seat counter is the source of truth for admission, so these run against
a real (SQLite) database rather than mocks.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from enrollment_hub.modules.classes.repository import CapacitySnapshot, ClassCapacityRepository


class TestCapacitySnapshot:
    def test_available_spots(self):
        snapshot = CapacitySnapshot(class_id="cls-1", capacity=5, enrolled_count=3)
        assert snapshot.available_spots == 2
        assert snapshot.is_full is False

    def test_full_class(self):
        snapshot = CapacitySnapshot(class_id="cls-1", capacity=3, enrolled_count=3)
        assert snapshot.available_spots == 0
        assert snapshot.is_full is True

    def test_zero_capacity_is_full(self):
        assert CapacitySnapshot(class_id="cls-1", capacity=0, enrolled_count=0).is_full


class TestSeatReservation:
    @pytest.mark.asyncio
    async def test_reserve_until_full(self, db_session):
        await ClassCapacityRepository.create(db_session, class_id="cls-1", capacity=2)

        results = [
            await ClassCapacityRepository.try_reserve_seat(db_session, "cls-1") for _ in range(3)
        ]

        assert results == [True, True, False]
        snapshot = await ClassCapacityRepository.get_snapshot(db_session, "cls-1")
        assert snapshot.enrolled_count == 2

    @pytest.mark.asyncio
    async def test_unknown_class_has_no_seat(self, db_session):
        assert await ClassCapacityRepository.try_reserve_seat(db_session, "cls-none") is False

    @pytest.mark.asyncio
    async def test_archived_class_has_no_seat(self, db_session):
        record = await ClassCapacityRepository.create(db_session, class_id="cls-1", capacity=5)
        record.is_archived = True
        await db_session.flush()

        assert await ClassCapacityRepository.try_reserve_seat(db_session, "cls-1") is False

    @pytest.mark.asyncio
    async def test_release_floors_at_zero(self, db_session):
        await ClassCapacityRepository.create(db_session, class_id="cls-1", capacity=2)
        await ClassCapacityRepository.try_reserve_seat(db_session, "cls-1")

        assert await ClassCapacityRepository.release_seat(db_session, "cls-1") == 0
        assert await ClassCapacityRepository.release_seat(db_session, "cls-1") == 0

    @pytest.mark.asyncio
    async def test_release_unknown_class(self, db_session):
        assert await ClassCapacityRepository.release_seat(db_session, "cls-none") == 0


class TestCapacityChanges:
    @pytest.mark.asyncio
    async def test_set_capacity_returns_previous(self, db_session):
        await ClassCapacityRepository.create(db_session, class_id="cls-1", capacity=2)

        previous = await ClassCapacityRepository.set_capacity(db_session, "cls-1", 7)

        assert previous == 2
        snapshot = await ClassCapacityRepository.get_snapshot(db_session, "cls-1")
        assert snapshot.capacity == 7

    @pytest.mark.asyncio
    async def test_set_capacity_unknown_class(self, db_session):
        assert await ClassCapacityRepository.set_capacity(db_session, "cls-none", 3) is None

    @pytest.mark.asyncio
    async def test_database_rejects_capacity_below_enrolled(self, db_session):
        await ClassCapacityRepository.create(db_session, class_id="cls-1", capacity=2)
        await ClassCapacityRepository.try_reserve_seat(db_session, "cls-1")
        await ClassCapacityRepository.try_reserve_seat(db_session, "cls-1")

        with pytest.raises(IntegrityError):
            await ClassCapacityRepository.set_capacity(db_session, "cls-1", 1)

    @pytest.mark.asyncio
    async def test_get_by_class_id_sees_counter_updates(self, db_session):
        record = await ClassCapacityRepository.create(db_session, class_id="cls-1", capacity=2)
        await ClassCapacityRepository.try_reserve_seat(db_session, "cls-1")

        reloaded = await ClassCapacityRepository.get_by_class_id(db_session, "cls-1")

        assert reloaded is record
        assert reloaded.enrolled_count == 1
