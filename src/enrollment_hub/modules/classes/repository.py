"""
Class Capacity Repository (Capacity Store)

Database operations on class seat counters.

Admission decisions must always go through ``try_reserve_seat``, which
performs the capacity check and the increment in a single conditional UPDATE.
``get_snapshot`` is a plain read intended for display and may be stale by the
duration of one in-flight operation.

None of these methods commit: the enrollment coordinator owns the transaction.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from enrollment_hub.modules.classes.models import ClassCapacity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapacitySnapshot:
    """Point-in-time view of a class's seat counters."""

    class_id: str
    capacity: int
    enrolled_count: int

    @property
    def available_spots(self) -> int:
        return max(0, self.capacity - self.enrolled_count)

    @property
    def is_full(self) -> bool:
        return self.enrolled_count >= self.capacity


class ClassCapacityRepository:
    """Repository for class capacity counters."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        class_id: str,
        capacity: int,
        teacher_id: str | None = None,
        title: str | None = None,
    ) -> ClassCapacity:
        """
        Register a new class with an empty roster.

        Args:
            db: Database session
            class_id: External class identifier
            capacity: Number of seats
            teacher_id: Teacher receiving roster-level updates (optional)
            title: Display title (optional)

        Returns:
            The pending ClassCapacity record (flushed, not committed)
        """
        record = ClassCapacity(
            class_id=class_id,
            capacity=capacity,
            enrolled_count=0,
            teacher_id=teacher_id,
            title=title,
        )
        db.add(record)
        await db.flush()
        return record

    @staticmethod
    async def get_by_class_id(db: AsyncSession, class_id: str) -> ClassCapacity | None:
        """Load a class record, refreshing any copy already in the session."""
        result = await db.execute(
            select(ClassCapacity)
            .where(ClassCapacity.class_id == class_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def try_reserve_seat(db: AsyncSession, class_id: str) -> bool:
        """
        Atomically reserve one seat if the class is not full.

        The check and the increment happen in one statement, so two callers
        can never both take the last seat even without the class lock.

        Returns:
            True if a seat was reserved, False if the class is full or unknown
        """
        result = await db.execute(
            update(ClassCapacity)
            .where(
                ClassCapacity.class_id == class_id,
                ClassCapacity.is_archived.is_(False),
                ClassCapacity.enrolled_count < ClassCapacity.capacity,
            )
            .values(enrolled_count=ClassCapacity.enrolled_count + 1)
            .returning(ClassCapacity.enrolled_count)
            .execution_options(synchronize_session=False)
        )
        new_count = result.scalar_one_or_none()

        if new_count is None:
            logger.debug(f"No seat available in class {class_id}")
            return False

        logger.debug(f"Reserved seat in class {class_id}, enrolled_count={new_count}")
        return True

    @staticmethod
    async def release_seat(db: AsyncSession, class_id: str) -> int:
        """
        Release one seat, flooring the enrolled count at zero.

        Returns:
            The new enrolled count (0 if the class is unknown)
        """
        result = await db.execute(
            update(ClassCapacity)
            .where(ClassCapacity.class_id == class_id)
            .values(
                enrolled_count=case(
                    (ClassCapacity.enrolled_count > 0, ClassCapacity.enrolled_count - 1),
                    else_=0,
                )
            )
            .returning(ClassCapacity.enrolled_count)
            .execution_options(synchronize_session=False)
        )
        new_count = result.scalar_one_or_none()
        return new_count if new_count is not None else 0

    @staticmethod
    async def get_snapshot(db: AsyncSession, class_id: str) -> CapacitySnapshot | None:
        """Read the current counters for display purposes."""
        result = await db.execute(
            select(ClassCapacity.capacity, ClassCapacity.enrolled_count).where(
                ClassCapacity.class_id == class_id
            )
        )
        row = result.one_or_none()
        if row is None:
            return None
        return CapacitySnapshot(
            class_id=class_id,
            capacity=row.capacity,
            enrolled_count=row.enrolled_count,
        )

    @staticmethod
    async def set_capacity(db: AsyncSession, class_id: str, capacity: int) -> int | None:
        """
        Overwrite the capacity of a class.

        The caller validates that ``capacity`` is not below the enrolled count;
        the table check constraint backs this up.

        Returns:
            The previous capacity, or None if the class is unknown
        """
        result = await db.execute(
            select(ClassCapacity.capacity).where(ClassCapacity.class_id == class_id)
        )
        previous = result.scalar_one_or_none()
        if previous is None:
            return None

        await db.execute(
            update(ClassCapacity)
            .where(ClassCapacity.class_id == class_id)
            .values(capacity=capacity)
            .execution_options(synchronize_session=False)
        )
        return previous
