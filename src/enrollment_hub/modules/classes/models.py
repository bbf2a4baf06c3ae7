"""
Class Capacity Models

Seat capacity and live enrolled count for each class (course section).
This table is the single source of truth for admission decisions.
"""

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from enrollment_hub.core.database import Base


class ClassCapacity(Base):
    """
    Capacity counters for one class.

    ``enrolled_count`` never exceeds ``capacity``. Both counters are only
    mutated while the class lock is held by the enrollment coordinator.
    """

    __tablename__ = "class_capacities"

    class_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    teacher_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    enrolled_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("capacity >= 0", name="ck_class_capacities_capacity_non_negative"),
        CheckConstraint(
            "enrolled_count >= 0", name="ck_class_capacities_enrolled_count_non_negative"
        ),
        CheckConstraint(
            "enrolled_count <= capacity", name="ck_class_capacities_enrolled_within_capacity"
        ),
    )

    @property
    def available_spots(self) -> int:
        return max(0, self.capacity - self.enrolled_count)

    def __repr__(self) -> str:
        return (
            f"<ClassCapacity {self.class_id} "
            f"enrolled={self.enrolled_count}/{self.capacity}>"
        )
