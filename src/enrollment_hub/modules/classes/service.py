"""
Classes Service Layer

Registration and lookup of class capacity records. Capacity changes on an
existing class are enrollment operations and go through the enrollment
coordinator instead.
"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from enrollment_hub.modules.classes.models import ClassCapacity
from enrollment_hub.modules.classes.repository import ClassCapacityRepository
from enrollment_hub.modules.classes.schemas import ClassCreate
from enrollment_hub.modules.enrollments.exceptions import (
    ClassAlreadyExistsError,
    ClassNotFoundError,
)

logger = logging.getLogger(__name__)


async def create_class(db: AsyncSession, data: ClassCreate) -> ClassCapacity:
    """
    Register a class with an empty roster.

    Raises:
        ClassAlreadyExistsError: If the class id is taken
    """
    if await ClassCapacityRepository.get_by_class_id(db, data.class_id) is not None:
        raise ClassAlreadyExistsError(data.class_id)

    try:
        record = await ClassCapacityRepository.create(
            db,
            class_id=data.class_id,
            capacity=data.capacity,
            teacher_id=data.teacher_id,
            title=data.title,
        )
        await db.commit()
    except IntegrityError as e:
        # Lost a race with a concurrent registration of the same id
        await db.rollback()
        raise ClassAlreadyExistsError(data.class_id) from e

    await db.refresh(record)
    logger.info(f"Registered class {record.class_id} with capacity {record.capacity}")
    return record


async def get_class(db: AsyncSession, class_id: str) -> ClassCapacity:
    """
    Raises:
        ClassNotFoundError: If the class is unknown
    """
    record = await ClassCapacityRepository.get_by_class_id(db, class_id)
    if record is None:
        raise ClassNotFoundError(class_id)
    return record
