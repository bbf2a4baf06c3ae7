"""
Classes Router

API endpoints for class capacity records and class dashboards.

Endpoints:
- POST /classes - Register a class
- GET /classes/{class_id} - Capacity snapshot
- PUT /classes/{class_id}/capacity - Change capacity (admin)
- GET /classes/{class_id}/waitlist - Ordered waitlist with statistics
- GET /classes/{class_id}/waitlist/{student_id} - One student's position
- GET /classes/{class_id}/realtime-stats - Live dashboard statistics
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from enrollment_hub.core.broadcast import BroadcastHub, get_hub
from enrollment_hub.core.database import get_db
from enrollment_hub.modules.classes import service
from enrollment_hub.modules.classes.schemas import CapacityUpdate, ClassCreate, ClassResponse
from enrollment_hub.modules.enrollments import service as enrollment_service
from enrollment_hub.modules.enrollments.coordinator import (
    EnrollmentCoordinator,
    get_coordinator,
)
from enrollment_hub.modules.enrollments.events import class_topic, teacher_topic
from enrollment_hub.modules.enrollments.exceptions import EnrollmentServiceError
from enrollment_hub.modules.enrollments.helpers import is_valid_identifier
from enrollment_hub.modules.enrollments.router import raise_for_failure
from enrollment_hub.modules.enrollments.schemas import (
    OperationResult,
    RealtimeStatsResponse,
    WaitlistPositionResponse,
    WaitlistResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(e: EnrollmentServiceError) -> HTTPException:
    return HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    )


def _require_identifier(value: str, field: str) -> None:
    if not is_valid_identifier(value):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "INVALID_IDENTIFIER", "message": f"Malformed {field}"},
        )


@router.post(
    "",
    response_model=ClassResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register Class",
    description="Register a class with its seat capacity. The roster starts empty.",
    responses={409: {"description": "Class id already registered"}},
)
async def create_class(
    data: ClassCreate,
    db: AsyncSession = Depends(get_db),
) -> ClassResponse:
    try:
        record = await service.create_class(db, data)
    except EnrollmentServiceError as e:
        logger.warning(f"Class registration rejected: {e.message}")
        raise _http_error(e) from e
    return ClassResponse.model_validate(record)


@router.get(
    "/{class_id}",
    response_model=ClassResponse,
    summary="Get Class",
    responses={404: {"description": "Class not found"}},
)
async def get_class(
    class_id: str,
    db: AsyncSession = Depends(get_db),
) -> ClassResponse:
    """Capacity snapshot; may trail an in-flight operation."""
    _require_identifier(class_id, "class_id")
    try:
        record = await service.get_class(db, class_id)
    except EnrollmentServiceError as e:
        raise _http_error(e) from e
    return ClassResponse.model_validate(record)


@router.put(
    "/{class_id}/capacity",
    response_model=OperationResult,
    summary="Adjust Class Capacity",
    description="""
Change the number of seats in a class.

- Capacity cannot be set below the number of students currently enrolled.
- Raising capacity offers the new seats to waitlisted students, in order.
""",
    responses={
        400: {"description": "Capacity below current enrollment"},
        404: {"description": "Class not found"},
    },
)
async def adjust_capacity(
    class_id: str,
    data: CapacityUpdate,
    coordinator: EnrollmentCoordinator = Depends(get_coordinator),
) -> OperationResult:
    result = await coordinator.adjust_capacity(class_id, data.capacity)
    return raise_for_failure(result)


@router.get(
    "/{class_id}/waitlist",
    response_model=WaitlistResponse,
    summary="Get Class Waitlist",
    description="Ordered waitlist entries with total and average wait (days).",
    responses={404: {"description": "Class not found"}},
)
async def get_waitlist(
    class_id: str,
    db: AsyncSession = Depends(get_db),
) -> WaitlistResponse:
    _require_identifier(class_id, "class_id")
    try:
        return await enrollment_service.get_class_waitlist(db, class_id)
    except EnrollmentServiceError as e:
        raise _http_error(e) from e


@router.get(
    "/{class_id}/waitlist/{student_id}",
    response_model=WaitlistPositionResponse,
    summary="Get Waitlist Position",
    responses={404: {"description": "Student is not on the waitlist"}},
)
async def get_waitlist_position(
    class_id: str,
    student_id: str,
    db: AsyncSession = Depends(get_db),
) -> WaitlistPositionResponse:
    _require_identifier(class_id, "class_id")
    _require_identifier(student_id, "student_id")

    position = await enrollment_service.get_waitlist_position(db, class_id, student_id)
    if position is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "NOT_WAITLISTED",
                "message": f"Student {student_id} is not on the waitlist for class {class_id}",
            },
        )
    return position


@router.get(
    "/{class_id}/realtime-stats",
    response_model=RealtimeStatsResponse,
    summary="Get Realtime Class Statistics",
    description="Enrollment counts, waitlist totals, last-24h activity and live subscriber count.",
    responses={404: {"description": "Class not found"}},
)
async def get_realtime_stats(
    class_id: str,
    db: AsyncSession = Depends(get_db),
    hub: BroadcastHub = Depends(get_hub),
) -> RealtimeStatsResponse:
    _require_identifier(class_id, "class_id")
    try:
        record = await service.get_class(db, class_id)
        enrollment, waitlist, activity = await enrollment_service.get_realtime_stats(db, class_id)
    except EnrollmentServiceError as e:
        raise _http_error(e) from e

    subscribers = hub.subscriber_count(class_topic(class_id))
    if record.teacher_id:
        subscribers += hub.subscriber_count(teacher_topic(record.teacher_id))

    return RealtimeStatsResponse(
        class_id=class_id,
        enrollment=enrollment,
        waitlist=waitlist,
        activity=activity,
        subscribers=subscribers,
    )
