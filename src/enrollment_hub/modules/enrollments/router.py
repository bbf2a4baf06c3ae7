"""
Enrollments Router

HTTP endpoints for students' enrollment operations. Every state change goes
through the enrollment coordinator; failed operations are returned as
HTTP errors with ``{"error", "message"}`` details.

Endpoints:
- POST /enrollments - Request enrollment (enrolls or waitlists)
- POST /enrollments/drop - Drop an enrollment or leave the waitlist
- POST /enrollments/waitlist-response - Accept or decline a waitlist offer
- GET /enrollments/{class_id}/{student_id} - Latest enrollment record

Security:
- Per-student rate limiting on all mutating endpoints
- Identifiers validated before any lock is taken
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from enrollment_hub.core.database import get_db
from enrollment_hub.core.rate_limit import enforce_student_rate_limit
from enrollment_hub.modules.enrollments import repository
from enrollment_hub.modules.enrollments.coordinator import (
    EnrollmentCoordinator,
    get_coordinator,
)
from enrollment_hub.modules.enrollments.helpers import is_valid_identifier, status_code_for
from enrollment_hub.modules.enrollments.schemas import (
    DropEnrollmentRequest,
    EnrollmentRequestCreate,
    EnrollmentResponse,
    OperationResult,
    WaitlistOfferResponseRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def raise_for_failure(result: OperationResult) -> OperationResult:
    """Return a successful result unchanged, or raise it as an HTTPException."""
    if result.success:
        return result

    raise HTTPException(
        status_code=status_code_for(result.error_code),
        detail={
            "error": result.error_code,
            "message": result.message,
        },
    )


_ERROR_EXAMPLES = {
    400: {
        "description": "Malformed identifier",
        "content": {
            "application/json": {
                "example": {
                    "detail": {
                        "error": "INVALID_IDENTIFIER",
                        "message": "student_id must be 1-64 characters of letters, digits, '.', '_' or '-'",
                    }
                }
            }
        },
    },
    404: {"description": "Class not found"},
    429: {"description": "Too many requests for this student"},
    503: {"description": "Storage failure, nothing was applied"},
}


@router.post(
    "",
    response_model=OperationResult,
    summary="Request Enrollment",
    description="""
Request a seat in a class.

- If a seat is free and nobody is waiting, the student is **enrolled**
  immediately.
- Otherwise the student joins the end of the **waitlist**; the response
  includes their position.

A student may hold only one active (enrolled or waitlisted) enrollment per
class; a second request is rejected with `DUPLICATE_ENROLLMENT`.
""",
    responses={
        **_ERROR_EXAMPLES,
        409: {
            "description": "Duplicate request or archived class",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "DUPLICATE_ENROLLMENT",
                            "message": "Student already has an active enrollment (enrolled) for this class",
                        }
                    }
                }
            },
        },
    },
)
async def request_enrollment(
    data: EnrollmentRequestCreate,
    coordinator: EnrollmentCoordinator = Depends(get_coordinator),
) -> OperationResult:
    await enforce_student_rate_limit(data.student_id)
    result = await coordinator.request_enrollment(
        data.student_id, data.class_id, data.justification
    )
    return raise_for_failure(result)


@router.post(
    "/drop",
    response_model=OperationResult,
    summary="Drop Enrollment",
    description="""
Drop a student's enrollment or remove them from the waitlist.

Dropping an enrolled student frees their seat and offers it to the next
student on the waitlist. Dropping a waitlisted student moves everyone behind
them up by one.

Idempotent: dropping when nothing is active succeeds without changes.
""",
    responses=_ERROR_EXAMPLES,
)
async def drop_enrollment(
    data: DropEnrollmentRequest,
    coordinator: EnrollmentCoordinator = Depends(get_coordinator),
) -> OperationResult:
    await enforce_student_rate_limit(data.student_id)
    result = await coordinator.drop_enrollment(data.student_id, data.class_id)
    return raise_for_failure(result)


@router.post(
    "/waitlist-response",
    response_model=OperationResult,
    summary="Respond to Waitlist Offer",
    description="""
Accept or decline an open waitlist offer.

- **accept** enrolls the student and removes them from the waitlist.
- **decline** removes them from the waitlist and offers the seat to the next
  student.

Responding after the offer window closed is treated as expiry
(`OFFER_EXPIRED`, HTTP 410).
""",
    responses={
        **_ERROR_EXAMPLES,
        409: {"description": "No open offer, or the seat is no longer available"},
        410: {"description": "The offer expired"},
    },
)
async def respond_to_waitlist_offer(
    data: WaitlistOfferResponseRequest,
    coordinator: EnrollmentCoordinator = Depends(get_coordinator),
) -> OperationResult:
    await enforce_student_rate_limit(data.student_id)
    result = await coordinator.respond_to_waitlist_offer(
        data.student_id, data.class_id, data.response
    )
    return raise_for_failure(result)


@router.get(
    "/{class_id}/{student_id}",
    response_model=EnrollmentResponse,
    summary="Get Enrollment",
    description="Get the most recent enrollment record of a student in a class.",
    responses={404: {"description": "No enrollment found"}},
)
async def get_enrollment(
    class_id: str,
    student_id: str,
    db: AsyncSession = Depends(get_db),
) -> EnrollmentResponse:
    if not is_valid_identifier(class_id) or not is_valid_identifier(student_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "INVALID_IDENTIFIER", "message": "Malformed class or student id"},
        )

    enrollment = await repository.get_latest_enrollment(db, student_id, class_id)
    if enrollment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "ENROLLMENT_NOT_FOUND",
                "message": f"No enrollment for student {student_id} in class {class_id}",
            },
        )
    return EnrollmentResponse.model_validate(enrollment)
