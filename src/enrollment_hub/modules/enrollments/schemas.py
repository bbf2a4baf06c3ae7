"""
Enrollments Schemas

Pydantic schemas for request validation, operation results and realtime
commands.
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# Re-use enums from models (they work with Pydantic too!)
from enrollment_hub.modules.enrollments.models import (
    EnrollmentStatus,
    OfferResponse,
    OfferStatus,
)


class OperationResult(BaseModel):
    """
    Outcome of a coordinated enrollment operation.

    Coordinated operations never raise to the transport layer; failures are
    reported here with an ``error_code`` and ``message``.
    """

    success: bool
    class_id: str
    student_id: str | None = None
    status: EnrollmentStatus | None = None
    position: int | None = None
    offer_expires_at: datetime | None = None
    error_code: str | None = None
    message: str | None = None

    @classmethod
    def failure(
        cls,
        class_id: str,
        error_code: str,
        message: str,
        *,
        student_id: str | None = None,
        status: EnrollmentStatus | None = None,
    ) -> "OperationResult":
        return cls(
            success=False,
            class_id=class_id,
            student_id=student_id,
            status=status,
            error_code=error_code,
            message=message,
        )


class EnrollmentRequestCreate(BaseModel):
    """Request body for POST /enrollments."""

    student_id: str = Field(..., min_length=1, max_length=64)
    class_id: str = Field(..., min_length=1, max_length=64)
    justification: str | None = Field(None, max_length=1000)


class DropEnrollmentRequest(BaseModel):
    """Request body for POST /enrollments/drop."""

    student_id: str = Field(..., min_length=1, max_length=64)
    class_id: str = Field(..., min_length=1, max_length=64)


class WaitlistOfferResponseRequest(BaseModel):
    """Request body for POST /enrollments/waitlist-response."""

    student_id: str = Field(..., min_length=1, max_length=64)
    class_id: str = Field(..., min_length=1, max_length=64)
    response: OfferResponse


class EnrollmentResponse(BaseModel):
    """An enrollment record."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    student_id: str
    class_id: str
    status: EnrollmentStatus
    justification: str | None = None
    requested_at: datetime
    decided_at: datetime | None = None


class WaitlistEntryResponse(BaseModel):
    """One waitlist entry as shown to teachers and dashboards."""

    model_config = ConfigDict(from_attributes=True)

    student_id: str
    position: int
    joined_at: datetime
    offer_status: OfferStatus
    offer_expires_at: datetime | None = None


class WaitlistResponse(BaseModel):
    """Ordered waitlist for a class with summary statistics."""

    class_id: str
    total_waitlisted: int
    average_wait_days: float
    entries: list[WaitlistEntryResponse]


class WaitlistPositionResponse(BaseModel):
    """A single student's standing on a class waitlist."""

    class_id: str
    student_id: str
    position: int
    total_waitlisted: int
    students_ahead: int
    offer_status: OfferStatus
    offer_expires_at: datetime | None = None
    estimated_wait_days: float
    estimated_wait: str


class EnrollmentCounts(BaseModel):
    current: int
    capacity: int
    available: int
    # Enrollment records per status value, including terminal ones
    by_status: dict[str, int] = Field(default_factory=dict)


class WaitlistSummary(BaseModel):
    total: int
    average_wait_days: float


class RecentActivity(BaseModel):
    """Audit actions recorded over the last 24 hours."""

    enrollments: int = 0
    drops: int = 0
    waitlisted: int = 0
    offers: int = 0


class RealtimeStatsResponse(BaseModel):
    """Live statistics for a class dashboard."""

    class_id: str
    enrollment: EnrollmentCounts
    waitlist: WaitlistSummary
    activity: RecentActivity
    subscribers: int


class RealtimeCommand(BaseModel):
    """
    Inbound message on a realtime connection.

    ``subscribe``/``unsubscribe`` take a ``topic`` (class:<id>, student:<id>,
    teacher:<id>); the remaining actions mirror the HTTP operations.
    """

    action: Literal[
        "subscribe",
        "unsubscribe",
        "request-enrollment",
        "drop-enrollment",
        "waitlist-response",
    ]
    request_id: str | None = Field(None, max_length=100)
    topic: str | None = Field(None, max_length=80)
    student_id: str | None = Field(None, max_length=64)
    class_id: str | None = Field(None, max_length=64)
    justification: str | None = Field(None, max_length=1000)
    response: OfferResponse | None = None
