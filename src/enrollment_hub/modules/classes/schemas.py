"""
Classes Schemas

Pydantic schemas for class registration, capacity changes and the class
dashboard endpoints.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from enrollment_hub.modules.enrollments.helpers import IDENTIFIER_PATTERN


class ClassCreate(BaseModel):
    """Request body for POST /classes."""

    class_id: str = Field(..., pattern=IDENTIFIER_PATTERN.pattern)
    capacity: int = Field(..., ge=0, le=100_000)
    teacher_id: str | None = Field(None, pattern=IDENTIFIER_PATTERN.pattern)
    title: str | None = Field(None, max_length=200)


class CapacityUpdate(BaseModel):
    """Request body for PUT /classes/{class_id}/capacity."""

    capacity: int = Field(..., ge=0, le=100_000)


class ClassResponse(BaseModel):
    """Class capacity snapshot."""

    model_config = ConfigDict(from_attributes=True)

    class_id: str
    title: str | None = None
    teacher_id: str | None = None
    capacity: int
    enrolled_count: int
    available_spots: int
    is_archived: bool
    created_at: datetime
