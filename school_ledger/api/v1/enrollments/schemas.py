"""Enrollment schemas."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from school_ledger.core.enums import EnrollmentStatus, TerminationReason
from school_ledger.core.types import UtcDateTime


class EnrollmentCreate(BaseModel):
    student_id: UUID
    academic_year_id: UUID
    class_id: UUID
    section_id: UUID
    roll_number: Optional[str] = Field(None, max_length=20)


class EnrollmentTransfer(BaseModel):
    """Same-year section/class move. Passing a different academic year hands over to promotion."""

    target_section_id: UUID
    target_academic_year_id: Optional[UUID] = None


class EnrollmentTerminate(BaseModel):
    reason: TerminationReason


class EnrollmentResponse(BaseModel):
    id: UUID
    student_id: UUID
    academic_year_id: UUID
    class_id: UUID
    section_id: UUID
    roll_number: Optional[str] = None
    status: EnrollmentStatus
    created_at: UtcDateTime
    transferred_at: Optional[UtcDateTime] = None
    deleted_at: Optional[UtcDateTime] = None

    class Config:
        from_attributes = True
