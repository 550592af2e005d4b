"""Reference data schemas (read-only)."""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from school_ledger.core.enums import FeeFrequency


class AcademicYearResponse(BaseModel):
    id: UUID
    school_id: UUID
    name: str
    start_date: date
    end_date: date
    is_current: bool
    is_active: bool

    class Config:
        from_attributes = True


class SchoolClassResponse(BaseModel):
    id: UUID
    school_id: UUID
    branch_id: UUID
    name: str
    description: Optional[str] = None
    sequence: Optional[int] = None

    class Config:
        from_attributes = True


class SectionResponse(BaseModel):
    id: UUID
    class_id: UUID
    name: str
    max_capacity: Optional[int] = None

    class Config:
        from_attributes = True


class FeeStructureResponse(BaseModel):
    id: UUID
    school_id: UUID
    academic_year_id: UUID
    class_id: UUID
    fee_head_id: UUID
    amount: Decimal
    frequency: FeeFrequency

    class Config:
        from_attributes = True
