"""Promotion schemas."""

from datetime import date
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from school_ledger.api.v1.enrollments.schemas import EnrollmentResponse
from school_ledger.core.enums import PromotionDecision
from school_ledger.core.types import UtcDateTime


class PromotionRequest(BaseModel):
    enrollment_id: UUID
    to_academic_year_id: UUID
    to_class_id: Optional[UUID] = Field(None, description="Required for Promoted; Detained stays in the source class")
    decision: PromotionDecision
    section_id: Optional[UUID] = Field(None, description="Override the capacity-based section assignment")
    remarks: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def validate_target_class(self) -> "PromotionRequest":
        if self.decision == PromotionDecision.PROMOTED and self.to_class_id is None:
            raise ValueError("to_class_id is required when decision is Promoted")
        return self


class BatchPromotionRequest(BaseModel):
    items: List[PromotionRequest] = Field(..., min_length=1)


class ProgressionResponse(BaseModel):
    id: UUID
    enrollment_id: UUID
    from_academic_year_id: UUID
    to_academic_year_id: UUID
    from_class_id: UUID
    to_class_id: UUID
    promotion_status: PromotionDecision
    promotion_date: date
    remarks: Optional[str] = None
    promoted_by: UUID
    target_enrollment_id: Optional[UUID] = None
    created_at: UtcDateTime

    class Config:
        from_attributes = True


class PromotionResponse(BaseModel):
    progression: ProgressionResponse
    target_enrollment: Optional[EnrollmentResponse] = None


class PromotionFailure(BaseModel):
    enrollment_id: UUID
    code: str
    message: str


class BatchPromotionResult(BaseModel):
    """Per-student outcome. Failures are reported, never retried automatically."""

    promoted: List[PromotionResponse]
    failures: List[PromotionFailure]
