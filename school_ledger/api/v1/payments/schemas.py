"""Payment ledger schemas."""

from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from school_ledger.core.enums import AdjustmentType, GatewayStatus, PaymentStatus
from school_ledger.core.types import UtcDateTime


# --- Payments ---
class PaymentCreate(BaseModel):
    student_id: UUID
    amount: Decimal = Field(..., gt=0)
    mode: str = Field(..., max_length=50, description="UPI, CARD, CASH, BANK")
    reference_no: Optional[str] = Field(None, max_length=100)
    transaction_id: Optional[str] = Field(None, max_length=100, description="Gateway tracking id")


class PaymentResponse(BaseModel):
    id: UUID
    school_id: UUID
    student_id: UUID
    amount: Decimal
    mode: str
    reference_no: Optional[str] = None
    transaction_id: Optional[str] = None
    status: PaymentStatus
    paid_at: UtcDateTime
    confirmed_at: Optional[UtcDateTime] = None
    reversed_at: Optional[UtcDateTime] = None
    reversed_by: Optional[UUID] = None

    class Config:
        from_attributes = True


class GatewayCallback(BaseModel):
    transaction_id: str = Field(..., min_length=1, max_length=100)
    status: GatewayStatus


class PaymentConfirm(BaseModel):
    """Manual confirmation of a payment collected without a gateway (cash, cheque)."""

    status: GatewayStatus


# --- Allocations ---
class AllocationCreate(BaseModel):
    due_id: UUID
    amount: Decimal = Field(..., gt=0)


class AutoAllocateRequest(BaseModel):
    due_ids: Optional[List[UUID]] = Field(None, description="Restrict to these dues; default is every outstanding due")


class AllocationResponse(BaseModel):
    id: UUID
    payment_id: UUID
    due_id: UUID
    amount_allocated: Decimal
    created_at: UtcDateTime
    due_outstanding: Decimal
    due_is_paid: bool


class AllocationResult(BaseModel):
    payment_id: UUID
    allocations: List[AllocationResponse]
    unallocated: Decimal


# --- Adjustments ---
class AdjustmentCreate(BaseModel):
    adjustment_type: AdjustmentType
    amount: Decimal = Field(..., gt=0)
    due_id: Optional[UUID] = None
    payment_id: Optional[UUID] = None
    reason: Optional[str] = Field(None, max_length=500)


class AdjustmentResponse(BaseModel):
    id: UUID
    payment_id: Optional[UUID] = None
    due_id: Optional[UUID] = None
    adjustment_amount: Decimal
    adjustment_type: AdjustmentType
    reason: Optional[str] = None
    created_by: UUID
    created_at: UtcDateTime

    class Config:
        from_attributes = True


class PaymentReverse(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ReversalResponse(BaseModel):
    payment: PaymentResponse
    refunds: List[AdjustmentResponse]


class PaymentAllocationLine(BaseModel):
    id: UUID
    due_id: UUID
    amount_allocated: Decimal
    created_at: UtcDateTime


class PaymentSummary(BaseModel):
    payment: PaymentResponse
    allocated: Decimal
    refunded: Decimal
    unallocated: Decimal
    allocations: List[PaymentAllocationLine]
