"""Fee due schemas."""

from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from school_ledger.core.types import UtcDateTime


class FeeDueResponse(BaseModel):
    id: UUID
    enrollment_id: UUID
    fee_head_id: UUID
    title: Optional[str] = None
    amount: Decimal
    due_date: date
    is_paid: bool
    created_at: UtcDateTime
    effective_amount: Decimal
    allocated: Decimal
    outstanding: Decimal


class GenerateDuesResponse(BaseModel):
    created: List[FeeDueResponse]
    skipped_existing: int = 0


class DueBalanceResponse(BaseModel):
    due_id: UUID
    amount: Decimal
    adjusted_up: Decimal
    adjusted_down: Decimal
    allocated: Decimal
    refunded: Decimal
    effective_amount: Decimal
    outstanding: Decimal
    is_paid: bool
