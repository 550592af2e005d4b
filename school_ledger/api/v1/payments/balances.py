"""
Derived ledger balances. Nothing here is stored except the StudentFeeDue.is_paid cache.

    outstanding(due) = amount + sum(AdjustmentUp) - sum(AdjustmentDown)
                       - sum(allocations) + sum(Refund adjustments on the due)

A Refund carrying a due_id is written only by a payment reversal, one per allocation, so adding
them back is the same as excluding reversed allocations.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.core.enums import AdjustmentType, PaymentStatus
from school_ledger.core.models import Payment, PaymentAdjustment, PaymentAllocation, StudentFeeDue

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(val) -> Decimal:
    if val is None:
        return ZERO
    dec = val if isinstance(val, Decimal) else Decimal(str(val))
    return dec.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class DueBalance:
    amount: Decimal
    adjusted_up: Decimal = ZERO
    adjusted_down: Decimal = ZERO
    allocated: Decimal = ZERO
    refunded: Decimal = ZERO

    @property
    def effective_amount(self) -> Decimal:
        return self.amount + self.adjusted_up - self.adjusted_down

    @property
    def net_allocated(self) -> Decimal:
        """Allocations still standing, i.e. not reversed."""
        return self.allocated - self.refunded

    @property
    def outstanding(self) -> Decimal:
        return self.effective_amount - self.net_allocated


@dataclass
class PaymentBalance:
    amount: Decimal
    status: str
    allocated: Decimal = ZERO
    refunded_manually: Decimal = ZERO
    refunded_on_reversal: Decimal = ZERO

    @property
    def unallocated(self) -> Decimal:
        """Money of a successful payment not yet applied to a due nor refunded."""
        if self.status != PaymentStatus.SUCCESS.value:
            return ZERO
        return self.amount - self.allocated - self.refunded_manually


async def due_balances(db: AsyncSession, dues: Iterable[StudentFeeDue]) -> Dict[UUID, DueBalance]:
    balances = {d.id: DueBalance(amount=to_decimal(d.amount)) for d in dues}
    if not balances:
        return {}
    ids = list(balances)

    alloc_rows = await db.execute(
        select(
            PaymentAllocation.due_id,
            func.coalesce(func.sum(PaymentAllocation.amount_allocated), 0),
        )
        .where(PaymentAllocation.due_id.in_(ids))
        .group_by(PaymentAllocation.due_id)
    )
    for due_id, total in alloc_rows.all():
        balances[due_id].allocated = to_decimal(total)

    adj_rows = await db.execute(
        select(
            PaymentAdjustment.due_id,
            PaymentAdjustment.adjustment_type,
            func.coalesce(func.sum(PaymentAdjustment.adjustment_amount), 0),
        )
        .where(PaymentAdjustment.due_id.in_(ids))
        .group_by(PaymentAdjustment.due_id, PaymentAdjustment.adjustment_type)
    )
    for due_id, adj_type, total in adj_rows.all():
        bal = balances[due_id]
        if adj_type == AdjustmentType.ADJUSTMENT_UP.value:
            bal.adjusted_up = to_decimal(total)
        elif adj_type == AdjustmentType.ADJUSTMENT_DOWN.value:
            bal.adjusted_down = to_decimal(total)
        elif adj_type == AdjustmentType.REFUND.value:
            bal.refunded = to_decimal(total)
    return balances


async def due_balance(db: AsyncSession, due: StudentFeeDue) -> DueBalance:
    return (await due_balances(db, [due]))[due.id]


async def refresh_paid_flag(db: AsyncSession, due: StudentFeeDue) -> DueBalance:
    """Recompute the cached is_paid flag from the ledger."""
    bal = await due_balance(db, due)
    due.is_paid = bal.outstanding <= 0
    return bal


async def payment_balance(db: AsyncSession, payment: Payment) -> PaymentBalance:
    bal = PaymentBalance(amount=to_decimal(payment.amount), status=payment.status)
    bal.allocated = to_decimal(
        (
            await db.execute(
                select(func.coalesce(func.sum(PaymentAllocation.amount_allocated), 0)).where(
                    PaymentAllocation.payment_id == payment.id
                )
            )
        ).scalar()
    )
    refund_stmt = select(func.coalesce(func.sum(PaymentAdjustment.adjustment_amount), 0)).where(
        PaymentAdjustment.payment_id == payment.id,
        PaymentAdjustment.adjustment_type == AdjustmentType.REFUND.value,
    )
    bal.refunded_manually = to_decimal(
        (await db.execute(refund_stmt.where(PaymentAdjustment.due_id.is_(None)))).scalar()
    )
    bal.refunded_on_reversal = to_decimal(
        (await db.execute(refund_stmt.where(PaymentAdjustment.due_id.is_not(None)))).scalar()
    )
    return bal
