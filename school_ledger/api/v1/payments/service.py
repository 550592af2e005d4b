"""
Payment ledger: payments, allocations against dues, adjustments and reversals.

A payment only carries money once it is Success. Allocations and adjustments are append-only;
a reversal marks the payment Refunded and writes one Refund per allocation instead of deleting rows.
"""

from decimal import Decimal
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.api.v1.audit import service as audit_service
from school_ledger.api.v1.fee_dues.service import load_due
from school_ledger.api.v1.reference import service as reference_service
from school_ledger.core.enums import AdjustmentType, GatewayStatus, PaymentStatus
from school_ledger.core.exceptions import ConflictError, NotFoundError, StateError, ValidationError
from school_ledger.core.logging import get_logger
from school_ledger.core.models import (
    AcademicYear,
    Payment,
    PaymentAdjustment,
    PaymentAllocation,
    StudentEnrollment,
    StudentFeeDue,
)
from school_ledger.core.transaction import run_transaction
from school_ledger.db.session import utcnow

from .balances import ZERO, due_balances, payment_balance, refresh_paid_flag, to_decimal
from .schemas import (
    AdjustmentResponse,
    AllocationResponse,
    AllocationResult,
    PaymentAllocationLine,
    PaymentResponse,
    PaymentSummary,
    ReversalResponse,
)

logger = get_logger(__name__)

PAYMENTS = "payments"
ALLOCATIONS = "payment_allocations"
ADJUSTMENTS = "payment_adjustments"

DUE_ADJUSTMENTS = (AdjustmentType.ADJUSTMENT_UP, AdjustmentType.ADJUSTMENT_DOWN)


def _payment_response(p: Payment) -> PaymentResponse:
    return PaymentResponse.model_validate(p)


def _adjustment_response(a: PaymentAdjustment) -> AdjustmentResponse:
    return AdjustmentResponse.model_validate(a)


def _positive(amount) -> Decimal:
    value = to_decimal(amount)
    if value <= 0:
        raise ValidationError("Amount must be greater than zero")
    return value


async def load_payment(
    db: AsyncSession,
    payment_id: UUID,
    *,
    for_update: bool = False,
    school_id: Optional[UUID] = None,
) -> Payment:
    stmt = select(Payment).where(Payment.id == payment_id)
    if school_id is not None:
        stmt = stmt.where(Payment.school_id == school_id)
    if for_update:
        stmt = stmt.with_for_update()
    payment = (await db.execute(stmt)).scalar_one_or_none()
    if not payment:
        raise NotFoundError("Payment not found")
    return payment


async def _due_owner(db: AsyncSession, due: StudentFeeDue):
    """(student_id, school_id) of the enrollment the due was raised against."""
    row = (
        await db.execute(
            select(StudentEnrollment.student_id, AcademicYear.school_id)
            .join(AcademicYear, StudentEnrollment.academic_year_id == AcademicYear.id)
            .where(StudentEnrollment.id == due.enrollment_id)
        )
    ).one()
    return row[0], row[1]


async def _check_due_matches_payment(db: AsyncSession, due: StudentFeeDue, payment: Payment) -> None:
    student_id, school_id = await _due_owner(db, due)
    if student_id != payment.student_id or school_id != payment.school_id:
        raise ValidationError("Fee due does not belong to the payment's student")


def _require_success(payment: Payment) -> None:
    if payment.status != PaymentStatus.SUCCESS.value:
        raise StateError(f"Payment is {payment.status}, not Success", "PaymentNotSuccessful")


# ----- Payments -----
async def record_payment(
    db: AsyncSession,
    school_id: UUID,
    student_id: UUID,
    amount,
    mode: str,
    reference_no: Optional[str],
    transaction_id: Optional[str],
    actor_id: UUID,
) -> PaymentResponse:
    """Record an incoming payment as Pending; it carries money only after confirmation."""

    async def work() -> PaymentResponse:
        value = _positive(amount)
        if not (mode or "").strip():
            raise ValidationError("Payment mode is required")
        student = await reference_service.get_student(db, student_id)
        if student.school_id != school_id:
            raise NotFoundError("Student not found")
        txn = (transaction_id or "").strip() or None
        if txn:
            dup = await db.execute(select(Payment.id).where(Payment.transaction_id == txn))
            if dup.scalar_one_or_none():
                raise ConflictError("A payment with this transaction id already exists", "DuplicateTransaction")
        payment = Payment(
            school_id=school_id,
            student_id=student.id,
            amount=value,
            mode=mode.strip().upper(),
            reference_no=(reference_no or "").strip() or None,
            transaction_id=txn,
            status=PaymentStatus.PENDING.value,
        )
        db.add(payment)
        await db.flush()
        await audit_service.emit(
            db,
            action="RECORD_PAYMENT",
            table_name=PAYMENTS,
            record_id=payment.id,
            actor_id=actor_id,
            school_id=school_id,
            new_value={
                "student_id": payment.student_id,
                "amount": value,
                "mode": payment.mode,
                "transaction_id": txn,
                "status": payment.status,
            },
        )
        return _payment_response(payment)

    result = await run_transaction(
        db,
        work,
        action="RECORD_PAYMENT",
        table_name=PAYMENTS,
        actor_id=actor_id,
        school_id=school_id,
        record_id=transaction_id,
        conflict_code="DuplicateTransaction",
    )
    logger.info("payment_recorded", payment_id=str(result.id), amount=str(result.amount), mode=result.mode)
    return result


async def _apply_status(
    db: AsyncSession,
    payment: Payment,
    status: GatewayStatus,
    *,
    action: str,
    actor_id: Optional[UUID],
) -> PaymentResponse:
    if payment.status == status.value:
        # Redelivered event; the first one already took effect
        return _payment_response(payment)
    if (
        status == GatewayStatus.SUCCESS
        and payment.status == PaymentStatus.REFUNDED.value
        and payment.confirmed_at is not None
    ):
        # Success was applied before the reversal
        return _payment_response(payment)
    if payment.status != PaymentStatus.PENDING.value:
        raise StateError(f"Payment is already {payment.status}; cannot mark it {status.value}", "InvalidState")
    old_status = payment.status
    payment.status = status.value
    payment.confirmed_at = utcnow()
    await db.flush()
    await audit_service.emit(
        db,
        action=action,
        table_name=PAYMENTS,
        record_id=payment.id,
        actor_id=actor_id,
        school_id=payment.school_id,
        old_value={"status": old_status},
        new_value={"status": payment.status},
    )
    return _payment_response(payment)


async def apply_gateway_callback(
    db: AsyncSession,
    transaction_id: str,
    status: GatewayStatus,
    *,
    actor_id: Optional[UUID] = None,
) -> PaymentResponse:
    """Idempotent on transaction_id: the same outcome delivered twice is a no-op."""

    async def work() -> PaymentResponse:
        result = await db.execute(
            select(Payment).where(Payment.transaction_id == transaction_id).with_for_update()
        )
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError("No payment for this transaction id")
        return await _apply_status(db, payment, status, action="GATEWAY_CALLBACK", actor_id=actor_id)

    result = await run_transaction(
        db,
        work,
        action="GATEWAY_CALLBACK",
        table_name=PAYMENTS,
        actor_id=actor_id,
        record_id=transaction_id,
    )
    logger.info("gateway_callback_applied", transaction_id=transaction_id, status=result.status.value)
    return result


async def confirm_payment(
    db: AsyncSession,
    payment_id: UUID,
    status: GatewayStatus,
    actor_id: UUID,
    *,
    school_id: Optional[UUID] = None,
) -> PaymentResponse:
    """Settle a Pending payment collected offline. Same transition rules as a gateway callback."""

    async def work() -> PaymentResponse:
        payment = await load_payment(db, payment_id, for_update=True, school_id=school_id)
        return await _apply_status(db, payment, status, action="CONFIRM_PAYMENT", actor_id=actor_id)

    result = await run_transaction(
        db,
        work,
        action="CONFIRM_PAYMENT",
        table_name=PAYMENTS,
        actor_id=actor_id,
        school_id=school_id,
        record_id=payment_id,
    )
    logger.info("payment_confirmed", payment_id=str(payment_id), status=result.status.value)
    return result


# ----- Allocations -----
async def _write_allocation(
    db: AsyncSession,
    payment: Payment,
    due: StudentFeeDue,
    amount: Decimal,
    actor_id: UUID,
) -> AllocationResponse:
    allocation = PaymentAllocation(payment_id=payment.id, due_id=due.id, amount_allocated=amount)
    db.add(allocation)
    await db.flush()
    bal = await refresh_paid_flag(db, due)
    await audit_service.emit(
        db,
        action="ALLOCATE",
        table_name=ALLOCATIONS,
        record_id=allocation.id,
        actor_id=actor_id,
        school_id=payment.school_id,
        new_value={
            "payment_id": payment.id,
            "due_id": due.id,
            "amount_allocated": amount,
            "due_outstanding": bal.outstanding,
        },
    )
    return AllocationResponse(
        id=allocation.id,
        payment_id=payment.id,
        due_id=due.id,
        amount_allocated=amount,
        created_at=allocation.created_at,
        due_outstanding=bal.outstanding,
        due_is_paid=bool(due.is_paid),
    )


async def allocate(
    db: AsyncSession,
    payment_id: UUID,
    due_id: UUID,
    amount,
    actor_id: UUID,
    *,
    school_id: Optional[UUID] = None,
) -> AllocationResult:
    """Apply part of a successful payment to one due. Rejected allocations leave no row behind."""

    async def work() -> AllocationResult:
        value = _positive(amount)
        payment = await load_payment(db, payment_id, for_update=True, school_id=school_id)
        _require_success(payment)
        due = await load_due(db, due_id, for_update=True)
        await _check_due_matches_payment(db, due, payment)

        due_bal = (await due_balances(db, [due]))[due.id]
        if due_bal.outstanding <= 0:
            raise StateError("Fee due has nothing outstanding", "DueNotOutstanding")
        if value > due_bal.outstanding:
            raise ConflictError(
                f"Allocation {value} exceeds the due's outstanding balance {due_bal.outstanding}",
                "OverAllocation",
            )
        pay_bal = await payment_balance(db, payment)
        if value > pay_bal.unallocated:
            raise ConflictError(
                f"Allocation {value} exceeds the payment's unallocated balance {pay_bal.unallocated}",
                "OverAllocation",
            )
        line = await _write_allocation(db, payment, due, value, actor_id)
        return AllocationResult(payment_id=payment.id, allocations=[line], unallocated=pay_bal.unallocated - value)

    result = await run_transaction(
        db,
        work,
        action="ALLOCATE",
        table_name=ALLOCATIONS,
        actor_id=actor_id,
        school_id=school_id,
        record_id=payment_id,
    )
    logger.info("payment_allocated", payment_id=str(payment_id), due_id=str(due_id), amount=str(amount))
    return result


async def _outstanding_dues_for(db: AsyncSession, payment: Payment) -> List[StudentFeeDue]:
    result = await db.execute(
        select(StudentFeeDue)
        .join(StudentEnrollment, StudentFeeDue.enrollment_id == StudentEnrollment.id)
        .join(AcademicYear, StudentEnrollment.academic_year_id == AcademicYear.id)
        .where(
            StudentEnrollment.student_id == payment.student_id,
            AcademicYear.school_id == payment.school_id,
            StudentFeeDue.deleted_at.is_(None),
        )
        .order_by(StudentFeeDue.due_date, StudentFeeDue.created_at)
        .with_for_update(of=StudentFeeDue)
    )
    return list(result.scalars().all())


async def allocate_oldest_first(
    db: AsyncSession,
    payment_id: UUID,
    actor_id: UUID,
    *,
    due_ids: Optional[Iterable[UUID]] = None,
    school_id: Optional[UUID] = None,
) -> AllocationResult:
    """Fill dues in due-date order, each completely before the next. The remainder stays unallocated."""

    async def work() -> AllocationResult:
        payment = await load_payment(db, payment_id, for_update=True, school_id=school_id)
        _require_success(payment)
        if due_ids is not None:
            dues = []
            for did in dict.fromkeys(due_ids):
                due = await load_due(db, did, for_update=True)
                await _check_due_matches_payment(db, due, payment)
                dues.append(due)
            dues.sort(key=lambda d: (d.due_date, d.created_at))
        else:
            dues = await _outstanding_dues_for(db, payment)

        remaining = (await payment_balance(db, payment)).unallocated
        balances = await due_balances(db, dues)
        lines: List[AllocationResponse] = []
        for due in dues:
            if remaining <= 0:
                break
            outstanding = balances[due.id].outstanding
            if outstanding <= 0:
                continue
            take = min(outstanding, remaining)
            lines.append(await _write_allocation(db, payment, due, take, actor_id))
            remaining -= take
        return AllocationResult(payment_id=payment.id, allocations=lines, unallocated=remaining)

    result = await run_transaction(
        db,
        work,
        action="ALLOCATE",
        table_name=ALLOCATIONS,
        actor_id=actor_id,
        school_id=school_id,
        record_id=payment_id,
    )
    logger.info(
        "payment_auto_allocated",
        payment_id=str(payment_id),
        dues=len(result.allocations),
        unallocated=str(result.unallocated),
    )
    return result


# ----- Reversal / adjustments -----
async def reverse(
    db: AsyncSession,
    payment_id: UUID,
    reversed_by: UUID,
    *,
    reason: Optional[str] = None,
    school_id: Optional[UUID] = None,
) -> ReversalResponse:
    async def work() -> ReversalResponse:
        payment = await load_payment(db, payment_id, for_update=True, school_id=school_id)
        if payment.status != PaymentStatus.SUCCESS.value:
            raise StateError(f"Only a Success payment can be reversed; payment is {payment.status}", "InvalidState")
        allocations = (
            await db.execute(
                select(PaymentAllocation)
                .where(PaymentAllocation.payment_id == payment.id)
                .order_by(PaymentAllocation.created_at)
            )
        ).scalars().all()

        refunds: List[PaymentAdjustment] = []
        for allocation in allocations:
            refund = PaymentAdjustment(
                payment_id=payment.id,
                due_id=allocation.due_id,
                adjustment_amount=allocation.amount_allocated,
                adjustment_type=AdjustmentType.REFUND.value,
                reason=(reason or "").strip() or "Payment reversal",
                created_by=reversed_by,
            )
            db.add(refund)
            refunds.append(refund)

        payment.status = PaymentStatus.REFUNDED.value
        payment.reversed_at = utcnow()
        payment.reversed_by = reversed_by
        await db.flush()

        # Soft-deleted dues still get their cache refreshed
        for affected in dict.fromkeys(a.due_id for a in allocations):
            due = await db.get(StudentFeeDue, affected, with_for_update=True)
            await refresh_paid_flag(db, due)

        await audit_service.emit(
            db,
            action="REVERSE",
            table_name=PAYMENTS,
            record_id=payment.id,
            actor_id=reversed_by,
            school_id=payment.school_id,
            old_value={"status": PaymentStatus.SUCCESS.value},
            new_value={
                "status": payment.status,
                "refund_ids": [r.id for r in refunds],
                "refunded": sum((to_decimal(r.adjustment_amount) for r in refunds), ZERO),
            },
        )
        return ReversalResponse(
            payment=_payment_response(payment),
            refunds=[_adjustment_response(r) for r in refunds],
        )

    result = await run_transaction(
        db,
        work,
        action="REVERSE",
        table_name=PAYMENTS,
        actor_id=reversed_by,
        school_id=school_id,
        record_id=payment_id,
    )
    logger.info("payment_reversed", payment_id=str(payment_id), refunds=len(result.refunds))
    return result


async def adjust(
    db: AsyncSession,
    amount,
    adjustment_type: AdjustmentType,
    actor_id: UUID,
    *,
    due_id: Optional[UUID] = None,
    payment_id: Optional[UUID] = None,
    reason: Optional[str] = None,
    school_id: Optional[UUID] = None,
) -> AdjustmentResponse:
    """
    AdjustmentUp / AdjustmentDown correct what a due asks for. A Refund returns unallocated money
    of a payment. Neither rewrites existing rows.

    A reduction is not capped by what is still owed; a waiver on a settled due leaves it in credit.
    """

    async def work() -> AdjustmentResponse:
        try:
            kind = AdjustmentType(adjustment_type)
        except ValueError:
            raise ValidationError(f"Unknown adjustment type {adjustment_type!r}", "InvalidAdjustmentTarget")
        if kind in DUE_ADJUSTMENTS:
            if due_id is None or payment_id is not None:
                raise ValidationError(f"{kind.value} targets a fee due only", "InvalidAdjustmentTarget")
        elif payment_id is None or due_id is not None:
            raise ValidationError("Refund targets a payment only", "InvalidAdjustmentTarget")
        value = _positive(amount)

        due = None
        record_school = school_id
        if kind in DUE_ADJUSTMENTS:
            due = await load_due(db, due_id, for_update=True, school_id=school_id)
            record_school = (await _due_owner(db, due))[1]
        else:
            payment = await load_payment(db, payment_id, for_update=True, school_id=school_id)
            _require_success(payment)
            unallocated = (await payment_balance(db, payment)).unallocated
            if value > unallocated:
                raise ConflictError(
                    f"Refund {value} exceeds the payment's unallocated balance {unallocated}",
                    "OverAllocation",
                )
            record_school = payment.school_id

        adjustment = PaymentAdjustment(
            payment_id=payment_id,
            due_id=due_id,
            adjustment_amount=value,
            adjustment_type=kind.value,
            reason=(reason or "").strip() or None,
            created_by=actor_id,
        )
        db.add(adjustment)
        await db.flush()
        if due is not None:
            await refresh_paid_flag(db, due)
        await audit_service.emit(
            db,
            action="ADJUST",
            table_name=ADJUSTMENTS,
            record_id=adjustment.id,
            actor_id=actor_id,
            school_id=record_school,
            new_value={
                "adjustment_type": kind.value,
                "amount": value,
                "due_id": due_id,
                "payment_id": payment_id,
                "reason": adjustment.reason,
            },
        )
        return _adjustment_response(adjustment)

    result = await run_transaction(
        db,
        work,
        action="ADJUST",
        table_name=ADJUSTMENTS,
        actor_id=actor_id,
        school_id=school_id,
        record_id=due_id or payment_id,
    )
    logger.info(
        "adjustment_recorded",
        adjustment_id=str(result.id),
        type=result.adjustment_type.value,
        amount=str(result.adjustment_amount),
    )
    return result


# ----- Reads -----
async def get_payment_summary(
    db: AsyncSession,
    payment_id: UUID,
    school_id: Optional[UUID] = None,
) -> PaymentSummary:
    payment = await load_payment(db, payment_id, school_id=school_id)
    bal = await payment_balance(db, payment)
    rows = await db.execute(
        select(PaymentAllocation)
        .where(PaymentAllocation.payment_id == payment.id)
        .order_by(PaymentAllocation.created_at)
    )
    return PaymentSummary(
        payment=_payment_response(payment),
        allocated=bal.allocated,
        refunded=bal.refunded_manually + bal.refunded_on_reversal,
        unallocated=bal.unallocated,
        allocations=[
            PaymentAllocationLine(
                id=a.id,
                due_id=a.due_id,
                amount_allocated=to_decimal(a.amount_allocated),
                created_at=a.created_at,
            )
            for a in rows.scalars().all()
        ],
    )


async def list_student_payments(
    db: AsyncSession,
    student_id: UUID,
    school_id: Optional[UUID] = None,
) -> List[PaymentResponse]:
    stmt = select(Payment).where(Payment.student_id == student_id)
    if school_id is not None:
        stmt = stmt.where(Payment.school_id == school_id)
    result = await db.execute(stmt.order_by(Payment.paid_at.desc()))
    return [_payment_response(p) for p in result.scalars().all()]
