"""
Fee due generator: expands an enrollment's class fee structure into dated installments.

Regeneration is idempotent on (enrollment, fee head, due date); existing non-deleted dues are kept.
"""

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_DOWN, Decimal
from typing import Dict, List, Optional
from uuid import UUID

from dateutil.relativedelta import relativedelta
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.api.v1.audit import service as audit_service
from school_ledger.api.v1.enrollments import records as enrollment_records
from school_ledger.api.v1.payments.balances import CENT, DueBalance, due_balances, to_decimal
from school_ledger.api.v1.reference import service as reference_service
from school_ledger.core.enums import FeeFrequency
from school_ledger.core.exceptions import NotFoundError, StateError
from school_ledger.core.logging import get_logger
from school_ledger.core.models import AcademicYear, FeeHead, FeeStructure, StudentEnrollment, StudentFeeDue
from school_ledger.core.transaction import run_transaction

from .schemas import DueBalanceResponse, FeeDueResponse, GenerateDuesResponse

logger = get_logger(__name__)

TABLE = "student_fee_dues"

QUARTER_OFFSETS = (0, 3, 6, 9)


@dataclass
class Installment:
    title: str
    amount: Decimal
    due_date: date


def months_spanned(start: date, end: date) -> int:
    """Calendar months touched by [start, end], e.g. Apr 2024 - Mar 2025 -> 12."""
    return (end.year - start.year) * 12 + (end.month - start.month) + 1


def split_amount(total: Decimal, parts: int) -> List[Decimal]:
    """Equal installments rounded down to the cent; the remainder goes on the last one."""
    total = to_decimal(total)
    if parts <= 1:
        return [total]
    base = (total / parts).quantize(CENT, rounding=ROUND_DOWN)
    return [base] * (parts - 1) + [total - base * (parts - 1)]


def expand_fee_structure(structure: FeeStructure, fee_head: FeeHead, year: AcademicYear) -> List[Installment]:
    frequency = FeeFrequency(structure.frequency)
    start = year.start_date
    if frequency == FeeFrequency.MONTHLY:
        dates = [start + relativedelta(months=i) for i in range(months_spanned(start, year.end_date))]
        titles = [f"{fee_head.name} - {d.strftime('%b %Y')}" for d in dates]
    elif frequency == FeeFrequency.QUARTERLY:
        dates = [start + relativedelta(months=m) for m in QUARTER_OFFSETS]
        titles = [f"{fee_head.name} - Q{n}" for n in range(1, len(dates) + 1)]
    else:
        dates = [start]
        titles = [f"{fee_head.name} - {year.name}"]
    amounts = split_amount(structure.amount, len(dates))
    return [Installment(title=t, amount=a, due_date=d) for t, a, d in zip(titles, amounts, dates)]


def _to_response(due: StudentFeeDue, bal: DueBalance) -> FeeDueResponse:
    return FeeDueResponse(
        id=due.id,
        enrollment_id=due.enrollment_id,
        fee_head_id=due.fee_head_id,
        title=due.title,
        amount=to_decimal(due.amount),
        due_date=due.due_date,
        is_paid=bool(due.is_paid),
        created_at=due.created_at,
        effective_amount=bal.effective_amount,
        allocated=bal.net_allocated,
        outstanding=bal.outstanding,
    )


async def load_due(
    db: AsyncSession,
    due_id: UUID,
    *,
    for_update: bool = False,
    school_id: Optional[UUID] = None,
) -> StudentFeeDue:
    stmt = select(StudentFeeDue).where(StudentFeeDue.id == due_id, StudentFeeDue.deleted_at.is_(None))
    if school_id is not None:
        stmt = (
            stmt.join(StudentEnrollment, StudentFeeDue.enrollment_id == StudentEnrollment.id)
            .join(AcademicYear, StudentEnrollment.academic_year_id == AcademicYear.id)
            .where(AcademicYear.school_id == school_id)
        )
    if for_update:
        stmt = stmt.with_for_update(of=StudentFeeDue)
    due = (await db.execute(stmt)).scalar_one_or_none()
    if not due:
        raise NotFoundError("Fee due not found")
    return due


async def generate_dues(
    db: AsyncSession,
    enrollment_id: UUID,
    actor_id: UUID,
    *,
    school_id: Optional[UUID] = None,
) -> GenerateDuesResponse:
    async def work() -> GenerateDuesResponse:
        enrollment = await enrollment_records.load_enrollment(db, enrollment_id, for_update=True, school_id=school_id)
        if not enrollment_records.is_active(enrollment):
            raise StateError(f"Cannot generate dues for a {enrollment.status} enrollment", "InvalidTransition")
        year = await reference_service.get_academic_year(db, enrollment.academic_year_id)
        structures = await reference_service.list_fee_structures(
            db, year.school_id, year.id, enrollment.class_id
        )
        if not structures:
            raise NotFoundError("No fee structure defined for this class and academic year", "NoFeeStructure")

        existing_rows = await db.execute(
            select(StudentFeeDue.fee_head_id, StudentFeeDue.due_date).where(
                StudentFeeDue.enrollment_id == enrollment.id,
                StudentFeeDue.deleted_at.is_(None),
            )
        )
        existing = {(head_id, due_date) for head_id, due_date in existing_rows.all()}

        created: List[StudentFeeDue] = []
        skipped = 0
        for structure in structures:
            fee_head = await reference_service.get_fee_head(db, structure.fee_head_id)
            for inst in expand_fee_structure(structure, fee_head, year):
                if (structure.fee_head_id, inst.due_date) in existing:
                    skipped += 1
                    continue
                due = StudentFeeDue(
                    enrollment_id=enrollment.id,
                    fee_head_id=structure.fee_head_id,
                    title=inst.title,
                    amount=inst.amount,
                    due_date=inst.due_date,
                    is_paid=inst.amount <= 0,
                )
                db.add(due)
                created.append(due)
        await db.flush()

        if created:
            await audit_service.emit(
                db,
                action="GENERATE_DUES",
                table_name=TABLE,
                record_id=enrollment.id,
                actor_id=actor_id,
                school_id=year.school_id,
                new_value={
                    "enrollment_id": enrollment.id,
                    "due_ids": [d.id for d in created],
                    "total": sum((to_decimal(d.amount) for d in created), Decimal("0.00")),
                },
            )
        created.sort(key=lambda d: (d.due_date, d.title or ""))
        return GenerateDuesResponse(
            created=[_to_response(d, DueBalance(amount=to_decimal(d.amount))) for d in created],
            skipped_existing=skipped,
        )

    result = await run_transaction(
        db,
        work,
        action="GENERATE_DUES",
        table_name=TABLE,
        actor_id=actor_id,
        school_id=school_id,
        record_id=enrollment_id,
    )
    logger.info(
        "fee_dues_generated",
        enrollment_id=str(enrollment_id),
        created=len(result.created),
        skipped=result.skipped_existing,
    )
    return result


async def list_dues(
    db: AsyncSession,
    enrollment_id: UUID,
    school_id: Optional[UUID] = None,
) -> List[FeeDueResponse]:
    await enrollment_records.load_enrollment(db, enrollment_id, school_id=school_id)
    result = await db.execute(
        select(StudentFeeDue)
        .where(StudentFeeDue.enrollment_id == enrollment_id, StudentFeeDue.deleted_at.is_(None))
        .order_by(StudentFeeDue.due_date, StudentFeeDue.created_at)
    )
    dues = list(result.scalars().all())
    balances: Dict[UUID, DueBalance] = await due_balances(db, dues)
    return [_to_response(d, balances[d.id]) for d in dues]


async def get_due_balance(
    db: AsyncSession,
    due_id: UUID,
    school_id: Optional[UUID] = None,
) -> DueBalanceResponse:
    due = await load_due(db, due_id, school_id=school_id)
    bal = (await due_balances(db, [due]))[due.id]
    return DueBalanceResponse(
        due_id=due.id,
        amount=bal.amount,
        adjusted_up=bal.adjusted_up,
        adjusted_down=bal.adjusted_down,
        allocated=bal.allocated,
        refunded=bal.refunded,
        effective_amount=bal.effective_amount,
        outstanding=bal.outstanding,
        is_paid=bool(due.is_paid),
    )
