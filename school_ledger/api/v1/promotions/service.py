"""
Promotion engine: year-end transition of one enrollment.

Promoted -> new Active enrollment in the target class for the next year.
Detained -> new Active enrollment in the same class for the next year.
Withdrawn -> progression row only.

The source enrollment is not modified; it ends at its year boundary and the progression row
links it to its successor. One progression per (enrollment, target year).
"""

from datetime import date
from typing import List, Optional, Protocol
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.api.v1.audit import service as audit_service
from school_ledger.api.v1.enrollments import records as enrollment_records
from school_ledger.api.v1.reference import service as reference_service
from school_ledger.core.enums import EnrollmentStatus, PromotionDecision
from school_ledger.core.exceptions import ConflictError, NotFoundError, ServiceError, StateError, ValidationError
from school_ledger.core.logging import get_logger
from school_ledger.core.models import StudentEnrollment, StudentProgression
from school_ledger.core.transaction import run_transaction

from .schemas import (
    BatchPromotionResult,
    ProgressionResponse,
    PromotionFailure,
    PromotionRequest,
    PromotionResponse,
)

logger = get_logger(__name__)

TABLE = "student_progressions"


class SectionAssigner(Protocol):
    """Capacity collaborator: chooses the target section for a promoted or detained student."""

    async def assign_section(
        self,
        db: AsyncSession,
        *,
        student_id: UUID,
        academic_year_id: UUID,
        class_id: UUID,
    ) -> UUID: ...


class EligibilityChecker(Protocol):
    """Conduct / leave / result collaborator. Returns a rejection reason, or None when eligible."""

    async def check(
        self,
        db: AsyncSession,
        enrollment: StudentEnrollment,
        decision: PromotionDecision,
    ) -> Optional[str]: ...


class CapacitySectionAssigner:
    """First section (by name) of the class with a free seat in the year; uncapped sections always qualify.

    The class's section rows stay locked until commit so concurrent promotions count seats one at a time.
    """

    async def assign_section(
        self,
        db: AsyncSession,
        *,
        student_id: UUID,
        academic_year_id: UUID,
        class_id: UUID,
    ) -> UUID:
        for section in await reference_service.list_sections(db, class_id, for_update=True):
            if section.max_capacity is None:
                return section.id
            occupied = (
                await db.execute(
                    select(func.count(StudentEnrollment.id)).where(
                        StudentEnrollment.section_id == section.id,
                        StudentEnrollment.academic_year_id == academic_year_id,
                        StudentEnrollment.status == EnrollmentStatus.ACTIVE.value,
                        StudentEnrollment.deleted_at.is_(None),
                    )
                )
            ).scalar() or 0
            if occupied < section.max_capacity:
                return section.id
        raise StateError("No section capacity in the target class", "NotEligible")


class AllowAllEligibility:
    async def check(
        self,
        db: AsyncSession,
        enrollment: StudentEnrollment,
        decision: PromotionDecision,
    ) -> Optional[str]:
        return None


default_section_assigner = CapacitySectionAssigner()
default_eligibility_checker = AllowAllEligibility()


def _to_response(p: StudentProgression) -> ProgressionResponse:
    return ProgressionResponse(
        id=p.id,
        enrollment_id=p.enrollment_id,
        from_academic_year_id=p.from_academic_year_id,
        to_academic_year_id=p.to_academic_year_id,
        from_class_id=p.from_class_id,
        to_class_id=p.to_class_id,
        promotion_status=p.promotion_status,
        promotion_date=p.promotion_date,
        remarks=p.remarks,
        promoted_by=p.promoted_by,
        target_enrollment_id=p.target_enrollment_id,
        created_at=p.created_at,
    )


async def _existing_progression(
    db: AsyncSession,
    enrollment_id: UUID,
    to_academic_year_id: UUID,
) -> Optional[StudentProgression]:
    result = await db.execute(
        select(StudentProgression).where(
            StudentProgression.enrollment_id == enrollment_id,
            StudentProgression.to_academic_year_id == to_academic_year_id,
        )
    )
    return result.scalar_one_or_none()


async def promote(
    db: AsyncSession,
    enrollment_id: UUID,
    to_academic_year_id: UUID,
    to_class_id: Optional[UUID],
    decision: PromotionDecision,
    promoted_by: UUID,
    *,
    remarks: Optional[str] = None,
    section_id: Optional[UUID] = None,
    school_id: Optional[UUID] = None,
    section_assigner: Optional[SectionAssigner] = None,
    eligibility_checker: Optional[EligibilityChecker] = None,
) -> PromotionResponse:
    assigner = section_assigner or default_section_assigner
    checker = eligibility_checker or default_eligibility_checker

    async def work() -> PromotionResponse:
        if decision == PromotionDecision.PROMOTED and to_class_id is None:
            raise ValidationError("to_class_id is required when decision is Promoted")
        source = await enrollment_records.load_enrollment(db, enrollment_id, for_update=True, school_id=school_id)
        to_year = await reference_service.get_academic_year(db, to_academic_year_id)
        if await _existing_progression(db, source.id, to_year.id):
            raise ConflictError("Enrollment already progressed to this academic year", "AlreadyProgressed")

        if not enrollment_records.is_active(source):
            raise StateError(f"Enrollment is {source.status}, not Active", "NotEligible")
        preceding = await reference_service.get_preceding_academic_year(db, to_year.id)
        if preceding is None or preceding.id != source.academic_year_id:
            raise StateError(
                "Target academic year does not immediately follow the enrollment's year",
                "NotEligible",
            )
        rejection = await checker.check(db, source, decision)
        if rejection:
            raise StateError(rejection, "NotEligible")

        if decision == PromotionDecision.PROMOTED:
            target_class = await reference_service.get_class(db, to_class_id)
            if target_class.school_id != to_year.school_id:
                raise ValidationError("Target class does not belong to the academic year's school")
            target_class_id = target_class.id
        else:
            # Detained repeats the class; Withdrawn records the class the student left from
            if decision == PromotionDecision.DETAINED and to_class_id not in (None, source.class_id):
                raise ValidationError("A detained student stays in the same class")
            target_class_id = source.class_id

        target_enrollment: Optional[StudentEnrollment] = None
        if decision != PromotionDecision.WITHDRAWN:
            if section_id is not None:
                section = await reference_service.get_section(db, section_id)
                if section.class_id != target_class_id:
                    raise ValidationError("Section does not belong to the target class")
                target_section_id = section.id
            else:
                target_section_id = await assigner.assign_section(
                    db,
                    student_id=source.student_id,
                    academic_year_id=to_year.id,
                    class_id=target_class_id,
                )
            target_enrollment = await enrollment_records.create_enrollment_row(
                db,
                student_id=source.student_id,
                academic_year=to_year,
                class_id=target_class_id,
                section_id=target_section_id,
                roll_number=source.roll_number,
            )
            await audit_service.emit(
                db,
                action="ENROLL",
                table_name=enrollment_records.TABLE,
                record_id=target_enrollment.id,
                actor_id=promoted_by,
                school_id=to_year.school_id,
                new_value={**enrollment_records.snapshot(target_enrollment), "via": decision.value},
            )

        progression = StudentProgression(
            enrollment_id=source.id,
            from_academic_year_id=source.academic_year_id,
            to_academic_year_id=to_year.id,
            from_class_id=source.class_id,
            to_class_id=target_class_id,
            promotion_status=decision.value,
            promotion_date=date.today(),
            remarks=(remarks or "").strip() or None,
            promoted_by=promoted_by,
            target_enrollment_id=target_enrollment.id if target_enrollment else None,
        )
        db.add(progression)
        await db.flush()
        await audit_service.emit(
            db,
            action="PROMOTE",
            table_name=TABLE,
            record_id=progression.id,
            actor_id=promoted_by,
            school_id=to_year.school_id,
            new_value={
                "enrollment_id": source.id,
                "to_academic_year_id": to_year.id,
                "from_class_id": source.class_id,
                "to_class_id": target_class_id,
                "promotion_status": decision.value,
                "target_enrollment_id": progression.target_enrollment_id,
            },
        )
        return PromotionResponse(
            progression=_to_response(progression),
            target_enrollment=enrollment_records.to_response(target_enrollment) if target_enrollment else None,
        )

    result = await run_transaction(
        db,
        work,
        action="PROMOTE",
        table_name=TABLE,
        actor_id=promoted_by,
        school_id=school_id,
        record_id=enrollment_id,
        conflict_code="AlreadyProgressed",
    )
    logger.info(
        "enrollment_progressed",
        enrollment_id=str(enrollment_id),
        to_academic_year_id=str(to_academic_year_id),
        decision=decision.value,
    )
    return result


async def promote_batch(
    db: AsyncSession,
    items: List[PromotionRequest],
    promoted_by: UUID,
    *,
    school_id: Optional[UUID] = None,
    section_assigner: Optional[SectionAssigner] = None,
    eligibility_checker: Optional[EligibilityChecker] = None,
) -> BatchPromotionResult:
    """Each student is promoted in its own transaction; one failure does not undo the others."""
    promoted: List[PromotionResponse] = []
    failures: List[PromotionFailure] = []
    for item in items:
        try:
            promoted.append(
                await promote(
                    db,
                    item.enrollment_id,
                    item.to_academic_year_id,
                    item.to_class_id,
                    item.decision,
                    promoted_by,
                    remarks=item.remarks,
                    section_id=item.section_id,
                    school_id=school_id,
                    section_assigner=section_assigner,
                    eligibility_checker=eligibility_checker,
                )
            )
        except ServiceError as e:
            failures.append(PromotionFailure(enrollment_id=item.enrollment_id, code=e.code, message=e.message))
    logger.info("promotion_batch_finished", promoted=len(promoted), failed=len(failures))
    return BatchPromotionResult(promoted=promoted, failures=failures)


async def list_progressions(
    db: AsyncSession,
    enrollment_id: UUID,
    school_id: Optional[UUID] = None,
) -> List[ProgressionResponse]:
    await enrollment_records.load_enrollment(db, enrollment_id, school_id=school_id)
    result = await db.execute(
        select(StudentProgression)
        .where(StudentProgression.enrollment_id == enrollment_id)
        .order_by(StudentProgression.created_at)
    )
    return [_to_response(p) for p in result.scalars().all()]


async def get_progression(db: AsyncSession, progression_id: UUID) -> ProgressionResponse:
    p = await db.get(StudentProgression, progression_id)
    if not p:
        raise NotFoundError("Progression not found")
    return _to_response(p)
