"""
Enrollment manager: admission into a year, same-year section moves, termination.
Rows are never reused once terminated; re-admission creates a new row.
"""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.api.v1.audit import service as audit_service
from school_ledger.api.v1.promotions import service as promotion_service
from school_ledger.api.v1.reference import service as reference_service
from school_ledger.core.enums import EnrollmentStatus, PromotionDecision, TerminationReason
from school_ledger.core.exceptions import NotFoundError, ServiceError, StateError, ValidationError
from school_ledger.core.logging import get_logger
from school_ledger.core.models import AcademicYear, StudentEnrollment
from school_ledger.core.transaction import run_transaction
from school_ledger.db.session import utcnow

from .records import (
    TABLE,
    create_enrollment_row,
    find_active_enrollment,
    is_active,
    load_enrollment,
    snapshot,
    to_response,
    validate_placement,
)
from .schemas import EnrollmentResponse

logger = get_logger(__name__)


async def enroll(
    db: AsyncSession,
    student_id: UUID,
    academic_year_id: UUID,
    class_id: UUID,
    section_id: UUID,
    roll_number: Optional[str],
    actor_id: Optional[UUID],
    *,
    school_id: Optional[UUID] = None,
) -> EnrollmentResponse:
    roll_number = (roll_number or "").strip() or None

    async def work() -> EnrollmentResponse:
        if roll_number is not None and len(roll_number) > 20:
            raise ValidationError("roll_number must be at most 20 characters")
        ay = await reference_service.get_academic_year(db, academic_year_id)
        if school_id is not None and ay.school_id != school_id:
            raise NotFoundError("Academic year not found")
        student = await reference_service.get_student(db, student_id)
        if student.school_id != ay.school_id:
            raise ValidationError("Student does not belong to the academic year's school")
        await validate_placement(db, ay, class_id, section_id)
        enrollment = await create_enrollment_row(
            db,
            student_id=student_id,
            academic_year=ay,
            class_id=class_id,
            section_id=section_id,
            roll_number=roll_number,
        )
        await audit_service.emit(
            db,
            action="ENROLL",
            table_name=TABLE,
            record_id=enrollment.id,
            actor_id=actor_id,
            school_id=ay.school_id,
            new_value=snapshot(enrollment),
        )
        return to_response(enrollment)

    result = await run_transaction(
        db,
        work,
        action="ENROLL",
        table_name=TABLE,
        actor_id=actor_id,
        school_id=school_id,
        record_id=student_id,
        conflict_code="DuplicateActiveEnrollment",
    )
    logger.info("student_enrolled", enrollment_id=str(result.id), student_id=str(student_id), academic_year_id=str(academic_year_id))
    return result


async def transfer(
    db: AsyncSession,
    enrollment_id: UUID,
    target_section_id: UUID,
    actor_id: UUID,
    *,
    target_academic_year_id: Optional[UUID] = None,
    school_id: Optional[UUID] = None,
) -> EnrollmentResponse:
    """Move an Active enrollment to another section (and that section's class) within its year.

    A different target year is a promotion and is handed to the promotion engine, which
    creates the target-year enrollment in the target section.
    """
    if target_academic_year_id is not None:
        try:
            current = await load_enrollment(db, enrollment_id, school_id=school_id)
            section = await reference_service.get_section(db, target_section_id)
        except ServiceError as exc:
            await db.rollback()
            await audit_service.emit_failure(
                db,
                action="TRANSFER_SECTION",
                table_name=TABLE,
                record_id=enrollment_id,
                actor_id=actor_id,
                school_id=school_id,
                error=exc,
            )
            raise
        if current.academic_year_id != target_academic_year_id:
            promoted = await promotion_service.promote(
                db,
                enrollment_id,
                target_academic_year_id,
                section.class_id,
                PromotionDecision.PROMOTED,
                actor_id,
                section_id=target_section_id,
                school_id=school_id,
            )
            return promoted.target_enrollment

    async def work() -> EnrollmentResponse:
        enrollment = await load_enrollment(db, enrollment_id, for_update=True, school_id=school_id)
        if not is_active(enrollment):
            raise StateError(
                f"Cannot transfer an enrollment with status {enrollment.status}",
                "InvalidTransition",
            )
        if enrollment.section_id == target_section_id:
            raise ValidationError("Enrollment is already in the target section")
        ay = await reference_service.get_academic_year(db, enrollment.academic_year_id)
        section = await reference_service.get_section(db, target_section_id)
        await validate_placement(db, ay, section.class_id, section.id)
        before = snapshot(enrollment)
        enrollment.class_id = section.class_id
        enrollment.section_id = section.id
        await db.flush()
        await audit_service.emit(
            db,
            action="TRANSFER_SECTION",
            table_name=TABLE,
            record_id=enrollment.id,
            actor_id=actor_id,
            school_id=ay.school_id,
            old_value=before,
            new_value=snapshot(enrollment),
        )
        return to_response(enrollment)

    result = await run_transaction(
        db,
        work,
        action="TRANSFER_SECTION",
        table_name=TABLE,
        actor_id=actor_id,
        school_id=school_id,
        record_id=enrollment_id,
    )
    logger.info("enrollment_section_changed", enrollment_id=str(enrollment_id), section_id=str(target_section_id))
    return result


async def terminate(
    db: AsyncSession,
    enrollment_id: UUID,
    reason: TerminationReason,
    actor_id: UUID,
    *,
    school_id: Optional[UUID] = None,
) -> EnrollmentResponse:
    """Active -> Transferred (transferred_at) or Active -> Left (deleted_at tombstone)."""

    async def work() -> EnrollmentResponse:
        enrollment = await load_enrollment(db, enrollment_id, for_update=True, school_id=school_id)
        if not is_active(enrollment):
            raise StateError(
                f"Cannot terminate an enrollment with status {enrollment.status}",
                "InvalidTransition",
            )
        before = snapshot(enrollment)
        now = utcnow()
        if reason == TerminationReason.TRANSFERRED:
            enrollment.status = EnrollmentStatus.TRANSFERRED.value
            enrollment.transferred_at = now
        else:
            enrollment.status = EnrollmentStatus.LEFT.value
            enrollment.deleted_at = now
        await db.flush()
        ay = await reference_service.get_academic_year(db, enrollment.academic_year_id)
        await audit_service.emit(
            db,
            action="TERMINATE",
            table_name=TABLE,
            record_id=enrollment.id,
            actor_id=actor_id,
            school_id=ay.school_id,
            old_value=before,
            new_value=snapshot(enrollment),
        )
        return to_response(enrollment)

    result = await run_transaction(
        db,
        work,
        action="TERMINATE",
        table_name=TABLE,
        actor_id=actor_id,
        school_id=school_id,
        record_id=enrollment_id,
    )
    logger.info("enrollment_terminated", enrollment_id=str(enrollment_id), reason=reason.value)
    return result


async def get_enrollment(
    db: AsyncSession,
    enrollment_id: UUID,
    school_id: Optional[UUID] = None,
) -> EnrollmentResponse:
    return to_response(await load_enrollment(db, enrollment_id, school_id=school_id))


async def get_active_enrollment(
    db: AsyncSession,
    student_id: UUID,
    academic_year_id: UUID,
) -> Optional[EnrollmentResponse]:
    enrollment = await find_active_enrollment(db, student_id, academic_year_id)
    return to_response(enrollment) if enrollment else None


async def list_student_enrollments(
    db: AsyncSession,
    student_id: UUID,
    school_id: Optional[UUID] = None,
) -> List[EnrollmentResponse]:
    """Full history, terminated rows included, oldest first."""
    stmt = (
        select(StudentEnrollment)
        .join(AcademicYear, StudentEnrollment.academic_year_id == AcademicYear.id)
        .where(StudentEnrollment.student_id == student_id)
    )
    if school_id is not None:
        stmt = stmt.where(AcademicYear.school_id == school_id)
    stmt = stmt.order_by(AcademicYear.start_date, StudentEnrollment.created_at)
    result = await db.execute(stmt)
    return [to_response(e) for e in result.scalars().all()]
