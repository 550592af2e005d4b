"""
Enrollment row helpers shared by admission, promotion and due generation.
None of these commit; the caller owns the transaction.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.api.v1.reference import service as reference_service
from school_ledger.core.enums import EnrollmentStatus
from school_ledger.core.exceptions import ConflictError, NotFoundError, ValidationError
from school_ledger.core.models import AcademicYear, StudentEnrollment

from .schemas import EnrollmentResponse

TABLE = "student_enrollments"


def to_response(e: StudentEnrollment) -> EnrollmentResponse:
    return EnrollmentResponse(
        id=e.id,
        student_id=e.student_id,
        academic_year_id=e.academic_year_id,
        class_id=e.class_id,
        section_id=e.section_id,
        roll_number=e.roll_number,
        status=e.status,
        created_at=e.created_at,
        transferred_at=e.transferred_at,
        deleted_at=e.deleted_at,
    )


def snapshot(e: StudentEnrollment) -> dict:
    return {
        "student_id": e.student_id,
        "academic_year_id": e.academic_year_id,
        "class_id": e.class_id,
        "section_id": e.section_id,
        "roll_number": e.roll_number,
        "status": e.status,
    }


def is_active(e: StudentEnrollment) -> bool:
    return e.status == EnrollmentStatus.ACTIVE.value and e.deleted_at is None


async def load_enrollment(
    db: AsyncSession,
    enrollment_id: UUID,
    *,
    for_update: bool = False,
    school_id: Optional[UUID] = None,
) -> StudentEnrollment:
    """Load including terminated rows so callers can report the state, not a missing row."""
    stmt = select(StudentEnrollment).where(StudentEnrollment.id == enrollment_id)
    if school_id is not None:
        stmt = stmt.join(AcademicYear, StudentEnrollment.academic_year_id == AcademicYear.id).where(
            AcademicYear.school_id == school_id
        )
    if for_update:
        stmt = stmt.with_for_update(of=StudentEnrollment)
    enrollment = (await db.execute(stmt)).scalar_one_or_none()
    if not enrollment:
        raise NotFoundError("Enrollment not found")
    return enrollment


async def find_active_enrollment(
    db: AsyncSession,
    student_id: UUID,
    academic_year_id: UUID,
) -> Optional[StudentEnrollment]:
    result = await db.execute(
        select(StudentEnrollment).where(
            StudentEnrollment.student_id == student_id,
            StudentEnrollment.academic_year_id == academic_year_id,
            StudentEnrollment.status == EnrollmentStatus.ACTIVE.value,
            StudentEnrollment.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def validate_placement(
    db: AsyncSession,
    academic_year: AcademicYear,
    class_id: UUID,
    section_id: UUID,
) -> None:
    """Section must belong to the class, and the class to the year's school."""
    school_class = await reference_service.get_class(db, class_id)
    if school_class.school_id != academic_year.school_id:
        raise ValidationError("Class does not belong to the academic year's school")
    section = await reference_service.get_section(db, section_id)
    if section.class_id != school_class.id:
        raise ValidationError("Section does not belong to the selected class")


async def create_enrollment_row(
    db: AsyncSession,
    *,
    student_id: UUID,
    academic_year: AcademicYear,
    class_id: UUID,
    section_id: UUID,
    roll_number: Optional[str],
) -> StudentEnrollment:
    """Insert an Active enrollment. Shared by admission and promotion."""
    if await find_active_enrollment(db, student_id, academic_year.id):
        raise ConflictError(
            "Student already has an active enrollment for this academic year",
            "DuplicateActiveEnrollment",
        )
    enrollment = StudentEnrollment(
        student_id=student_id,
        academic_year_id=academic_year.id,
        class_id=class_id,
        section_id=section_id,
        roll_number=roll_number,
        status=EnrollmentStatus.ACTIVE.value,
    )
    db.add(enrollment)
    await db.flush()
    return enrollment
