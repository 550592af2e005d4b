"""Reference store: read-only lookups over schools, years, classes, sections, fee heads and fee structures."""

from dataclasses import dataclass
from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.core.exceptions import NotFoundError
from school_ledger.core.models import (
    AcademicYear,
    FeeHead,
    FeeStructure,
    School,
    SchoolClass,
    Section,
    Student,
)


@dataclass(frozen=True)
class Scoped:
    """Restrict to one branch."""

    branch_id: UUID


@dataclass(frozen=True)
class Unscoped:
    """Applies to every branch of the school."""


BranchScope = Union[Scoped, Unscoped]


async def get_school(db: AsyncSession, school_id: UUID) -> School:
    school = await db.get(School, school_id)
    if not school or not school.is_active:
        raise NotFoundError("School not found")
    return school


async def get_student(db: AsyncSession, student_id: UUID) -> Student:
    student = await db.get(Student, student_id)
    if not student or student.deleted_at is not None:
        raise NotFoundError("Student not found")
    return student


async def get_academic_year(db: AsyncSession, academic_year_id: UUID) -> AcademicYear:
    ay = await db.get(AcademicYear, academic_year_id)
    if not ay:
        raise NotFoundError("Academic year not found")
    return ay


async def get_current_academic_year(db: AsyncSession, school_id: UUID) -> AcademicYear:
    """The single is_current year of a school."""
    result = await db.execute(
        select(AcademicYear).where(
            AcademicYear.school_id == school_id,
            AcademicYear.is_current.is_(True),
        )
    )
    ay = result.scalar_one_or_none()
    if not ay:
        raise NotFoundError("No current academic year for this school")
    return ay


async def get_preceding_academic_year(db: AsyncSession, academic_year_id: UUID) -> Optional[AcademicYear]:
    """Year of the same school immediately before the given one (latest start_date strictly earlier)."""
    ay = await get_academic_year(db, academic_year_id)
    result = await db.execute(
        select(AcademicYear)
        .where(
            AcademicYear.school_id == ay.school_id,
            AcademicYear.start_date < ay.start_date,
        )
        .order_by(AcademicYear.start_date.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_academic_years(db: AsyncSession, school_id: UUID) -> List[AcademicYear]:
    result = await db.execute(
        select(AcademicYear)
        .where(AcademicYear.school_id == school_id)
        .order_by(AcademicYear.start_date.desc())
    )
    return list(result.scalars().all())


async def get_class(db: AsyncSession, class_id: UUID) -> SchoolClass:
    cl = await db.get(SchoolClass, class_id)
    if not cl or cl.deleted_at is not None:
        raise NotFoundError("Class not found")
    return cl


async def list_classes(
    db: AsyncSession,
    school_id: UUID,
    scope: BranchScope = Unscoped(),
) -> List[SchoolClass]:
    stmt = select(SchoolClass).where(
        SchoolClass.school_id == school_id,
        SchoolClass.deleted_at.is_(None),
    )
    if isinstance(scope, Scoped):
        stmt = stmt.where(SchoolClass.branch_id == scope.branch_id)
    stmt = stmt.order_by(SchoolClass.sequence.nullslast(), SchoolClass.name)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_section(db: AsyncSession, section_id: UUID) -> Section:
    sec = await db.get(Section, section_id)
    if not sec or sec.deleted_at is not None:
        raise NotFoundError("Section not found")
    return sec


async def list_sections(db: AsyncSession, class_id: UUID, *, for_update: bool = False) -> List[Section]:
    stmt = (
        select(Section)
        .where(Section.class_id == class_id, Section.deleted_at.is_(None))
        .order_by(Section.name)
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_fee_head(db: AsyncSession, fee_head_id: UUID) -> FeeHead:
    fh = await db.get(FeeHead, fee_head_id)
    if not fh:
        raise NotFoundError("Fee head not found")
    return fh


async def list_fee_structures(
    db: AsyncSession,
    school_id: UUID,
    academic_year_id: UUID,
    class_id: UUID,
) -> List[FeeStructure]:
    result = await db.execute(
        select(FeeStructure)
        .join(FeeHead, FeeStructure.fee_head_id == FeeHead.id)
        .where(
            FeeStructure.school_id == school_id,
            FeeStructure.academic_year_id == academic_year_id,
            FeeStructure.class_id == class_id,
            FeeHead.is_active.is_(True),
        )
        .order_by(FeeHead.name)
    )
    return list(result.scalars().all())
