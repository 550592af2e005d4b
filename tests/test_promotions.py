from datetime import date
from types import SimpleNamespace
from typing import Optional

import pytest
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.api.v1.enrollments import service as enrollment_service
from school_ledger.api.v1.promotions import service
from school_ledger.api.v1.promotions.schemas import PromotionRequest
from school_ledger.core.enums import EnrollmentStatus, PromotionDecision, TerminationReason
from school_ledger.core.exceptions import ConflictError, StateError, ValidationError
from school_ledger.core.models import (
    AcademicYear,
    AuditLog,
    SchoolClass,
    Section,
    StudentEnrollment,
    StudentProgression,
)


async def _count(db: AsyncSession, model, *criteria) -> int:
    stmt = select(func.count()).select_from(model)
    if criteria:
        stmt = stmt.where(*criteria)
    return (await db.execute(stmt)).scalar()


async def test_promote_creates_next_year_enrollment(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    result = await service.promote(
        db_session, enrollment.id, world.y2025, world.class6, PromotionDecision.PROMOTED, world.admin
    )

    target = result.target_enrollment
    assert target is not None
    assert target.status == EnrollmentStatus.ACTIVE
    assert target.academic_year_id == world.y2025
    assert target.class_id == world.class6
    assert target.section_id == world.c6_a  # first section with room
    assert target.roll_number == enrollment.roll_number

    p = result.progression
    assert p.from_class_id == world.class5
    assert p.to_class_id == world.class6
    assert p.promotion_status == PromotionDecision.PROMOTED
    assert p.target_enrollment_id == target.id
    assert p.promotion_date == date.today()

    source = await enrollment_service.get_enrollment(db_session, enrollment.id)
    assert source.status == EnrollmentStatus.ACTIVE
    assert source.academic_year_id == world.y2024


async def test_promote_twice_is_rejected(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    await service.promote(db_session, enrollment.id, world.y2025, world.class6, PromotionDecision.PROMOTED, world.admin)

    with pytest.raises(ConflictError) as exc:
        await service.promote(
            db_session, enrollment.id, world.y2025, world.class6, PromotionDecision.PROMOTED, world.admin
        )

    assert exc.value.code == "AlreadyProgressed"
    assert await _count(db_session, StudentProgression, StudentProgression.enrollment_id == enrollment.id) == 1
    assert (
        await _count(
            db_session,
            StudentEnrollment,
            StudentEnrollment.student_id == world.student,
            StudentEnrollment.academic_year_id == world.y2025,
        )
        == 1
    )


async def test_detained_repeats_class(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    result = await service.promote(
        db_session, enrollment.id, world.y2025, None, PromotionDecision.DETAINED, world.admin, remarks=" Low attendance "
    )

    assert result.target_enrollment.class_id == world.class5
    assert result.progression.from_class_id == result.progression.to_class_id == world.class5
    assert result.progression.remarks == "Low attendance"


async def test_detained_into_other_class_is_rejected(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    with pytest.raises(ValidationError):
        await service.promote(
            db_session, enrollment.id, world.y2025, world.class6, PromotionDecision.DETAINED, world.admin
        )


async def test_withdrawn_records_progression_only(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    result = await service.promote(
        db_session, enrollment.id, world.y2025, None, PromotionDecision.WITHDRAWN, world.admin
    )

    assert result.target_enrollment is None
    assert result.progression.target_enrollment_id is None
    assert result.progression.promotion_status == PromotionDecision.WITHDRAWN
    assert await enrollment_service.get_active_enrollment(db_session, world.student, world.y2025) is None


async def test_promoted_requires_target_class(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    with pytest.raises(ValidationError):
        await service.promote(db_session, enrollment.id, world.y2025, None, PromotionDecision.PROMOTED, world.admin)

    failed = (
        await db_session.execute(select(AuditLog).where(AuditLog.action == "PROMOTE", AuditLog.outcome == "FAILED"))
    ).scalar_one()
    assert failed.details["code"] == "InvalidInput"
    assert await _count(db_session, StudentProgression, StudentProgression.enrollment_id == enrollment.id) == 0


async def test_promote_inactive_enrollment_not_eligible(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    await enrollment_service.terminate(db_session, enrollment.id, TerminationReason.LEFT, world.admin)

    with pytest.raises(StateError) as exc:
        await service.promote(
            db_session, enrollment.id, world.y2025, world.class6, PromotionDecision.PROMOTED, world.admin
        )
    assert exc.value.code == "NotEligible"


async def test_promote_skipping_a_year_not_eligible(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    y2026 = AcademicYear(
        school_id=world.school_id,
        name="2026-2027",
        start_date=date(2026, 4, 1),
        end_date=date(2027, 3, 31),
    )
    db_session.add(y2026)
    await db_session.commit()
    y2026_id = y2026.id

    with pytest.raises(StateError) as exc:
        await service.promote(
            db_session, enrollment.id, y2026_id, world.class6, PromotionDecision.PROMOTED, world.admin
        )
    assert exc.value.code == "NotEligible"


async def test_promote_into_same_year_not_eligible(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    with pytest.raises(StateError):
        await service.promote(
            db_session, enrollment.id, world.y2024, world.class6, PromotionDecision.PROMOTED, world.admin
        )


async def test_student_already_active_in_target_year(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    await enrollment_service.enroll(db_session, world.student, world.y2025, world.class6, world.c6_a, None, world.admin)

    with pytest.raises(ConflictError) as exc:
        await service.promote(
            db_session, enrollment.id, world.y2025, world.class6, PromotionDecision.PROMOTED, world.admin
        )
    assert exc.value.code == "DuplicateActiveEnrollment"
    assert await _count(db_session, StudentProgression) == 0


class VetoEverything:
    async def check(self, db, enrollment, decision) -> Optional[str]:
        return "Result withheld"


async def test_eligibility_veto(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    with pytest.raises(StateError) as exc:
        await service.promote(
            db_session,
            enrollment.id,
            world.y2025,
            world.class6,
            PromotionDecision.PROMOTED,
            world.admin,
            eligibility_checker=VetoEverything(),
        )

    assert exc.value.code == "NotEligible"
    assert exc.value.message == "Result withheld"
    failed = (
        await db_session.execute(select(AuditLog).where(AuditLog.action == "PROMOTE", AuditLog.outcome == "FAILED"))
    ).scalar_one()
    assert failed.record_id == str(enrollment.id)


async def test_capacity_assigner_skips_full_sections(db_session: AsyncSession, world: SimpleNamespace) -> None:
    # Class 5 / A holds two; the third detained student lands in B
    enrollments = []
    for student_id in (world.student, world.student2, world.student3):
        enrollments.append(
            await enrollment_service.enroll(
                db_session, student_id, world.y2024, world.class5, world.c5_b, None, world.admin
            )
        )

    sections = []
    for e in enrollments:
        result = await service.promote(db_session, e.id, world.y2025, None, PromotionDecision.DETAINED, world.admin)
        sections.append(result.target_enrollment.section_id)

    assert sections == [world.c5_a, world.c5_a, world.c5_b]


async def test_full_section_falls_through_to_uncapped(db_session: AsyncSession, world: SimpleNamespace) -> None:
    assigner = service.CapacitySectionAssigner()
    for student_id in (world.student, world.student2):
        await enrollment_service.enroll(db_session, student_id, world.y2025, world.class5, world.c5_a, None, world.admin)

    assert await assigner.assign_section(
        db_session, student_id=world.student3, academic_year_id=world.y2025, class_id=world.class5
    ) == world.c5_b


async def test_capacity_assigner_locks_section_rows(db_session: AsyncSession, world: SimpleNamespace, monkeypatch) -> None:
    statements = []
    execute = db_session.execute

    async def recording_execute(statement, *args, **kwargs):
        statements.append(statement)
        return await execute(statement, *args, **kwargs)

    monkeypatch.setattr(db_session, "execute", recording_execute)
    await service.CapacitySectionAssigner().assign_section(
        db_session, student_id=world.student, academic_year_id=world.y2025, class_id=world.class5
    )

    sql = [str(s.compile(dialect=postgresql.dialect())) for s in statements]
    assert "FROM sections" in sql[0]
    assert sql[0].endswith("FOR UPDATE")


async def test_no_section_capacity(db_session: AsyncSession, world: SimpleNamespace) -> None:
    class7 = SchoolClass(school_id=world.school_id, branch_id=world.branch_id, name="Class 7", sequence=7)
    db_session.add(class7)
    await db_session.flush()
    only_section = Section(class_id=class7.id, name="A", max_capacity=1)
    db_session.add(only_section)
    await db_session.commit()
    class7_id, section_id = class7.id, only_section.id
    await enrollment_service.enroll(
        db_session, world.student2, world.y2025, class7_id, section_id, None, world.admin
    )

    with pytest.raises(StateError) as exc:
        await service.CapacitySectionAssigner().assign_section(
            db_session, student_id=world.student, academic_year_id=world.y2025, class_id=class7_id
        )
    assert exc.value.code == "NotEligible"


async def test_explicit_section_must_match_class(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    with pytest.raises(ValidationError):
        await service.promote(
            db_session,
            enrollment.id,
            world.y2025,
            world.class6,
            PromotionDecision.PROMOTED,
            world.admin,
            section_id=world.c5_b,
        )


async def test_promote_batch_collects_failures(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    other = await enrollment_service.enroll(
        db_session, world.student2, world.y2024, world.class5, world.c5_a, None, world.admin
    )
    await service.promote(db_session, enrollment.id, world.y2025, world.class6, PromotionDecision.PROMOTED, world.admin)

    items = [
        PromotionRequest(
            enrollment_id=eid,
            to_academic_year_id=world.y2025,
            to_class_id=world.class6,
            decision=PromotionDecision.PROMOTED,
        )
        for eid in (enrollment.id, other.id)
    ]
    result = await service.promote_batch(db_session, items, world.admin)

    assert [p.progression.enrollment_id for p in result.promoted] == [other.id]
    assert len(result.failures) == 1
    assert result.failures[0].enrollment_id == enrollment.id
    assert result.failures[0].code == "AlreadyProgressed"
    assert await enrollment_service.get_active_enrollment(db_session, world.student2, world.y2025) is not None


def test_promotion_request_requires_class_for_promoted() -> None:
    with pytest.raises(ValueError):
        PromotionRequest(
            enrollment_id="00000000-0000-0000-0000-000000000001",
            to_academic_year_id="00000000-0000-0000-0000-000000000002",
            decision=PromotionDecision.PROMOTED,
        )
