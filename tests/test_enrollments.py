from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.api.v1.enrollments import service
from school_ledger.api.v1.promotions import service as promotion_service
from school_ledger.core.enums import EnrollmentStatus, TerminationReason
from school_ledger.core.exceptions import ConflictError, NotFoundError, StateError, ValidationError
from school_ledger.core.models import AuditLog, StudentEnrollment


async def _active_count(db: AsyncSession, student_id, year_id) -> int:
    result = await db.execute(
        select(func.count(StudentEnrollment.id)).where(
            StudentEnrollment.student_id == student_id,
            StudentEnrollment.academic_year_id == year_id,
            StudentEnrollment.status == EnrollmentStatus.ACTIVE.value,
            StudentEnrollment.deleted_at.is_(None),
        )
    )
    return result.scalar()


async def test_enroll_creates_active_enrollment(db_session: AsyncSession, world: SimpleNamespace) -> None:
    e = await service.enroll(db_session, world.student, world.y2024, world.class5, world.c5_a, " 7 ", world.admin)

    assert e.status == EnrollmentStatus.ACTIVE
    assert e.class_id == world.class5
    assert e.section_id == world.c5_a
    assert e.roll_number == "7"
    assert e.deleted_at is None

    audit = (
        await db_session.execute(select(AuditLog).where(AuditLog.record_id == str(e.id)))
    ).scalar_one()
    assert audit.action == "ENROLL"
    assert audit.outcome == "SUCCESS"
    assert audit.actor_id == world.admin


async def test_enroll_twice_same_year_is_rejected(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    with pytest.raises(ConflictError) as exc:
        await service.enroll(db_session, world.student, world.y2024, world.class5, world.c5_b, None, world.admin)

    assert exc.value.code == "DuplicateActiveEnrollment"
    assert await _active_count(db_session, world.student, world.y2024) == 1

    failed = (
        await db_session.execute(select(AuditLog).where(AuditLog.outcome == "FAILED"))
    ).scalar_one()
    assert failed.action == "ENROLL"
    assert failed.details["code"] == "DuplicateActiveEnrollment"


async def test_enroll_rejects_section_of_another_class(db_session: AsyncSession, world: SimpleNamespace) -> None:
    with pytest.raises(ValidationError):
        await service.enroll(db_session, world.student, world.y2024, world.class5, world.c6_a, None, world.admin)


async def test_enroll_rejects_long_roll_number(db_session: AsyncSession, world: SimpleNamespace) -> None:
    with pytest.raises(ValidationError):
        await service.enroll(db_session, world.student, world.y2024, world.class5, world.c5_a, "R" * 21, world.admin)

    assert await _active_count(db_session, world.student, world.y2024) == 0
    failed = (
        await db_session.execute(select(AuditLog).where(AuditLog.outcome == "FAILED"))
    ).scalar_one()
    assert failed.action == "ENROLL"
    assert failed.details == {"code": "InvalidInput", "message": "roll_number must be at most 20 characters"}


async def test_enroll_unknown_year(db_session: AsyncSession, world: SimpleNamespace) -> None:
    with pytest.raises(NotFoundError):
        await service.enroll(db_session, world.student, uuid4(), world.class5, world.c5_a, None, world.admin)


async def test_enroll_outside_caller_school(db_session: AsyncSession, world: SimpleNamespace) -> None:
    with pytest.raises(NotFoundError):
        await service.enroll(
            db_session, world.student, world.y2024, world.class5, world.c5_a, None, world.admin, school_id=uuid4()
        )


async def test_transfer_within_year_moves_section(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    moved = await service.transfer(db_session, enrollment.id, world.c5_b, world.admin)

    assert moved.id == enrollment.id
    assert moved.section_id == world.c5_b
    assert moved.class_id == world.class5
    assert moved.status == EnrollmentStatus.ACTIVE


async def test_transfer_to_other_class_same_year(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    moved = await service.transfer(db_session, enrollment.id, world.c6_b, world.admin)

    assert moved.class_id == world.class6
    assert moved.section_id == world.c6_b


async def test_transfer_to_current_section_is_rejected(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    with pytest.raises(ValidationError):
        await service.transfer(db_session, enrollment.id, world.c5_a, world.admin)


async def test_transfer_terminated_enrollment(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    await service.terminate(db_session, enrollment.id, TerminationReason.TRANSFERRED, world.admin)

    with pytest.raises(StateError) as exc:
        await service.transfer(db_session, enrollment.id, world.c5_b, world.admin)
    assert exc.value.code == "InvalidTransition"


async def test_transfer_across_years_promotes(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    target = await service.transfer(
        db_session, enrollment.id, world.c6_b, world.admin, target_academic_year_id=world.y2025
    )

    assert target.id != enrollment.id
    assert target.academic_year_id == world.y2025
    assert target.class_id == world.class6
    assert target.section_id == world.c6_b
    assert target.roll_number == "12"

    progressions = await promotion_service.list_progressions(db_session, enrollment.id)
    assert len(progressions) == 1
    assert progressions[0].target_enrollment_id == target.id

    source = await service.get_enrollment(db_session, enrollment.id)
    assert source.status == EnrollmentStatus.ACTIVE
    assert source.section_id == world.c5_a


async def test_terminate_left_soft_deletes(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    left = await service.terminate(db_session, enrollment.id, TerminationReason.LEFT, world.admin)

    assert left.status == EnrollmentStatus.LEFT
    assert left.deleted_at is not None
    assert await service.get_active_enrollment(db_session, world.student, world.y2024) is None

    history = await service.list_student_enrollments(db_session, world.student)
    assert [h.id for h in history] == [enrollment.id]


async def test_terminate_transferred_keeps_row(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    out = await service.terminate(db_session, enrollment.id, TerminationReason.TRANSFERRED, world.admin)

    assert out.status == EnrollmentStatus.TRANSFERRED
    assert out.transferred_at is not None
    assert out.deleted_at is None

    with pytest.raises(StateError) as exc:
        await service.terminate(db_session, enrollment.id, TerminationReason.LEFT, world.admin)
    assert exc.value.code == "InvalidTransition"


async def test_reenroll_after_leaving(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    await service.terminate(db_session, enrollment.id, TerminationReason.LEFT, world.admin)

    again = await service.enroll(db_session, world.student, world.y2024, world.class5, world.c5_b, None, world.admin)

    assert again.id != enrollment.id
    assert await _active_count(db_session, world.student, world.y2024) == 1
    history = await service.list_student_enrollments(db_session, world.student)
    assert {h.id for h in history} == {enrollment.id, again.id}


async def test_get_enrollment_unknown(db_session: AsyncSession, world: SimpleNamespace) -> None:
    with pytest.raises(NotFoundError):
        await service.get_enrollment(db_session, uuid4())
