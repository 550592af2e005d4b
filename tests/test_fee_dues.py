from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.api.v1.enrollments import service as enrollment_service
from school_ledger.api.v1.fee_dues import service
from school_ledger.core.enums import FeeFrequency, TerminationReason
from school_ledger.core.exceptions import NotFoundError, StateError


def _year(start: date, end: date, name: str = "2024-2025") -> SimpleNamespace:
    return SimpleNamespace(start_date=start, end_date=end, name=name)


def _structure(amount: str, frequency: FeeFrequency) -> SimpleNamespace:
    return SimpleNamespace(amount=Decimal(amount), frequency=frequency.value)


HEAD = SimpleNamespace(name="Tuition")


def test_split_amount_puts_remainder_on_last() -> None:
    assert service.split_amount(Decimal("1000"), 3) == [Decimal("333.33"), Decimal("333.33"), Decimal("333.34")]
    assert service.split_amount(Decimal("1200"), 12) == [Decimal("100.00")] * 12
    assert sum(service.split_amount(Decimal("100.01"), 4)) == Decimal("100.01")


def test_months_spanned() -> None:
    assert service.months_spanned(date(2024, 4, 1), date(2025, 3, 31)) == 12
    assert service.months_spanned(date(2024, 6, 15), date(2024, 8, 1)) == 3


def test_expand_monthly() -> None:
    year = _year(date(2024, 4, 1), date(2025, 3, 31))
    items = service.expand_fee_structure(_structure("1200", FeeFrequency.MONTHLY), HEAD, year)

    assert len(items) == 12
    assert items[0].due_date == date(2024, 4, 1)
    assert items[0].title == "Tuition - Apr 2024"
    assert items[-1].due_date == date(2025, 3, 1)
    assert items[-1].title == "Tuition - Mar 2025"
    assert {i.amount for i in items} == {Decimal("100.00")}


def test_expand_monthly_clamps_month_end() -> None:
    year = _year(date(2024, 1, 31), date(2024, 3, 31))
    items = service.expand_fee_structure(_structure("300", FeeFrequency.MONTHLY), HEAD, year)

    assert [i.due_date for i in items] == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)]


def test_expand_quarterly() -> None:
    year = _year(date(2024, 4, 1), date(2025, 3, 31))
    items = service.expand_fee_structure(_structure("1000", FeeFrequency.QUARTERLY), HEAD, year)

    assert [i.due_date for i in items] == [date(2024, 4, 1), date(2024, 7, 1), date(2024, 10, 1), date(2025, 1, 1)]
    assert [i.title for i in items] == ["Tuition - Q1", "Tuition - Q2", "Tuition - Q3", "Tuition - Q4"]
    assert items[-1].amount == Decimal("250.00")


def test_expand_annual() -> None:
    year = _year(date(2024, 4, 1), date(2025, 3, 31))
    items = service.expand_fee_structure(_structure("5000", FeeFrequency.ANNUALLY), HEAD, year)

    assert len(items) == 1
    assert items[0].title == "Tuition - 2024-2025"
    assert items[0].amount == Decimal("5000.00")
    assert items[0].due_date == date(2024, 4, 1)


async def test_generate_monthly_dues(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    result = await service.generate_dues(db_session, enrollment.id, world.admin)

    assert len(result.created) == 12
    assert result.skipped_existing == 0
    assert all(d.amount == Decimal("100.00") for d in result.created)
    assert all(d.outstanding == Decimal("100.00") for d in result.created)
    assert result.created[0].due_date == date(2024, 4, 1)
    assert result.created[0].fee_head_id == world.tuition
    assert not any(d.is_paid for d in result.created)


async def test_generate_dues_is_idempotent(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    await service.generate_dues(db_session, enrollment.id, world.admin)
    again = await service.generate_dues(db_session, enrollment.id, world.admin)

    assert again.created == []
    assert again.skipped_existing == 12
    assert len(await service.list_dues(db_session, enrollment.id)) == 12


async def test_generate_without_fee_structure(db_session: AsyncSession, world: SimpleNamespace) -> None:
    e = await enrollment_service.enroll(db_session, world.student, world.y2024, world.class6, world.c6_a, None, world.admin)

    with pytest.raises(NotFoundError) as exc:
        await service.generate_dues(db_session, e.id, world.admin)
    assert exc.value.code == "NoFeeStructure"


async def test_generate_for_terminated_enrollment(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    await enrollment_service.terminate(db_session, enrollment.id, TerminationReason.TRANSFERRED, world.admin)

    with pytest.raises(StateError) as exc:
        await service.generate_dues(db_session, enrollment.id, world.admin)
    assert exc.value.code == "InvalidTransition"


async def test_list_dues_ordered_by_date(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    await service.generate_dues(db_session, enrollment.id, world.admin)

    dues = await service.list_dues(db_session, enrollment.id)
    dates = [d.due_date for d in dues]
    assert dates == sorted(dates)
    assert sum(d.outstanding for d in dues) == Decimal("1200.00")


async def test_due_balance_of_fresh_due(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    created = (await service.generate_dues(db_session, enrollment.id, world.admin)).created

    bal = await service.get_due_balance(db_session, created[0].id)
    assert bal.amount == Decimal("100.00")
    assert bal.allocated == Decimal("0.00")
    assert bal.outstanding == Decimal("100.00")
    assert bal.is_paid is False


async def test_due_balance_wrong_school(db_session: AsyncSession, world: SimpleNamespace, enrollment) -> None:
    created = (await service.generate_dues(db_session, enrollment.id, world.admin)).created

    with pytest.raises(NotFoundError):
        await service.get_due_balance(db_session, created[0].id, school_id=world.branch_id)
