import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret"

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from typing import AsyncGenerator
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from school_ledger.api.v1.enrollments import service as enrollment_service
from school_ledger.api.v1.payments import service as payment_service
from school_ledger.auth.dependencies import get_current_user
from school_ledger.auth.schemas import CurrentUser
from school_ledger.core.enums import FeeFrequency, GatewayStatus
from school_ledger.core.models import (
    AcademicYear,
    Branch,
    FeeHead,
    FeeStructure,
    School,
    SchoolClass,
    Section,
    Student,
)
from school_ledger.db.session import Base, get_db
from school_ledger.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture()
async def engine():
    """One in-memory database per test; StaticPool keeps it on a single connection."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session() as session:
        yield session


def _add_student(db: AsyncSession, school_id, admission_no: str) -> Student:
    student = Student(
        school_id=school_id,
        admission_no=admission_no,
        full_name=f"Student {admission_no}",
        joining_date=date(2024, 4, 1),
    )
    db.add(student)
    return student


@pytest.fixture()
async def world(db_session: AsyncSession) -> SimpleNamespace:
    """
    School with two consecutive years (2024-25 current, 2025-26), Class 5 and Class 6,
    three students and a Tuition fee of 1200 billed monthly for Class 5 in 2024-25.

    Returns ids only; ORM instances are expired whenever a service rolls back.
    """
    db = db_session
    school = School(name="Green Valley School", code="GVS")
    db.add(school)
    await db.flush()

    branch = Branch(school_id=school.id, name="Main", code="MAIN")
    y2024 = AcademicYear(
        school_id=school.id,
        name="2024-2025",
        start_date=date(2024, 4, 1),
        end_date=date(2025, 3, 31),
        is_current=True,
    )
    y2025 = AcademicYear(
        school_id=school.id,
        name="2025-2026",
        start_date=date(2025, 4, 1),
        end_date=date(2026, 3, 31),
    )
    db.add_all([branch, y2024, y2025])
    await db.flush()

    class5 = SchoolClass(school_id=school.id, branch_id=branch.id, name="Class 5", sequence=5)
    class6 = SchoolClass(school_id=school.id, branch_id=branch.id, name="Class 6", sequence=6)
    db.add_all([class5, class6])
    await db.flush()

    c5_a = Section(class_id=class5.id, name="A", max_capacity=2)
    c5_b = Section(class_id=class5.id, name="B")
    c6_a = Section(class_id=class6.id, name="A", max_capacity=30)
    c6_b = Section(class_id=class6.id, name="B", max_capacity=30)
    students = [_add_student(db, school.id, f"ADM-{n:03d}") for n in (1, 2, 3)]
    tuition = FeeHead(school_id=school.id, name="Tuition")
    db.add_all([c5_a, c5_b, c6_a, c6_b, tuition])
    await db.flush()

    db.add(
        FeeStructure(
            school_id=school.id,
            academic_year_id=y2024.id,
            class_id=class5.id,
            fee_head_id=tuition.id,
            amount=Decimal("1200.00"),
            frequency=FeeFrequency.MONTHLY.value,
        )
    )
    await db.commit()

    return SimpleNamespace(
        school_id=school.id,
        branch_id=branch.id,
        y2024=y2024.id,
        y2025=y2025.id,
        class5=class5.id,
        class6=class6.id,
        c5_a=c5_a.id,
        c5_b=c5_b.id,
        c6_a=c6_a.id,
        c6_b=c6_b.id,
        student=students[0].id,
        student2=students[1].id,
        student3=students[2].id,
        tuition=tuition.id,
        admin=uuid4(),
    )


@pytest.fixture()
async def enrollment(db_session: AsyncSession, world: SimpleNamespace):
    """world.student enrolled in Class 5 / A for 2024-25."""
    return await enrollment_service.enroll(
        db_session,
        world.student,
        world.y2024,
        world.class5,
        world.c5_a,
        "12",
        world.admin,
    )


@pytest.fixture()
def make_paid_payment(db_session: AsyncSession, world: SimpleNamespace):
    """Factory: record a payment for a student and confirm it through the gateway callback."""

    async def _make(amount, student_id=None, transaction_id=None):
        txn = transaction_id or f"TXN-{uuid4().hex[:12]}"
        payment = await payment_service.record_payment(
            db_session,
            world.school_id,
            student_id or world.student,
            Decimal(str(amount)),
            "UPI",
            None,
            txn,
            world.admin,
        )
        await payment_service.apply_gateway_callback(db_session, txn, GatewayStatus.SUCCESS)
        return payment.id

    return _make


@pytest.fixture()
def admin_user(world: SimpleNamespace) -> CurrentUser:
    return CurrentUser(id=world.admin, school_id=world.school_id, role="SUPER_ADMIN")


@pytest.fixture()
async def raw_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Client with the database overridden but real token decoding."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
async def client(raw_client: AsyncClient, admin_user: CurrentUser) -> AsyncClient:
    """Client acting as a school super admin."""
    app.dependency_overrides[get_current_user] = lambda: admin_user
    return raw_client
