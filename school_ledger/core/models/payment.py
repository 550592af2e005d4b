"""Payments. Scoped to the student, not the enrollment, so history survives across years."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Numeric, String, Uuid

from school_ledger.core.enums import PaymentStatus
from school_ledger.db.session import Base, utcnow


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payment_student_status", "student_id", "status"),
        CheckConstraint(
            "status IN ('Success','Pending','Failed','Refunded')",
            name="chk_payment_status",
        ),
        CheckConstraint("amount > 0", name="chk_payment_amount"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid(as_uuid=True), ForeignKey("schools.id"), nullable=False, index=True)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("students.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    mode = Column(String(50), nullable=False)  # UPI, CARD, CASH, BANK
    reference_no = Column(String(100), nullable=True)
    transaction_id = Column(String(100), unique=True, nullable=True)  # gateway tracking id
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    paid_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    reversed_at = Column(DateTime(timezone=True), nullable=True)
    reversed_by = Column(Uuid(as_uuid=True), nullable=True)
