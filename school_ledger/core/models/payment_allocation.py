"""Payment -> due mapping. Append-only; reversals are recorded as Refund adjustments."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, Uuid

from school_ledger.db.session import Base, utcnow


class PaymentAllocation(Base):
    __tablename__ = "payment_allocations"
    __table_args__ = (
        CheckConstraint("amount_allocated > 0", name="chk_allocation_amount"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_id = Column(Uuid(as_uuid=True), ForeignKey("payments.id"), nullable=False, index=True)
    due_id = Column(Uuid(as_uuid=True), ForeignKey("student_fee_dues.id"), nullable=False, index=True)
    amount_allocated = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
