"""Payment adjustments: append-only correction ledger. Never mutates payments or dues."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, Uuid

from school_ledger.db.session import Base, utcnow


class PaymentAdjustment(Base):
    """
    AdjustmentUp / AdjustmentDown target a due. A manual Refund targets a payment.
    Refunds written by a payment reversal carry both ids: one row per reversed allocation.
    """

    __tablename__ = "payment_adjustments"
    __table_args__ = (
        CheckConstraint(
            "adjustment_type IN ('Refund','AdjustmentUp','AdjustmentDown')",
            name="chk_adjustment_type",
        ),
        CheckConstraint("adjustment_amount > 0", name="chk_adjustment_amount"),
        CheckConstraint("payment_id IS NOT NULL OR due_id IS NOT NULL", name="chk_adjustment_target"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_id = Column(Uuid(as_uuid=True), ForeignKey("payments.id"), nullable=True, index=True)
    due_id = Column(Uuid(as_uuid=True), ForeignKey("student_fee_dues.id"), nullable=True, index=True)
    adjustment_amount = Column(Numeric(12, 2), nullable=False)
    adjustment_type = Column(String(50), nullable=False)
    reason = Column(String(500), nullable=True)
    created_by = Column(Uuid(as_uuid=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
