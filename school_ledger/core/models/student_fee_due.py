"""Student fee dues (invoices). amount is immutable; corrections go through payment_adjustments."""

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Numeric, String, Uuid, text

from school_ledger.db.session import Base, utcnow


class StudentFeeDue(Base):
    """
    One installment owed for a fee head. is_paid is a cache of outstanding <= 0;
    the authoritative balance is recomputed from allocations and adjustments.
    """

    __tablename__ = "student_fee_dues"
    __table_args__ = (
        Index(
            "uq_fee_due_enrollment_head_date",
            "enrollment_id",
            "fee_head_id",
            "due_date",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        CheckConstraint("amount >= 0", name="chk_fee_due_amount"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    enrollment_id = Column(Uuid(as_uuid=True), ForeignKey("student_enrollments.id"), nullable=False, index=True)
    fee_head_id = Column(Uuid(as_uuid=True), ForeignKey("fee_heads.id"), nullable=False)
    title = Column(String(200), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    due_date = Column(Date, nullable=False)
    is_paid = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
