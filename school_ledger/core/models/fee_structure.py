"""Fee structure: annual amount per fee head per class per academic year."""

import uuid

from sqlalchemy import CheckConstraint, Column, ForeignKey, Numeric, String, UniqueConstraint, Uuid

from school_ledger.core.enums import FeeFrequency
from school_ledger.db.session import Base


class FeeStructure(Base):
    """amount is the yearly total; frequency decides how many installments it is split into."""

    __tablename__ = "fee_structures"
    __table_args__ = (
        UniqueConstraint(
            "academic_year_id",
            "class_id",
            "fee_head_id",
            name="uq_fee_structure_year_class_head",
        ),
        CheckConstraint("frequency IN ('Monthly','Quarterly','Annually')", name="chk_fee_structure_frequency"),
        CheckConstraint("amount >= 0", name="chk_fee_structure_amount"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid(as_uuid=True), ForeignKey("schools.id"), nullable=False, index=True)
    academic_year_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("academic_years.id", ondelete="RESTRICT"),
        nullable=False,
    )
    class_id = Column(Uuid(as_uuid=True), ForeignKey("classes.id"), nullable=False)
    fee_head_id = Column(Uuid(as_uuid=True), ForeignKey("fee_heads.id", ondelete="RESTRICT"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    frequency = Column(String(20), nullable=False, default=FeeFrequency.MONTHLY.value)
