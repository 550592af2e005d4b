"""Fee heads: Tuition, Bus, Uniform ..."""

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, String, Uuid

from school_ledger.core.enums import FeeHeadType
from school_ledger.db.session import Base


class FeeHead(Base):
    __tablename__ = "fee_heads"
    __table_args__ = (
        CheckConstraint("type IN ('Standard','Optional')", name="chk_fee_head_type"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid(as_uuid=True), ForeignKey("schools.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False, default=FeeHeadType.STANDARD.value)
    is_active = Column(Boolean, nullable=False, default=True)
