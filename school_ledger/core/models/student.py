"""Student identity (static). Year-specific placement lives in student_enrollments."""

import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String, UniqueConstraint, Uuid

from school_ledger.db.session import Base


class Student(Base):
    __tablename__ = "students"
    __table_args__ = (
        UniqueConstraint("school_id", "admission_no", name="uq_student_school_admission_no"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid(as_uuid=True), ForeignKey("schools.id"), nullable=False, index=True)
    admission_no = Column(String(50), nullable=False)
    full_name = Column(String(200), nullable=True)
    joining_date = Column(Date, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
