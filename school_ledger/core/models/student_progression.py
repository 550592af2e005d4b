"""Student progression: append-only record of one year-end transition (Class 5 -> Class 6)."""

import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, String, UniqueConstraint, Uuid

from school_ledger.db.session import Base, utcnow


class StudentProgression(Base):
    __tablename__ = "student_progressions"
    __table_args__ = (
        UniqueConstraint("enrollment_id", "to_academic_year_id", name="uq_progression_enrollment_to_year"),
        CheckConstraint(
            "promotion_status IN ('Promoted','Detained','Withdrawn')",
            name="chk_progression_status",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    enrollment_id = Column(Uuid(as_uuid=True), ForeignKey("student_enrollments.id"), nullable=False, index=True)
    from_academic_year_id = Column(Uuid(as_uuid=True), ForeignKey("academic_years.id"), nullable=False, index=True)
    to_academic_year_id = Column(Uuid(as_uuid=True), ForeignKey("academic_years.id"), nullable=False)
    from_class_id = Column(Uuid(as_uuid=True), ForeignKey("classes.id"), nullable=False)
    to_class_id = Column(Uuid(as_uuid=True), ForeignKey("classes.id"), nullable=False)
    promotion_status = Column(String(20), nullable=False)
    promotion_date = Column(Date, nullable=False)
    remarks = Column(String(500), nullable=True)
    promoted_by = Column(Uuid(as_uuid=True), nullable=False)
    # forward pointer to the enrollment created by this transition; NULL for Withdrawn
    target_enrollment_id = Column(Uuid(as_uuid=True), ForeignKey("student_enrollments.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
