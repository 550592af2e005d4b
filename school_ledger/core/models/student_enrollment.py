import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, String, Uuid, text

from school_ledger.core.enums import EnrollmentStatus
from school_ledger.db.session import Base, utcnow


class StudentEnrollment(Base):
    """
    Student placement per academic year. At most one Active, non-deleted row per (student, academic_year);
    the partial unique index is the backstop for the application-level check.
    Terminated rows are kept as history; re-admission creates a new row.
    """

    __tablename__ = "student_enrollments"
    __table_args__ = (
        Index(
            "uq_student_enrollment_active",
            "student_id",
            "academic_year_id",
            unique=True,
            postgresql_where=text("status = 'Active' AND deleted_at IS NULL"),
            sqlite_where=text("status = 'Active' AND deleted_at IS NULL"),
        ),
        Index("ix_student_enrollment_student_year", "student_id", "academic_year_id"),
        CheckConstraint(
            "status IN ('Active','Transferred','Left')",
            name="chk_student_enrollment_status",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("students.id"), nullable=False)
    academic_year_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("academic_years.id", ondelete="RESTRICT"),
        nullable=False,
    )
    class_id = Column(Uuid(as_uuid=True), ForeignKey("classes.id"), nullable=False)
    section_id = Column(Uuid(as_uuid=True), ForeignKey("sections.id"), nullable=False)
    roll_number = Column(String(20), nullable=True)
    status = Column(String(20), nullable=False, default=EnrollmentStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    transferred_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
