import uuid

from sqlalchemy import Boolean, Column, Date, ForeignKey, Index, String, Uuid, text

from school_ledger.db.session import Base


class AcademicYear(Base):
    """
    Academic year per school. Only one per school can be is_current = true.
    Immutable once an enrollment references it; the ledger core never writes this table.
    """

    __tablename__ = "academic_years"
    __table_args__ = (
        Index(
            "uq_academic_year_current_per_school",
            "school_id",
            unique=True,
            postgresql_where=text("is_current"),
            sqlite_where=text("is_current = 1"),
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(50), nullable=False)  # e.g. "2024-2025"
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_current = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
