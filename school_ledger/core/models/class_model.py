"""School classes (Class 1, Class 2 ...). Model named SchoolClass to avoid the Python 'class' keyword."""
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Uuid

from school_ledger.db.session import Base


class SchoolClass(Base):
    """Class master per school and branch. Soft delete via deleted_at."""

    __tablename__ = "classes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid(as_uuid=True), ForeignKey("schools.id"), nullable=False, index=True)
    branch_id = Column(Uuid(as_uuid=True), ForeignKey("branches.id"), nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(String(200), nullable=True)
    sequence = Column(Integer, nullable=True)  # ordering: Class 1, 2, 3...
    deleted_at = Column(DateTime(timezone=True), nullable=True)
