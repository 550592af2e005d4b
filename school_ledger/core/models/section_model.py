"""Sections (A, B, C) under a class."""
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Uuid

from school_ledger.db.session import Base


class Section(Base):
    """Section of a class. max_capacity=None means uncapped."""

    __tablename__ = "sections"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    class_id = Column(Uuid(as_uuid=True), ForeignKey("classes.id"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    max_capacity = Column(Integer, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
