"""
Audit log for every state-changing ledger operation, successful or not.
Shape follows the platform audit table: action, table name, record id, old value, new value.
"""

import uuid

from sqlalchemy import JSON, Column, DateTime, Index, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from school_ledger.db.session import Base, utcnow

JSONType = JSON().with_variant(JSONB(), "postgresql")


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_log_school_timestamp", "school_id", "timestamp"),
        Index("ix_audit_log_table_record", "table_name", "record_id"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid(as_uuid=True), nullable=True)
    actor_id = Column(Uuid(as_uuid=True), nullable=True)
    action = Column(String(50), nullable=False)
    table_name = Column(String(50), nullable=False)
    record_id = Column(String(100), nullable=True)
    old_value = Column(JSONType, nullable=True)
    new_value = Column(JSONType, nullable=True)
    outcome = Column(String(10), nullable=False)
    details = Column(JSONType, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False)
