"""Audit event schemas."""

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from school_ledger.core.types import UtcDateTime


class AuditEventResponse(BaseModel):
    """{actor, action, entity, before, after, timestamp} as exposed to reporting collaborators."""

    id: UUID
    school_id: Optional[UUID] = None
    actor_id: Optional[UUID] = None
    action: str
    table_name: str
    record_id: Optional[str] = None
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None
    outcome: str
    details: Optional[Any] = None
    timestamp: UtcDateTime
