"""
Audit emitter. Every state-changing ledger call appends one entry; failed attempts are recorded too.
"""

from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.core.enums import AuditOutcome
from school_ledger.core.exceptions import ServiceError
from school_ledger.core.logging import get_logger
from school_ledger.core.models import AuditLog

from .schemas import AuditEventResponse

logger = get_logger(__name__)


def _jsonable(value: Any) -> Any:
    if value is None:
        return None
    return jsonable_encoder(value, custom_encoder={Decimal: str})


async def emit(
    db: AsyncSession,
    *,
    action: str,
    table_name: str,
    record_id: Any,
    actor_id: Optional[UUID],
    school_id: Optional[UUID] = None,
    old_value: Optional[dict] = None,
    new_value: Optional[dict] = None,
) -> None:
    """Append one SUCCESS entry to the current transaction. Caller must commit."""
    db.add(
        AuditLog(
            school_id=school_id,
            actor_id=actor_id,
            action=action,
            table_name=table_name,
            record_id=str(record_id) if record_id is not None else None,
            old_value=_jsonable(old_value),
            new_value=_jsonable(new_value),
            outcome=AuditOutcome.SUCCESS.value,
        )
    )


async def emit_failure(
    db: AsyncSession,
    *,
    action: str,
    table_name: str,
    record_id: Any,
    actor_id: Optional[UUID],
    school_id: Optional[UUID],
    error: ServiceError,
) -> None:
    """Record a failed attempt in its own transaction. The failed work must already be rolled back."""
    db.add(
        AuditLog(
            school_id=school_id,
            actor_id=actor_id,
            action=action,
            table_name=table_name,
            record_id=str(record_id) if record_id is not None else None,
            outcome=AuditOutcome.FAILED.value,
            details={"code": error.code, "message": error.message},
        )
    )
    try:
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        # caller re-raises the original error
        logger.exception("audit_failure_write_failed", action=action, table=table_name, code=error.code)


def _to_response(entry: AuditLog) -> AuditEventResponse:
    return AuditEventResponse(
        id=entry.id,
        school_id=entry.school_id,
        actor_id=entry.actor_id,
        action=entry.action,
        table_name=entry.table_name,
        record_id=entry.record_id,
        old_value=entry.old_value,
        new_value=entry.new_value,
        outcome=entry.outcome,
        details=entry.details,
        timestamp=entry.timestamp,
    )


async def list_audit_events(
    db: AsyncSession,
    school_id: Optional[UUID] = None,
    table_name: Optional[str] = None,
    record_id: Optional[str] = None,
    outcome: Optional[AuditOutcome] = None,
    limit: int = 100,
) -> List[AuditEventResponse]:
    stmt = select(AuditLog)
    if school_id is not None:
        stmt = stmt.where(AuditLog.school_id == school_id)
    if table_name:
        stmt = stmt.where(AuditLog.table_name == table_name)
    if record_id:
        stmt = stmt.where(AuditLog.record_id == record_id)
    if outcome is not None:
        stmt = stmt.where(AuditLog.outcome == outcome.value)
    stmt = stmt.order_by(AuditLog.timestamp.desc()).limit(limit)
    result = await db.execute(stmt)
    return [_to_response(e) for e in result.scalars().all()]
