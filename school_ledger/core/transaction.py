"""
Runs one ledger operation as a single transaction.

- ServiceError: rolled back, recorded as a FAILED audit event, re-raised unchanged.
- IntegrityError (unique-constraint race): rolled back and retried once; the retry re-runs the
  application checks, so a real duplicate then surfaces as its own ConflictError.
"""

from typing import Awaitable, Callable, Optional, TypeVar
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.api.v1.audit import service as audit_service
from school_ledger.core.exceptions import ConflictError, ServiceError
from school_ledger.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS = 2


async def run_transaction(
    db: AsyncSession,
    work: Callable[[], Awaitable[T]],
    *,
    action: str,
    table_name: str,
    actor_id: Optional[UUID],
    school_id: Optional[UUID] = None,
    record_id: Optional[object] = None,
    conflict_code: str = "Conflict",
) -> T:
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            result = await work()
            await db.commit()
            return result
        except IntegrityError as exc:
            await db.rollback()
            if attempt < MAX_ATTEMPTS:
                logger.warning("constraint_race_retry", action=action, table=table_name, attempt=attempt)
                continue
            error = ConflictError(f"Concurrent modification of {table_name}; please retry", conflict_code)
            await audit_service.emit_failure(
                db,
                action=action,
                table_name=table_name,
                record_id=record_id,
                actor_id=actor_id,
                school_id=school_id,
                error=error,
            )
            logger.warning("operation_failed", action=action, code=error.code, reason=str(exc.orig))
            raise error from exc
        except ServiceError as exc:
            await db.rollback()
            await audit_service.emit_failure(
                db,
                action=action,
                table_name=table_name,
                record_id=record_id,
                actor_id=actor_id,
                school_id=school_id,
                error=exc,
            )
            logger.info("operation_rejected", action=action, code=exc.code, message=exc.message)
            raise
    raise AssertionError("unreachable")
