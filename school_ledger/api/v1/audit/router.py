"""Audit trail router (read-only)."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.auth.dependencies import get_current_user
from school_ledger.auth.rbac import check_permission
from school_ledger.auth.schemas import CurrentUser
from school_ledger.core.enums import AuditOutcome
from school_ledger.db.session import get_db

from .schemas import AuditEventResponse
from . import service

router = APIRouter(prefix="/api/v1/audit", tags=["audit"])


@router.get(
    "",
    response_model=List[AuditEventResponse],
    dependencies=[Depends(check_permission("audit", "read"))],
)
async def list_audit_events(
    table_name: Optional[str] = Query(None, description="e.g. student_enrollments, payments"),
    record_id: Optional[str] = None,
    outcome: Optional[AuditOutcome] = None,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[AuditEventResponse]:
    return await service.list_audit_events(
        db,
        school_id=current_user.school_id,
        table_name=table_name,
        record_id=record_id,
        outcome=outcome,
        limit=limit,
    )
