"""Fee dues router: generate an enrollment's dues, list them with balances."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.auth.dependencies import get_current_user
from school_ledger.auth.rbac import check_permission
from school_ledger.auth.schemas import CurrentUser
from school_ledger.core.exceptions import ServiceError
from school_ledger.db.session import get_db

from .schemas import DueBalanceResponse, FeeDueResponse, GenerateDuesResponse
from . import service

router = APIRouter(prefix="/api/v1/fee-dues", tags=["fee-dues"])


@router.post(
    "/enrollments/{enrollment_id}/generate",
    response_model=GenerateDuesResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("fees", "create"))],
)
async def generate_dues(
    enrollment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> GenerateDuesResponse:
    try:
        return await service.generate_dues(db, enrollment_id, current_user.id, school_id=current_user.school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/enrollments/{enrollment_id}",
    response_model=List[FeeDueResponse],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def list_dues(
    enrollment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[FeeDueResponse]:
    try:
        return await service.list_dues(db, enrollment_id, school_id=current_user.school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/{due_id}/balance",
    response_model=DueBalanceResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_due_balance(
    due_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> DueBalanceResponse:
    try:
        return await service.get_due_balance(db, due_id, school_id=current_user.school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
