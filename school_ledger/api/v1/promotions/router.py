"""Promotions router: year-end promote / detain / withdraw, single and batch."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.auth.dependencies import get_current_user
from school_ledger.auth.rbac import check_permission
from school_ledger.auth.schemas import CurrentUser
from school_ledger.core.exceptions import ServiceError
from school_ledger.db.session import get_db

from .schemas import (
    BatchPromotionRequest,
    BatchPromotionResult,
    ProgressionResponse,
    PromotionRequest,
    PromotionResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/promotions", tags=["promotions"])


@router.post(
    "",
    response_model=PromotionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("promotions", "create"))],
)
async def promote_student(
    payload: PromotionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PromotionResponse:
    try:
        return await service.promote(
            db,
            payload.enrollment_id,
            payload.to_academic_year_id,
            payload.to_class_id,
            payload.decision,
            current_user.id,
            remarks=payload.remarks,
            section_id=payload.section_id,
            school_id=current_user.school_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/batch",
    response_model=BatchPromotionResult,
    dependencies=[Depends(check_permission("promotions", "create"))],
)
async def promote_students_batch(
    payload: BatchPromotionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BatchPromotionResult:
    return await service.promote_batch(
        db,
        payload.items,
        current_user.id,
        school_id=current_user.school_id,
    )


@router.get(
    "/enrollments/{enrollment_id}",
    response_model=List[ProgressionResponse],
    dependencies=[Depends(check_permission("promotions", "read"))],
)
async def list_progressions(
    enrollment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[ProgressionResponse]:
    try:
        return await service.list_progressions(db, enrollment_id, school_id=current_user.school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
