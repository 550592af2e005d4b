"""Payments router: record, confirm, allocate, reverse, adjust, summaries."""

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
    AdjustmentCreate,
    AdjustmentResponse,
    AllocationCreate,
    AllocationResult,
    AutoAllocateRequest,
    GatewayCallback,
    PaymentConfirm,
    PaymentCreate,
    PaymentResponse,
    PaymentReverse,
    PaymentSummary,
    ReversalResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


# --- Payments ---
@router.post(
    "",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("payments", "create"))],
)
async def record_payment(
    payload: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentResponse:
    try:
        return await service.record_payment(
            db,
            current_user.school_id,
            payload.student_id,
            payload.amount,
            payload.mode,
            payload.reference_no,
            payload.transaction_id,
            current_user.id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/gateway/callback",
    response_model=PaymentResponse,
    dependencies=[Depends(check_permission("payments", "callback"))],
)
async def gateway_callback(
    payload: GatewayCallback,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentResponse:
    try:
        return await service.apply_gateway_callback(
            db, payload.transaction_id, payload.status, actor_id=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/adjustments",
    response_model=AdjustmentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("payments", "adjust"))],
)
async def create_adjustment(
    payload: AdjustmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AdjustmentResponse:
    try:
        return await service.adjust(
            db,
            payload.amount,
            payload.adjustment_type,
            current_user.id,
            due_id=payload.due_id,
            payment_id=payload.payment_id,
            reason=payload.reason,
            school_id=current_user.school_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/students/{student_id}",
    response_model=List[PaymentResponse],
    dependencies=[Depends(check_permission("payments", "read"))],
)
async def list_student_payments(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[PaymentResponse]:
    return await service.list_student_payments(db, student_id, school_id=current_user.school_id)


@router.get(
    "/{payment_id}",
    response_model=PaymentSummary,
    dependencies=[Depends(check_permission("payments", "read"))],
)
async def get_payment_summary(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentSummary:
    try:
        return await service.get_payment_summary(db, payment_id, school_id=current_user.school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/{payment_id}/confirm",
    response_model=PaymentResponse,
    dependencies=[Depends(check_permission("payments", "update"))],
)
async def confirm_payment(
    payment_id: UUID,
    payload: PaymentConfirm,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentResponse:
    try:
        return await service.confirm_payment(
            db, payment_id, payload.status, current_user.id, school_id=current_user.school_id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


# --- Allocations ---
@router.post(
    "/{payment_id}/allocations",
    response_model=AllocationResult,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("payments", "allocate"))],
)
async def allocate_payment(
    payment_id: UUID,
    payload: AllocationCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AllocationResult:
    try:
        return await service.allocate(
            db,
            payment_id,
            payload.due_id,
            payload.amount,
            current_user.id,
            school_id=current_user.school_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/{payment_id}/allocations/auto",
    response_model=AllocationResult,
    dependencies=[Depends(check_permission("payments", "allocate"))],
)
async def allocate_payment_oldest_first(
    payment_id: UUID,
    payload: AutoAllocateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AllocationResult:
    try:
        return await service.allocate_oldest_first(
            db,
            payment_id,
            current_user.id,
            due_ids=payload.due_ids,
            school_id=current_user.school_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/{payment_id}/reverse",
    response_model=ReversalResponse,
    dependencies=[Depends(check_permission("payments", "reverse"))],
)
async def reverse_payment(
    payment_id: UUID,
    payload: PaymentReverse,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ReversalResponse:
    try:
        return await service.reverse(
            db,
            payment_id,
            current_user.id,
            reason=payload.reason,
            school_id=current_user.school_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
