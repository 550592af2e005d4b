"""Enrollments router: admission into a year, section transfer, termination, history."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.auth.dependencies import get_current_user
from school_ledger.auth.rbac import check_permission
from school_ledger.auth.schemas import CurrentUser
from school_ledger.core.exceptions import ServiceError
from school_ledger.db.session import get_db

from .schemas import EnrollmentCreate, EnrollmentResponse, EnrollmentTerminate, EnrollmentTransfer
from . import service

router = APIRouter(prefix="/api/v1/enrollments", tags=["enrollments"])


@router.post(
    "",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("enrollments", "create"))],
)
async def create_enrollment(
    payload: EnrollmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> EnrollmentResponse:
    try:
        return await service.enroll(
            db,
            payload.student_id,
            payload.academic_year_id,
            payload.class_id,
            payload.section_id,
            payload.roll_number,
            current_user.id,
            school_id=current_user.school_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "/students/{student_id}",
    response_model=List[EnrollmentResponse],
    dependencies=[Depends(check_permission("enrollments", "read"))],
)
async def list_student_enrollments(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[EnrollmentResponse]:
    return await service.list_student_enrollments(db, student_id, school_id=current_user.school_id)


@router.get(
    "/students/{student_id}/active",
    response_model=EnrollmentResponse,
    dependencies=[Depends(check_permission("enrollments", "read"))],
)
async def get_active_enrollment(
    student_id: UUID,
    academic_year_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> EnrollmentResponse:
    enrollment = await service.get_active_enrollment(db, student_id, academic_year_id)
    if not enrollment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "NotFound", "message": "No active enrollment for this academic year"},
        )
    return enrollment


@router.get(
    "/{enrollment_id}",
    response_model=EnrollmentResponse,
    dependencies=[Depends(check_permission("enrollments", "read"))],
)
async def get_enrollment(
    enrollment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> EnrollmentResponse:
    try:
        return await service.get_enrollment(db, enrollment_id, school_id=current_user.school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/{enrollment_id}/transfer",
    response_model=EnrollmentResponse,
    dependencies=[Depends(check_permission("enrollments", "update"))],
)
async def transfer_enrollment(
    enrollment_id: UUID,
    payload: EnrollmentTransfer,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> EnrollmentResponse:
    try:
        return await service.transfer(
            db,
            enrollment_id,
            payload.target_section_id,
            current_user.id,
            target_academic_year_id=payload.target_academic_year_id,
            school_id=current_user.school_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post(
    "/{enrollment_id}/terminate",
    response_model=EnrollmentResponse,
    dependencies=[Depends(check_permission("enrollments", "update"))],
)
async def terminate_enrollment(
    enrollment_id: UUID,
    payload: EnrollmentTerminate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> EnrollmentResponse:
    try:
        return await service.terminate(
            db,
            enrollment_id,
            payload.reason,
            current_user.id,
            school_id=current_user.school_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
