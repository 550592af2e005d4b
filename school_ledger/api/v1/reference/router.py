"""Reference data router (read-only): academic years, classes, sections, fee structures."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from school_ledger.auth.dependencies import get_current_user
from school_ledger.auth.rbac import check_permission
from school_ledger.auth.schemas import CurrentUser
from school_ledger.core.exceptions import NotFoundError, ServiceError
from school_ledger.db.session import get_db

from .schemas import AcademicYearResponse, FeeStructureResponse, SchoolClassResponse, SectionResponse
from . import service

router = APIRouter(prefix="/api/v1/reference", tags=["reference"])


def _same_school(obj_school_id: UUID, current_user: CurrentUser, what: str) -> None:
    if obj_school_id != current_user.school_id:
        raise NotFoundError(f"{what} not found")


@router.get(
    "/academic-years",
    response_model=List[AcademicYearResponse],
    dependencies=[Depends(check_permission("academic_years", "read"))],
)
async def list_academic_years(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[AcademicYearResponse]:
    years = await service.list_academic_years(db, current_user.school_id)
    return [AcademicYearResponse.model_validate(y) for y in years]


@router.get(
    "/academic-years/current",
    response_model=AcademicYearResponse,
    dependencies=[Depends(check_permission("academic_years", "read"))],
)
async def get_current_academic_year(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AcademicYearResponse:
    try:
        year = await service.get_current_academic_year(db, current_user.school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return AcademicYearResponse.model_validate(year)


@router.get(
    "/academic-years/{academic_year_id}",
    response_model=AcademicYearResponse,
    dependencies=[Depends(check_permission("academic_years", "read"))],
)
async def get_academic_year(
    academic_year_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AcademicYearResponse:
    try:
        year = await service.get_academic_year(db, academic_year_id)
        _same_school(year.school_id, current_user, "Academic year")
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return AcademicYearResponse.model_validate(year)


@router.get(
    "/classes",
    response_model=List[SchoolClassResponse],
    dependencies=[Depends(check_permission("classes", "read"))],
)
async def list_classes(
    branch_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[SchoolClassResponse]:
    scope = service.Scoped(branch_id) if branch_id else service.Unscoped()
    classes = await service.list_classes(db, current_user.school_id, scope)
    return [SchoolClassResponse.model_validate(c) for c in classes]


@router.get(
    "/classes/{class_id}/sections",
    response_model=List[SectionResponse],
    dependencies=[Depends(check_permission("classes", "read"))],
)
async def list_sections(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[SectionResponse]:
    try:
        school_class = await service.get_class(db, class_id)
        _same_school(school_class.school_id, current_user, "Class")
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    sections = await service.list_sections(db, class_id)
    return [SectionResponse.model_validate(s) for s in sections]


@router.get(
    "/fee-structures",
    response_model=List[FeeStructureResponse],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def list_fee_structures(
    academic_year_id: UUID,
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[FeeStructureResponse]:
    rows = await service.list_fee_structures(db, current_user.school_id, academic_year_id, class_id)
    return [FeeStructureResponse.model_validate(r) for r in rows]
