from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.auth.dependencies import get_current_user
from recovery_tracker.auth.rbac import require_admin
from recovery_tracker.core.exceptions import ServiceError
from recovery_tracker.db.session import get_db

from .schemas import SchoolYearCreate, SchoolYearResponse, SchoolYearUpdate
from . import service

router = APIRouter(prefix="/api/v1/school-years", tags=["school-years"])


@router.post(
    "",
    response_model=SchoolYearResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_school_year(
    payload: SchoolYearCreate,
    db: AsyncSession = Depends(get_db),
) -> SchoolYearResponse:
    """Create school year. is_active=true deactivates every other year. Admin only."""
    try:
        return await service.create_school_year(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "",
    response_model=List[SchoolYearResponse],
    dependencies=[Depends(get_current_user)],
)
async def list_school_years(
    active_only: bool = Query(False, alias="activeOnly"),
    db: AsyncSession = Depends(get_db),
) -> List[SchoolYearResponse]:
    return await service.list_school_years(db, active_only=active_only)


@router.get(
    "/active",
    response_model=Optional[SchoolYearResponse],
    dependencies=[Depends(get_current_user)],
)
async def get_active_school_year(
    db: AsyncSession = Depends(get_db),
) -> Optional[SchoolYearResponse]:
    """The active school year, default for ledger operations."""
    sy = await service.get_active_school_year(db)
    return SchoolYearResponse.model_validate(sy) if sy else None


@router.get(
    "/{school_year_id}",
    response_model=SchoolYearResponse,
    dependencies=[Depends(get_current_user)],
)
async def get_school_year(
    school_year_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> SchoolYearResponse:
    sy = await service.get_school_year(db, school_year_id)
    if not sy:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Anno scolastico non trovato")
    return sy


@router.put(
    "/{school_year_id}",
    response_model=SchoolYearResponse,
    dependencies=[Depends(require_admin)],
)
async def update_school_year(
    school_year_id: UUID,
    payload: SchoolYearUpdate,
    db: AsyncSession = Depends(get_db),
) -> SchoolYearResponse:
    try:
        return await service.update_school_year(db, school_year_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post(
    "/{school_year_id}/activate",
    response_model=SchoolYearResponse,
    dependencies=[Depends(require_admin)],
)
async def activate_school_year(
    school_year_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> SchoolYearResponse:
    """Set this school year as active. All others become inactive. Admin only."""
    try:
        return await service.activate_school_year(db, school_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.delete(
    "/{school_year_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
async def delete_school_year(
    school_year_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> None:
    """Delete a school year with no budgets. Admin only."""
    try:
        await service.delete_school_year(db, school_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
