from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.auth.rbac import require_admin, require_role
from recovery_tracker.auth.schemas import CurrentUser
from recovery_tracker.core.enums import UserRole
from recovery_tracker.core.exceptions import ServiceError
from recovery_tracker.db.session import get_db

from recovery_tracker.api.v1.school_years import service as school_years_service

from .schemas import BudgetResponse, BudgetUpdate
from . import service

router = APIRouter(prefix="/api/v1/budgets", tags=["budgets"])


@router.get("", response_model=List[BudgetResponse])
async def list_budgets(
    school_year_id: Optional[UUID] = Query(None, description="Defaults to the active school year"),
    teacher_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_role(UserRole.ADMIN.value, UserRole.TEACHER.value)),
) -> List[BudgetResponse]:
    """Budgets with remaining figures. Teachers only see their own."""
    if school_year_id is None:
        active = await school_years_service.get_active_school_year(db)
        if not active:
            return []
        school_year_id = active.id
    if not current_user.is_admin:
        if current_user.teacher_id is None:
            return []
        teacher_id = current_user.teacher_id
    return await service.list_budgets(db, school_year_id, teacher_id=teacher_id)


@router.get("/{budget_id}", response_model=BudgetResponse)
async def get_budget(
    budget_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_role(UserRole.ADMIN.value, UserRole.TEACHER.value)),
) -> BudgetResponse:
    try:
        budget = await service.get_budget_response(db, budget_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    if not current_user.is_admin and budget.teacher_id != current_user.teacher_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Budget non trovato")
    return budget


@router.put(
    "/{budget_id}",
    response_model=BudgetResponse,
    dependencies=[Depends(require_admin)],
)
async def update_budget(
    budget_id: UUID,
    payload: BudgetUpdate,
    db: AsyncSession = Depends(get_db),
) -> BudgetResponse:
    """Edit the annual allocation. Admin only."""
    try:
        return await service.update_budget(db, budget_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
