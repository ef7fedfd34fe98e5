from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.auth.rbac import require_admin, require_teacher
from recovery_tracker.auth.schemas import CurrentUser
from recovery_tracker.core.exceptions import ServiceError
from recovery_tracker.db.session import get_db

from .schemas import TeacherCreate, TeacherProfileResponse, TeacherResponse, TeacherUpdate, TeacherWithBudgetResponse
from . import service

router = APIRouter(prefix="/api/v1/teachers", tags=["teachers"])


@router.get("/me", response_model=TeacherProfileResponse)
async def get_my_profile(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_teacher),
) -> TeacherProfileResponse:
    """Authenticated teacher's profile and current budget."""
    try:
        return await service.get_teacher_profile(db, current_user.teacher_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "",
    response_model=List[TeacherWithBudgetResponse],
    dependencies=[Depends(require_admin)],
)
async def list_teachers(
    school_year_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
) -> List[TeacherWithBudgetResponse]:
    """List teachers; pass school_year_id to embed each teacher's budget. Admin only."""
    return await service.list_teachers(db, school_year_id=school_year_id)


@router.post(
    "",
    response_model=TeacherResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_teacher(
    payload: TeacherCreate,
    db: AsyncSession = Depends(get_db),
) -> TeacherResponse:
    try:
        return await service.create_teacher(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/{teacher_id}",
    response_model=TeacherResponse,
    dependencies=[Depends(require_admin)],
)
async def get_teacher(
    teacher_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> TeacherResponse:
    try:
        return await service.get_teacher(db, teacher_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.put(
    "/{teacher_id}",
    response_model=TeacherResponse,
    dependencies=[Depends(require_admin)],
)
async def update_teacher(
    teacher_id: UUID,
    payload: TeacherUpdate,
    db: AsyncSession = Depends(get_db),
) -> TeacherResponse:
    """Edit surname, given name or email. Admin only."""
    try:
        return await service.update_teacher(db, teacher_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
