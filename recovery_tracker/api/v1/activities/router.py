from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.auth.rbac import require_ledger_actor
from recovery_tracker.auth.schemas import CurrentUser
from recovery_tracker.core.enums import ActivityStatus
from recovery_tracker.core.exceptions import ServiceError
from recovery_tracker.db.session import get_db

from .schemas import (
    ActivityCreate,
    ActivityListResponse,
    ActivityMutationResponse,
    ActivityResponse,
    ActivityStatusUpdate,
    ActivityUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/activities", tags=["activities"])


@router.get("", response_model=ActivityListResponse)
async def list_activities(
    school_year_id: Optional[UUID] = None,
    teacher_id: Optional[UUID] = None,
    status_filter: Optional[ActivityStatus] = Query(None, alias="status"),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_ledger_actor),
) -> ActivityListResponse:
    """List activities with a summary. Teachers only see their own."""
    if current_user.acting_teacher_id is not None:
        teacher_id = current_user.acting_teacher_id
    return await service.list_activities(
        db,
        school_year_id=school_year_id,
        teacher_id=teacher_id,
        status=status_filter,
        date_from=date_from,
        date_to=date_to,
    )


@router.post(
    "",
    response_model=ActivityMutationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_activity(
    payload: ActivityCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_ledger_actor),
) -> ActivityMutationResponse:
    """Book a planned activity and debit the budget. Returns a warning when the class is already busy."""
    try:
        return await service.create_activity(
            db,
            payload,
            acting_teacher_id=current_user.acting_teacher_id,
            performed_by=current_user.id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/{activity_id}", response_model=ActivityResponse)
async def get_activity(
    activity_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_ledger_actor),
) -> ActivityResponse:
    try:
        return await service.get_activity(db, activity_id, acting_teacher_id=current_user.acting_teacher_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.put("/{activity_id}", response_model=ActivityMutationResponse)
async def update_activity(
    activity_id: UUID,
    payload: ActivityUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_ledger_actor),
) -> ActivityMutationResponse:
    """Edit a planned activity; conflicts are re-checked when date or module change."""
    try:
        return await service.update_activity(
            db, activity_id, payload, acting_teacher_id=current_user.acting_teacher_id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.patch("/{activity_id}", response_model=ActivityMutationResponse)
async def toggle_activity_completion(
    activity_id: UUID,
    payload: ActivityStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_ledger_actor),
) -> ActivityMutationResponse:
    """Mark as completed or back to planned. No budget change."""
    try:
        return await service.toggle_completion(
            db, activity_id, payload, acting_teacher_id=current_user.acting_teacher_id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.delete("/{activity_id}", response_model=ActivityMutationResponse)
async def delete_activity(
    activity_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_ledger_actor),
) -> ActivityMutationResponse:
    """Delete a planned activity and credit its modules back to the budget."""
    try:
        return await service.delete_activity(db, activity_id, acting_teacher_id=current_user.acting_teacher_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
