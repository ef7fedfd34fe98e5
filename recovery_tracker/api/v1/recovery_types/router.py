from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.auth.dependencies import get_current_user
from recovery_tracker.auth.rbac import require_admin
from recovery_tracker.core.exceptions import ServiceError
from recovery_tracker.db.session import get_db

from .schemas import RecoveryTypeCreate, RecoveryTypeResponse, RecoveryTypeUpdate
from . import service

router = APIRouter(prefix="/api/v1/recovery-types", tags=["recovery-types"])


@router.get(
    "",
    response_model=List[RecoveryTypeResponse],
    dependencies=[Depends(get_current_user)],
)
async def list_recovery_types(
    active_only: bool = True,
    db: AsyncSession = Depends(get_db),
) -> List[RecoveryTypeResponse]:
    """Recovery type catalog (for the activity form dropdown)."""
    return await service.list_recovery_types(db, active_only=active_only)


@router.post(
    "",
    response_model=RecoveryTypeResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_recovery_type(
    payload: RecoveryTypeCreate,
    db: AsyncSession = Depends(get_db),
) -> RecoveryTypeResponse:
    try:
        return await service.create_recovery_type(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.put(
    "/{recovery_type_id}",
    response_model=RecoveryTypeResponse,
    dependencies=[Depends(require_admin)],
)
async def update_recovery_type(
    recovery_type_id: UUID,
    payload: RecoveryTypeUpdate,
    db: AsyncSession = Depends(get_db),
) -> RecoveryTypeResponse:
    try:
        return await service.update_recovery_type(db, recovery_type_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
