from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.auth.rbac import require_admin
from recovery_tracker.auth.schemas import CurrentUser
from recovery_tracker.core.exceptions import ServiceError
from recovery_tracker.db.session import get_db

from recovery_tracker.api.v1.imports import service as imports_service
from recovery_tracker.api.v1.imports.schemas import ClearActivitiesResponse

router = APIRouter(prefix="/api/v1/settings", tags=["settings"])


@router.delete("/clear-activities", response_model=ClearActivitiesResponse)
async def clear_activities(
    school_year_id: Optional[UUID] = Query(None, description="Limit the reset to one school year"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> ClearActivitiesResponse:
    """Delete all planned and completed activities and reset every budget's usage. Irreversible."""
    try:
        await imports_service.ensure_school_year_exists(db, school_year_id)
        return await imports_service.clear_activities(db, current_user.id, school_year_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
