from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.auth.rbac import require_admin
from recovery_tracker.auth.schemas import CurrentUser
from recovery_tracker.core.exceptions import ServiceError
from recovery_tracker.db.session import get_db

from recovery_tracker.api.v1.school_years import service as school_years_service

from .csv_parser import parse_activity_csv, parse_budget_csv
from .schemas import ActivityImportResult, ImportResult
from . import service

router = APIRouter(prefix="/api/v1", tags=["imports"])


@router.post("/budgets/import", response_model=ImportResult)
async def import_budgets(
    response: Response,
    file: UploadFile = File(..., description="Docente;Minuti/Settimana;Tesoretto Annuale (min);Moduli Annui (50min);Saldo (min)"),
    school_year_id: Optional[UUID] = Form(None),
    school_year_name: Optional[str] = Form(None, description="YYYY-YY; created and activated if missing"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> ImportResult:
    """
    Import annual allocations. Teachers are matched by name (created when missing) and
    budgets upserted keeping usage. Returns 207 when some rows failed.
    """
    try:
        text = await service.read_csv_upload(file)
        school_year = await school_years_service.resolve_school_year(db, school_year_id, school_year_name)
        result = await service.import_budgets(
            db, parse_budget_csv(text), school_year.id, source=file.filename
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not result.success:
        response.status_code = status.HTTP_207_MULTI_STATUS
    return result


@router.post("/activities/import", response_model=ActivityImportResult)
async def import_activities(
    response: Response,
    file: UploadFile = File(..., description="Cognome;Nome;Data;Tipologia;Durata;Titolo[;Descrizione]"),
    school_year_id: Optional[UUID] = Form(None),
    school_year_name: Optional[str] = Form(None, description="YYYY-YY; created and activated if missing"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> ActivityImportResult:
    """
    Replace every activity of the school year with the file's rows, imported as
    completed, and rebuild budget usage from them. Destructive. Returns 207 when
    some rows failed.
    """
    try:
        text = await service.read_csv_upload(file)
        school_year = await school_years_service.resolve_school_year(db, school_year_id, school_year_name)
        result = await service.import_activities(
            db, parse_activity_csv(text), school_year.id, performed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not result.success:
        response.status_code = status.HTTP_207_MULTI_STATUS
    return result
