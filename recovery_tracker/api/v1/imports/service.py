"""
Bulk reconciliation of the ledger from spreadsheets, and the admin reset.

Budget imports upsert allocations and keep usage. Activity imports are
destructive: every activity of the school year is deleted and its budgets'
used counters reset before the file rows are inserted as completed history.
None of this runs in one transaction; a crash half-way leaves the year
partially rebuilt, so start and end are logged for operators to spot it.
"""

from typing import Optional
from uuid import UUID

from fastapi import UploadFile
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.core.audit import log_action
from recovery_tracker.core.enums import ActivityStatus
from recovery_tracker.core.exceptions import NotFoundError, ServiceError
from recovery_tracker.core.logging import get_logger
from recovery_tracker.core.models import RecoveryActivity
from recovery_tracker.core.saga import Saga

from recovery_tracker.api.v1.activities.service import modules_equivalent
from recovery_tracker.api.v1.budgets import service as budgets_service
from recovery_tracker.api.v1.recovery_types import service as recovery_types_service
from recovery_tracker.api.v1.school_years import service as school_years_service
from recovery_tracker.api.v1.teachers import service as teachers_service

from .csv_parser import ParsedActivityCsv, ParsedBudgetCsv, split_teacher_name
from .schemas import (
    ActivityCsvRow,
    ActivityImportResult,
    ClearActivitiesResponse,
    ImportResult,
    ImportRowError,
    ImportRowWarning,
)

logger = get_logger(__name__)


class RowRejected(Exception):
    """A parsed row that cannot be applied (unknown teacher, unknown type)."""


async def import_budgets(
    db: AsyncSession,
    parsed: ParsedBudgetCsv,
    school_year_id: UUID,
    *,
    source: Optional[str] = None,
) -> ImportResult:
    """
    Upsert one budget per valid row, creating teachers on first sight. Re-importing
    replaces the allocation and keeps minutes_used/modules_used.
    """
    result = ImportResult(
        failed=len(parsed.errors),
        errors=list(parsed.errors),
        warnings=list(parsed.warnings),
        school_year_id=school_year_id,
    )
    created_teachers = 0
    for row_number, row in parsed.rows:
        surname, given_name = split_teacher_name(row.teacher_name)
        try:
            teacher, created = await teachers_service.find_or_create_teacher(db, surname, given_name)
            budget, _ = await budgets_service.upsert_budget(
                db,
                teacher.id,
                school_year_id,
                minutes_weekly=row.minutes_weekly,
                minutes_annual=row.minutes_annual,
                modules_annual=row.modules_annual,
                import_source=source,
            )
        except (ServiceError, SQLAlchemyError) as e:
            await db.rollback()
            result.failed += 1
            result.errors.append(ImportRowError(row=row_number, teacher=row.teacher_name, error=str(e)))
            logger.warning("budget_import_row_failed", row=row_number, teacher=row.teacher_name, error=str(e))
            continue

        created_teachers += int(created)
        if budget.modules_used > budget.modules_annual:
            result.warnings.append(
                ImportRowWarning(
                    row=row_number,
                    teacher=row.teacher_name,
                    message=(
                        f"Moduli già utilizzati ({budget.modules_used}) superiori ai nuovi moduli annui "
                        f"({budget.modules_annual})"
                    ),
                )
            )
        result.imported += 1

    result.success = result.failed == 0
    logger.info(
        "budget_import_finished",
        school_year_id=str(school_year_id),
        source=source,
        imported=result.imported,
        failed=result.failed,
        warnings=len(result.warnings),
        teachers_created=created_teachers,
    )
    return result


async def _import_activity_row(
    db: AsyncSession,
    row: ActivityCsvRow,
    school_year_id: UUID,
    performed_by: Optional[UUID],
) -> Optional[str]:
    """Insert one historical activity and debit its budget. Returns a warning, if any."""
    teacher = await teachers_service.find_teacher_by_name(db, row.surname, row.given_name)
    if not teacher:
        raise RowRejected("Docente non trovato")
    rt = await recovery_types_service.find_active_by_name(db, row.recovery_type)
    if not rt:
        raise RowRejected(f'Tipo di recupero "{row.recovery_type}" non trovato')

    modules = modules_equivalent(row.duration_minutes, round_up=False)
    activity = RecoveryActivity(
        teacher_id=teacher.id,
        school_year_id=school_year_id,
        recovery_type_id=rt.id,
        date=row.activity_date,
        duration_minutes=row.duration_minutes,
        modules_equivalent=modules,
        title=row.title,
        description=row.description,
        status=ActivityStatus.COMPLETED.value,
        created_by=performed_by,
    )
    budget = await budgets_service.find_budget(db, teacher.id, school_year_id)

    async def insert_activity() -> UUID:
        db.add(activity)
        await db.commit()
        return activity.id

    async def remove_activity(activity_id: UUID) -> None:
        await db.rollback()
        await db.execute(delete(RecoveryActivity).where(RecoveryActivity.id == activity_id))
        await db.commit()

    saga = Saga("import_activity").step("insert_activity", insert_activity, remove_activity)
    if budget is not None:

        async def debit_budget():
            return await budgets_service.apply_delta(db, budget.id, row.duration_minutes, modules)

        saga.step("debit_budget", debit_budget)
    await saga.run()

    if budget is None:
        return "Budget non trovato: attività importata senza aggiornare il budget"
    return None


async def import_activities(
    db: AsyncSession,
    parsed: ParsedActivityCsv,
    school_year_id: UUID,
    *,
    performed_by: Optional[UUID] = None,
) -> ActivityImportResult:
    """
    Replace the school year's activities with the file's rows (status completed,
    modules rounded down, no conflict checks, no limit on the debit).
    """
    result = ActivityImportResult(
        failed=len(parsed.errors),
        errors=list(parsed.errors),
        warnings=list(parsed.warnings),
        school_year_id=school_year_id,
    )
    logger.warning(
        "activity_import_wipe_started",
        school_year_id=str(school_year_id),
        rows=len(parsed.rows),
        performed_by=str(performed_by) if performed_by else None,
    )
    wiped = await db.execute(
        delete(RecoveryActivity)
        .where(RecoveryActivity.school_year_id == school_year_id)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    result.deleted = wiped.rowcount
    await budgets_service.reset_usage(db, school_year_id)

    for row_number, row in parsed.rows:
        try:
            warning = await _import_activity_row(db, row, school_year_id, performed_by)
        except (RowRejected, ServiceError, SQLAlchemyError) as e:
            await db.rollback()
            result.failed += 1
            result.errors.append(ImportRowError(row=row_number, teacher=row.teacher_name, error=str(e)))
            logger.warning("activity_import_row_failed", row=row_number, teacher=row.teacher_name, error=str(e))
            continue
        if warning:
            result.warnings.append(ImportRowWarning(row=row_number, teacher=row.teacher_name, message=warning))
        result.imported += 1

    result.success = result.failed == 0
    result.message = f"Eliminate {result.deleted} attività precedenti, importate {result.imported} nuove"
    await log_action(
        db,
        "import_activities",
        "recovery_activities",
        user_id=performed_by,
        new_values={
            "school_year_id": str(school_year_id),
            "deleted": result.deleted,
            "imported": result.imported,
            "failed": result.failed,
        },
    )
    await db.commit()
    logger.info(
        "activity_import_finished",
        school_year_id=str(school_year_id),
        deleted=result.deleted,
        imported=result.imported,
        failed=result.failed,
    )
    return result


async def clear_activities(
    db: AsyncSession,
    performed_by: Optional[UUID],
    school_year_id: Optional[UUID] = None,
) -> ClearActivitiesResponse:
    """Delete every activity and zero every budget's used counters (or only one school year's)."""
    stmt = delete(RecoveryActivity)
    if school_year_id is not None:
        stmt = stmt.where(RecoveryActivity.school_year_id == school_year_id)
    deleted = await db.execute(stmt.execution_options(synchronize_session=False))
    await db.commit()
    budgets_reset = await budgets_service.reset_usage(db, school_year_id)

    new_values = {"deleted_all": school_year_id is None, "reset_budgets": True}
    if school_year_id is not None:
        new_values["school_year_id"] = str(school_year_id)
    await log_action(
        db,
        "clear_all_activities",
        "recovery_activities",
        user_id=performed_by,
        new_values=new_values,
    )
    await db.commit()

    logger.warning(
        "activities_cleared",
        deleted=deleted.rowcount,
        budgets_reset=budgets_reset,
        school_year_id=str(school_year_id) if school_year_id else None,
        performed_by=str(performed_by) if performed_by else None,
    )
    return ClearActivitiesResponse(
        message="Tutte le pianificazioni sono state eliminate e i budget sono stati resettati",
        deleted=deleted.rowcount,
        budgets_reset=budgets_reset,
        school_year_id=school_year_id,
    )


async def ensure_school_year_exists(db: AsyncSession, school_year_id: Optional[UUID]) -> None:
    if school_year_id is None:
        return
    if await school_years_service.get_school_year(db, school_year_id) is None:
        raise NotFoundError("Anno scolastico non trovato")


async def read_csv_upload(file: UploadFile) -> str:
    """Decode an uploaded CSV (UTF-8, BOM tolerated). Raises ValueError on unusable files."""
    if file.filename and not file.filename.lower().endswith((".csv", ".txt")):
        raise ValueError("Il file deve essere un CSV (.csv)")
    content = await file.read()
    if not content:
        raise ValueError("Il file è vuoto")
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ValueError(f"Il file non è in formato UTF-8 valido: {e}") from e
