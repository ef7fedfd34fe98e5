"""
Recovery activity ledger: every activity write together with the matching
budget debit or credit.

The store only guarantees per-statement atomicity, so each write that spans an
activity and a budget runs as a saga:

    create: insert activity (undo: delete it) -> debit budget
    delete: credit budget (undo: debit it back) -> delete activity

Status toggles and edits never touch the budget.
"""

import math
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.core.config import settings
from recovery_tracker.core.enums import ActivityStatus
from recovery_tracker.core.exceptions import (
    BudgetExhaustedError,
    ForbiddenError,
    InvalidDataError,
    NotFoundError,
    SchedulingConflictError,
)
from recovery_tracker.core.logging import get_logger
from recovery_tracker.core.models import RecoveryActivity, RecoveryType, Teacher
from recovery_tracker.core.models.recovery_activity import MODULE_MINUTES
from recovery_tracker.core.saga import Saga

from recovery_tracker.api.v1.budgets import service as budgets_service
from recovery_tracker.api.v1.recovery_types import service as recovery_types_service
from recovery_tracker.api.v1.school_years import service as school_years_service

from . import lifecycle
from .conflicts import check_conflicts, find_teacher_overlap
from .schemas import (
    ActivityCreate,
    ActivityListResponse,
    ActivityMutationResponse,
    ActivityResponse,
    ActivityStatusUpdate,
    ActivitySummary,
    ActivityUpdate,
)

logger = get_logger(__name__)


def modules_equivalent(duration_minutes: int, *, round_up: bool = True) -> int:
    """Modules (50 min) billed for a duration. Interactive bookings round up, bulk imports round down."""
    if round_up:
        return math.ceil(duration_minutes / MODULE_MINUTES)
    return duration_minutes // MODULE_MINUTES


def activity_title(recovery_type_name: str, class_name: str, module_number: int) -> str:
    return f"{recovery_type_name} - {class_name} - Modulo {module_number}"


def to_response(a: RecoveryActivity) -> ActivityResponse:
    return ActivityResponse(
        id=a.id,
        teacher_id=a.teacher_id,
        school_year_id=a.school_year_id,
        recovery_type_id=a.recovery_type_id,
        date=a.date,
        module_number=a.module_number,
        class_name=a.class_name,
        title=a.title,
        description=a.description,
        duration_minutes=a.duration_minutes,
        modules_equivalent=a.modules_equivalent,
        status=a.status,
        co_teacher_name=a.co_teacher_name,
        created_by=a.created_by,
        created_at=a.created_at,
        updated_at=a.updated_at,
        teacher_surname=a.teacher.surname if a.teacher else None,
        teacher_given_name=a.teacher.given_name if a.teacher else None,
        recovery_type_name=a.recovery_type.name if a.recovery_type else None,
        recovery_type_color=a.recovery_type.color if a.recovery_type else None,
    )


async def load_activity(db: AsyncSession, activity_id: UUID) -> Optional[RecoveryActivity]:
    """Fresh read of an activity with teacher and recovery type joined."""
    result = await db.execute(
        select(RecoveryActivity)
        .where(RecoveryActivity.id == activity_id)
        .execution_options(populate_existing=True)
    )
    return result.unique().scalar_one_or_none()


async def _get_owned_activity(
    db: AsyncSession,
    activity_id: UUID,
    acting_teacher_id: Optional[UUID],
) -> RecoveryActivity:
    activity = await load_activity(db, activity_id)
    if not activity:
        raise NotFoundError("Attività non trovata")
    if acting_teacher_id is not None and activity.teacher_id != acting_teacher_id:
        raise ForbiddenError("Non hai i permessi per modificare questa attività")
    return activity


def _resolve_teacher_id(payload: ActivityCreate, acting_teacher_id: Optional[UUID]) -> UUID:
    if acting_teacher_id is not None:
        if payload.teacher_id is not None and payload.teacher_id != acting_teacher_id:
            raise ForbiddenError("Non puoi pianificare attività per un altro docente")
        return acting_teacher_id
    if payload.teacher_id is None:
        raise InvalidDataError("Il docente (teacher_id) è obbligatorio")
    return payload.teacher_id


async def _resolve_school_year_id(db: AsyncSession, school_year_id: Optional[UUID]) -> UUID:
    if school_year_id is not None:
        return school_year_id
    active = await school_years_service.get_active_school_year(db)
    if not active:
        raise NotFoundError("Nessun anno scolastico attivo")
    return active.id


async def _get_bookable_type(db: AsyncSession, recovery_type_id: UUID) -> RecoveryType:
    rt = await recovery_types_service.get_recovery_type(db, recovery_type_id)
    if not rt.is_active:
        raise InvalidDataError(f"Il tipo di recupero '{rt.name}' non è attivo")
    return rt


def _check_co_teacher(rt: RecoveryType, co_teacher_name: Optional[str]) -> Optional[str]:
    name = co_teacher_name.strip() if co_teacher_name else None
    if rt.requires_co_teacher and not name:
        raise InvalidDataError(
            f"Il nome del docente in compresenza è obbligatorio per il tipo '{rt.name}'",
            {"recovery_type_id": str(rt.id)},
        )
    return name or None


async def _conflict_from_integrity_error(
    db: AsyncSession,
    teacher_id: UUID,
    on_date: date,
    module_number: int,
    exclude_activity_id: Optional[UUID] = None,
) -> SchedulingConflictError:
    """
    Constraint violation from a concurrent booking that slipped past the pre-check.
    Rolls the session back, so callers must not read ORM attributes afterwards.
    """
    await db.rollback()
    existing = await find_teacher_overlap(db, teacher_id, on_date, module_number, exclude_activity_id)
    logger.warning(
        "scheduling_conflict_on_write",
        teacher_id=str(teacher_id),
        date=on_date.isoformat(),
        module_number=module_number,
        conflicting_activity_id=str(existing.id) if existing else None,
    )
    return SchedulingConflictError(existing.id if existing else None, existing.title if existing else None)


async def create_activity(
    db: AsyncSession,
    payload: ActivityCreate,
    *,
    acting_teacher_id: Optional[UUID],
    performed_by: Optional[UUID],
) -> ActivityMutationResponse:
    """
    Book a planned activity and debit the teacher's budget.

    Order: budget lookup, coarse exhaustion check (modules_used >= modules_annual,
    before costing this activity), recovery type, conflicts, duration, then the
    insert/debit saga. The debit itself is conditional, so a concurrent booking or
    an activity costing more modules than remain is refused and rolled back.
    """
    teacher_id = _resolve_teacher_id(payload, acting_teacher_id)
    teacher = await db.get(Teacher, teacher_id)
    if not teacher:
        raise NotFoundError("Docente non trovato")
    school_year_id = await _resolve_school_year_id(db, payload.school_year_id)

    budget = await budgets_service.find_budget(db, teacher_id, school_year_id)
    if not budget:
        raise NotFoundError("Budget non trovato per questo anno scolastico")
    if budget.modules_used >= budget.modules_annual:
        raise BudgetExhaustedError(budget.modules_annual, budget.modules_used)

    rt = await _get_bookable_type(db, payload.recovery_type_id)
    co_teacher_name = _check_co_teacher(rt, payload.co_teacher_name)

    class_name = payload.class_name.strip()
    conflicts = await check_conflicts(db, teacher_id, payload.date, payload.module_number, class_name)
    if conflicts.blocking is not None:
        raise SchedulingConflictError(conflicts.blocking.id, conflicts.blocking.title)

    duration = payload.duration_minutes or rt.default_duration or settings.default_activity_minutes
    modules = modules_equivalent(duration)

    activity = RecoveryActivity(
        teacher_id=teacher_id,
        school_year_id=school_year_id,
        recovery_type_id=rt.id,
        date=payload.date,
        module_number=payload.module_number,
        class_name=class_name,
        title=activity_title(rt.name, class_name, payload.module_number),
        description=payload.description or None,
        duration_minutes=duration,
        modules_equivalent=modules,
        status=ActivityStatus.PLANNED.value,
        co_teacher_name=co_teacher_name,
        created_by=performed_by,
    )

    async def insert_activity() -> UUID:
        db.add(activity)
        try:
            await db.commit()
        except IntegrityError:
            raise await _conflict_from_integrity_error(db, teacher_id, payload.date, payload.module_number)
        return activity.id

    async def remove_activity(activity_id: UUID) -> None:
        await db.rollback()
        await db.execute(delete(RecoveryActivity).where(RecoveryActivity.id == activity_id))
        await db.commit()
        logger.warning("activity_create_compensated", activity_id=str(activity_id), teacher_id=str(teacher_id))

    async def debit_budget():
        return await budgets_service.apply_delta(db, budget.id, duration, modules, enforce_limit=True)

    activity_id, updated_budget = await (
        Saga("create_activity")
        .step("insert_activity", insert_activity, remove_activity)
        .step("debit_budget", debit_budget)
        .run()
    )

    created = await load_activity(db, activity_id)
    logger.info(
        "activity_created",
        activity_id=str(activity_id),
        teacher_id=str(teacher_id),
        date=payload.date.isoformat(),
        module_number=payload.module_number,
        modules=modules,
        modules_used=updated_budget.modules_used,
        warning=conflicts.warning,
    )
    return ActivityMutationResponse(
        activity=to_response(created),
        warning=conflicts.warning,
        budget=budgets_service.to_snapshot(updated_budget),
    )


async def update_activity(
    db: AsyncSession,
    activity_id: UUID,
    payload: ActivityUpdate,
    *,
    acting_teacher_id: Optional[UUID],
) -> ActivityMutationResponse:
    """
    Edit a planned activity. Conflicts are re-checked (excluding itself) when the date or
    module changes; a class-only change re-checks the class warning. The budget is not
    re-billed.
    """
    activity = await _get_owned_activity(db, activity_id, acting_teacher_id)
    lifecycle.ensure_mutable(activity, "modificare")

    if payload.recovery_type_id != activity.recovery_type_id:
        rt = await _get_bookable_type(db, payload.recovery_type_id)
    else:
        rt = activity.recovery_type
    co_teacher_name = _check_co_teacher(rt, payload.co_teacher_name)

    class_name = payload.class_name.strip()
    slot_changed = payload.date != activity.date or payload.module_number != activity.module_number
    class_changed = class_name != activity.class_name
    warning = None
    if slot_changed or class_changed:
        conflicts = await check_conflicts(
            db,
            activity.teacher_id,
            payload.date,
            payload.module_number,
            class_name,
            exclude_activity_id=activity.id,
            check_teacher=slot_changed,
        )
        if conflicts.blocking is not None:
            raise SchedulingConflictError(conflicts.blocking.id, conflicts.blocking.title)
        warning = conflicts.warning

    activity.date = payload.date
    activity.module_number = payload.module_number
    activity.class_name = class_name
    activity.recovery_type_id = rt.id
    activity.title = activity_title(rt.name, class_name, payload.module_number)
    activity.description = payload.description or None
    activity.co_teacher_name = co_teacher_name
    teacher_id = activity.teacher_id
    try:
        await db.commit()
    except IntegrityError:
        raise await _conflict_from_integrity_error(db, teacher_id, payload.date, payload.module_number, activity_id)

    updated = await load_activity(db, activity_id)
    logger.info("activity_updated", activity_id=str(activity_id), slot_changed=slot_changed, warning=warning)
    return ActivityMutationResponse(activity=to_response(updated), warning=warning)


async def delete_activity(
    db: AsyncSession,
    activity_id: UUID,
    *,
    acting_teacher_id: Optional[UUID],
) -> ActivityMutationResponse:
    """
    Delete a planned activity and credit its minutes and modules back (clamped at zero).
    A missing budget does not stop the deletion: the response carries a warning and the
    ledger undercounts availability until the budget is fixed.
    """
    activity = await _get_owned_activity(db, activity_id, acting_teacher_id)
    lifecycle.ensure_mutable(activity, "eliminare")
    deleted = to_response(activity)
    duration = activity.duration_minutes
    modules = activity.modules_equivalent

    budget = await budgets_service.find_budget(db, activity.teacher_id, activity.school_year_id)
    saga = Saga("delete_activity")
    warning = None
    if budget is None:
        warning = "Attività eliminata ma budget non aggiornato"
        logger.warning(
            "ledger_inconsistent",
            reason="budget_not_found",
            activity_id=str(activity_id),
            teacher_id=str(activity.teacher_id),
            school_year_id=str(activity.school_year_id),
        )
    else:

        async def credit_budget():
            return await budgets_service.apply_delta(db, budget.id, -duration, -modules)

        async def redebit_budget(_credited) -> None:
            await db.rollback()
            await budgets_service.apply_delta(db, budget.id, duration, modules)

        saga.step("credit_budget", credit_budget, redebit_budget)

    async def delete_row() -> None:
        await db.delete(activity)
        await db.commit()

    saga.step("delete_activity", delete_row)
    results = await saga.run()

    logger.info("activity_deleted", activity_id=str(activity_id), modules_credited=modules if budget else 0)
    return ActivityMutationResponse(
        activity=deleted,
        warning=warning,
        budget=budgets_service.to_snapshot(results[0]) if budget is not None else None,
    )


async def toggle_completion(
    db: AsyncSession,
    activity_id: UUID,
    payload: ActivityStatusUpdate,
    *,
    acting_teacher_id: Optional[UUID],
) -> ActivityMutationResponse:
    """planned <-> completed. Idempotent; never touches the budget."""
    activity = await _get_owned_activity(db, activity_id, acting_teacher_id)
    completed = payload.wants_completed
    if not lifecycle.transition(activity, completed):
        state = "completata" if completed else "pianificata"
        return ActivityMutationResponse(activity=to_response(activity), message=f"L'attività è già {state}")

    await db.commit()
    updated = await load_activity(db, activity_id)
    logger.info("activity_status_changed", activity_id=str(activity_id), status=updated.status)
    message = "Attività completata con successo" if completed else "Attività ripristinata a pianificata con successo"
    return ActivityMutationResponse(activity=to_response(updated), message=message)


async def get_activity(
    db: AsyncSession,
    activity_id: UUID,
    *,
    acting_teacher_id: Optional[UUID],
) -> ActivityResponse:
    return to_response(await _get_owned_activity(db, activity_id, acting_teacher_id))


async def list_activities(
    db: AsyncSession,
    *,
    school_year_id: Optional[UUID] = None,
    teacher_id: Optional[UUID] = None,
    status: Optional[ActivityStatus] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> ActivityListResponse:
    """Activities newest first, with counts by status and total modules."""
    stmt = select(RecoveryActivity)
    if school_year_id is not None:
        stmt = stmt.where(RecoveryActivity.school_year_id == school_year_id)
    if teacher_id is not None:
        stmt = stmt.where(RecoveryActivity.teacher_id == teacher_id)
    if status is not None:
        stmt = stmt.where(RecoveryActivity.status == status.value)
    if date_from is not None:
        stmt = stmt.where(RecoveryActivity.date >= date_from)
    if date_to is not None:
        stmt = stmt.where(RecoveryActivity.date <= date_to)
    stmt = stmt.order_by(RecoveryActivity.date.desc(), RecoveryActivity.module_number).execution_options(
        populate_existing=True
    )
    result = await db.execute(stmt)
    activities = result.unique().scalars().all()

    planned = sum(1 for a in activities if a.status == ActivityStatus.PLANNED.value)
    return ActivityListResponse(
        activities=[to_response(a) for a in activities],
        summary=ActivitySummary(
            total_activities=len(activities),
            total_modules=sum(a.modules_equivalent or 0 for a in activities),
            planned=planned,
            completed=len(activities) - planned,
        ),
    )
