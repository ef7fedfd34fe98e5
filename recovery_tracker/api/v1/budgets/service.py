"""
Budget store. apply_delta is the only way the ledger changes *_used counters:
a single UPDATE statement computing used = used + delta in the database, so
concurrent requests cannot lose each other's updates.
"""

from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.core.exceptions import BudgetExhaustedError, InvalidDataError, NotFoundError
from recovery_tracker.core.logging import get_logger
from recovery_tracker.core.models import Teacher, TeacherBudget

from .schemas import BudgetResponse, BudgetSnapshot, BudgetUpdate

logger = get_logger(__name__)


def percentage_used(used: int, annual: int) -> int:
    if annual <= 0:
        return 0
    return round(used / annual * 100)


def to_response(budget: TeacherBudget, teacher: Optional[Teacher] = None) -> BudgetResponse:
    minutes_used = budget.minutes_used or 0
    modules_used = budget.modules_used or 0
    return BudgetResponse(
        id=budget.id,
        teacher_id=budget.teacher_id,
        school_year_id=budget.school_year_id,
        teacher_name=teacher.display_name if teacher else None,
        minutes_weekly=budget.minutes_weekly,
        minutes_annual=budget.minutes_annual,
        modules_annual=budget.modules_annual,
        minutes_used=minutes_used,
        modules_used=modules_used,
        minutes_remaining=budget.minutes_annual - minutes_used,
        modules_remaining=budget.modules_annual - modules_used,
        percentage_used=percentage_used(modules_used, budget.modules_annual),
        import_source=budget.import_source,
        imported_at=budget.imported_at,
    )


def to_snapshot(budget: TeacherBudget) -> BudgetSnapshot:
    return BudgetSnapshot(
        modules_annual=budget.modules_annual,
        modules_used=budget.modules_used,
        modules_remaining=budget.modules_annual - budget.modules_used,
        minutes_used=budget.minutes_used,
    )


async def _reload(db: AsyncSession, budget_id: UUID) -> Optional[TeacherBudget]:
    result = await db.execute(
        select(TeacherBudget)
        .where(TeacherBudget.id == budget_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_budget(db: AsyncSession, budget_id: UUID) -> TeacherBudget:
    budget = await _reload(db, budget_id)
    if not budget:
        raise NotFoundError("Budget non trovato")
    return budget


async def find_budget(db: AsyncSession, teacher_id: UUID, school_year_id: UUID) -> Optional[TeacherBudget]:
    result = await db.execute(
        select(TeacherBudget)
        .where(
            TeacherBudget.teacher_id == teacher_id,
            TeacherBudget.school_year_id == school_year_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def apply_delta(
    db: AsyncSession,
    budget_id: UUID,
    minutes_delta: int,
    modules_delta: int,
    *,
    enforce_limit: bool = False,
) -> TeacherBudget:
    """
    Atomically add deltas to the used counters; negative results are clamped to 0.
    With enforce_limit, a debit that would push modules_used past modules_annual
    changes nothing and raises BudgetExhaustedError.
    """
    new_minutes = TeacherBudget.minutes_used + minutes_delta
    new_modules = TeacherBudget.modules_used + modules_delta
    stmt = (
        update(TeacherBudget)
        .where(TeacherBudget.id == budget_id)
        .values(
            minutes_used=case((new_minutes < 0, 0), else_=new_minutes),
            modules_used=case((new_modules < 0, 0), else_=new_modules),
            updated_at=datetime.utcnow(),
        )
    )
    if enforce_limit and modules_delta > 0:
        stmt = stmt.where(new_modules <= TeacherBudget.modules_annual)
    result = await db.execute(stmt.execution_options(synchronize_session=False))
    await db.commit()

    budget = await _reload(db, budget_id)
    if budget is None:
        raise NotFoundError("Budget non trovato")
    if result.rowcount == 0:
        raise BudgetExhaustedError(budget.modules_annual, budget.modules_used)
    logger.debug(
        "budget_delta_applied",
        budget_id=str(budget_id),
        minutes_delta=minutes_delta,
        modules_delta=modules_delta,
        modules_used=budget.modules_used,
    )
    return budget


async def reset_usage(db: AsyncSession, school_year_id: Optional[UUID] = None) -> int:
    """Zero the used counters of one school year (or of every year). Returns affected budgets."""
    stmt = update(TeacherBudget).values(minutes_used=0, modules_used=0, updated_at=datetime.utcnow())
    if school_year_id is not None:
        stmt = stmt.where(TeacherBudget.school_year_id == school_year_id)
    result = await db.execute(stmt.execution_options(synchronize_session=False))
    await db.commit()
    return result.rowcount


async def upsert_budget(
    db: AsyncSession,
    teacher_id: UUID,
    school_year_id: UUID,
    *,
    minutes_weekly: int,
    minutes_annual: int,
    modules_annual: int,
    import_source: Optional[str] = None,
) -> Tuple[TeacherBudget, bool]:
    """Create the budget with zeroed usage, or replace the allocation keeping usage. Returns (budget, created)."""
    budget = await find_budget(db, teacher_id, school_year_id)
    created = budget is None
    if created:
        budget = TeacherBudget(
            teacher_id=teacher_id,
            school_year_id=school_year_id,
            minutes_used=0,
            modules_used=0,
        )
        db.add(budget)
    budget.minutes_weekly = minutes_weekly
    budget.minutes_annual = minutes_annual
    budget.modules_annual = modules_annual
    budget.import_source = import_source
    budget.imported_at = datetime.utcnow()
    await db.commit()
    await db.refresh(budget)
    return budget, created


async def list_budgets(
    db: AsyncSession,
    school_year_id: UUID,
    teacher_id: Optional[UUID] = None,
) -> List[BudgetResponse]:
    stmt = (
        select(TeacherBudget, Teacher)
        .join(Teacher, Teacher.id == TeacherBudget.teacher_id)
        .where(TeacherBudget.school_year_id == school_year_id)
    )
    if teacher_id is not None:
        stmt = stmt.where(TeacherBudget.teacher_id == teacher_id)
    result = await db.execute(stmt.order_by(Teacher.surname, Teacher.given_name))
    return [to_response(budget, teacher) for budget, teacher in result.all()]


async def get_budget_response(db: AsyncSession, budget_id: UUID) -> BudgetResponse:
    budget = await get_budget(db, budget_id)
    teacher = await db.get(Teacher, budget.teacher_id)
    return to_response(budget, teacher)


async def update_budget(db: AsyncSession, budget_id: UUID, payload: BudgetUpdate) -> BudgetResponse:
    budget = await get_budget(db, budget_id)
    if payload.minutes_weekly is not None:
        budget.minutes_weekly = payload.minutes_weekly
    if payload.minutes_annual is not None:
        budget.minutes_annual = payload.minutes_annual
    if payload.modules_annual is not None:
        if payload.modules_annual < budget.modules_used:
            raise InvalidDataError(
                "modules_annual cannot be lower than the modules already used",
                {"modules_used": budget.modules_used},
            )
        budget.modules_annual = payload.modules_annual
    await db.commit()
    await db.refresh(budget)
    teacher = await db.get(Teacher, budget.teacher_id)
    return to_response(budget, teacher)
