from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.core.exceptions import ConflictError, NotFoundError
from recovery_tracker.core.models import Teacher, TeacherBudget

from recovery_tracker.api.v1.budgets import service as budgets_service
from recovery_tracker.api.v1.school_years import service as school_years_service

from .schemas import (
    TeacherCreate,
    TeacherProfileResponse,
    TeacherResponse,
    TeacherUpdate,
    TeacherWithBudgetResponse,
)


def _to_response(t: Teacher) -> TeacherResponse:
    return TeacherResponse.model_validate(t)


async def _get_or_404(db: AsyncSession, teacher_id: UUID) -> Teacher:
    teacher = await db.get(Teacher, teacher_id)
    if not teacher:
        raise NotFoundError("Docente non trovato")
    return teacher


async def find_teacher_by_name(db: AsyncSession, surname: str, given_name: str) -> Optional[Teacher]:
    """Case-insensitive match on surname and given name."""
    result = await db.execute(
        select(Teacher).where(
            func.lower(Teacher.surname) == surname.strip().lower(),
            func.lower(Teacher.given_name) == given_name.strip().lower(),
        )
    )
    return result.scalars().first()


async def find_or_create_teacher(db: AsyncSession, surname: str, given_name: str) -> Tuple[Teacher, bool]:
    teacher = await find_teacher_by_name(db, surname, given_name)
    if teacher:
        return teacher, False
    teacher = Teacher(surname=surname.strip(), given_name=given_name.strip())
    db.add(teacher)
    await db.commit()
    await db.refresh(teacher)
    return teacher, True


async def create_teacher(db: AsyncSession, payload: TeacherCreate) -> TeacherResponse:
    teacher = Teacher(
        surname=payload.surname.strip(),
        given_name=payload.given_name.strip(),
        email=str(payload.email).lower() if payload.email else None,
    )
    db.add(teacher)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Un docente con questa email esiste già")
    await db.refresh(teacher)
    return _to_response(teacher)


async def list_teachers(
    db: AsyncSession,
    school_year_id: Optional[UUID] = None,
) -> List[TeacherWithBudgetResponse]:
    """All teachers ordered by surname; with school_year_id each carries that year's budget."""
    result = await db.execute(select(Teacher).order_by(Teacher.surname, Teacher.given_name))
    teachers = result.scalars().all()
    budgets = {}
    if school_year_id is not None:
        budget_rows = await db.execute(
            select(TeacherBudget).where(TeacherBudget.school_year_id == school_year_id)
        )
        budgets = {b.teacher_id: b for b in budget_rows.scalars().all()}
    items = []
    for t in teachers:
        budget = budgets.get(t.id)
        items.append(
            TeacherWithBudgetResponse(
                **_to_response(t).model_dump(),
                budget=budgets_service.to_response(budget, t) if budget else None,
            )
        )
    return items


async def get_teacher(db: AsyncSession, teacher_id: UUID) -> TeacherResponse:
    return _to_response(await _get_or_404(db, teacher_id))


async def update_teacher(db: AsyncSession, teacher_id: UUID, payload: TeacherUpdate) -> TeacherResponse:
    teacher = await _get_or_404(db, teacher_id)
    if payload.surname is not None:
        teacher.surname = payload.surname.strip()
    if payload.given_name is not None:
        teacher.given_name = payload.given_name.strip()
    if payload.email is not None:
        teacher.email = str(payload.email).lower()
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Un docente con questa email esiste già")
    await db.refresh(teacher)
    return _to_response(teacher)


async def get_teacher_profile(db: AsyncSession, teacher_id: UUID) -> TeacherProfileResponse:
    """Profile plus the budget of the active school year (None when not yet imported)."""
    teacher = await _get_or_404(db, teacher_id)
    active = await school_years_service.get_active_school_year(db)
    budget = await budgets_service.find_budget(db, teacher.id, active.id) if active else None
    return TeacherProfileResponse(
        teacher=_to_response(teacher),
        current_budget=budgets_service.to_response(budget, teacher) if budget else None,
        school_year_name=active.name if active else None,
        message=None if budget else "Il budget per l'anno scolastico corrente non è ancora stato caricato",
    )
