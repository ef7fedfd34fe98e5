import re
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.core.exceptions import ConflictError, InvalidDataError, NotFoundError
from recovery_tracker.core.logging import get_logger
from recovery_tracker.core.models import SchoolYear, TeacherBudget

from .schemas import SchoolYearCreate, SchoolYearResponse, SchoolYearUpdate

logger = get_logger(__name__)

SCHOOL_YEAR_NAME_RE = re.compile(r"^\d{4}-\d{2}$")


def _to_response(sy: SchoolYear) -> SchoolYearResponse:
    return SchoolYearResponse.model_validate(sy)


def _validate_dates(start_date: date, end_date: date) -> None:
    if end_date <= start_date:
        raise InvalidDataError("end_date must be after start_date")


async def _get_or_404(db: AsyncSession, school_year_id: UUID) -> SchoolYear:
    sy = await db.get(SchoolYear, school_year_id)
    if not sy:
        raise NotFoundError("Anno scolastico non trovato")
    return sy


async def _deactivate_others(db: AsyncSession, school_year_id: Optional[UUID]) -> None:
    stmt = update(SchoolYear).where(SchoolYear.is_active.is_(True))
    if school_year_id is not None:
        stmt = stmt.where(SchoolYear.id != school_year_id)
    await db.execute(stmt.values(is_active=False))


async def create_school_year(db: AsyncSession, payload: SchoolYearCreate) -> SchoolYearResponse:
    """Create school year. If is_active, every other year is deactivated first."""
    _validate_dates(payload.start_date, payload.end_date)
    name = payload.name.strip()
    existing = await db.execute(select(SchoolYear.id).where(SchoolYear.name == name))
    if existing.scalar_one_or_none():
        raise ConflictError(f"L'anno scolastico '{name}' esiste già")
    if payload.is_active:
        await _deactivate_others(db, None)
    sy = SchoolYear(
        name=name,
        start_date=payload.start_date,
        end_date=payload.end_date,
        weeks_count=payload.weeks_count,
        is_active=payload.is_active,
    )
    db.add(sy)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(f"L'anno scolastico '{name}' esiste già")
    await db.refresh(sy)
    logger.info("school_year_created", school_year_id=str(sy.id), name=sy.name, is_active=sy.is_active)
    return _to_response(sy)


async def list_school_years(db: AsyncSession, active_only: bool = False) -> List[SchoolYearResponse]:
    stmt = select(SchoolYear)
    if active_only:
        stmt = stmt.where(SchoolYear.is_active.is_(True))
    result = await db.execute(stmt.order_by(SchoolYear.start_date.desc()))
    return [_to_response(sy) for sy in result.scalars().all()]


async def get_school_year(db: AsyncSession, school_year_id: UUID) -> Optional[SchoolYearResponse]:
    sy = await db.get(SchoolYear, school_year_id)
    return _to_response(sy) if sy else None


async def get_active_school_year(db: AsyncSession) -> Optional[SchoolYear]:
    result = await db.execute(select(SchoolYear).where(SchoolYear.is_active.is_(True)))
    return result.scalars().first()


async def update_school_year(
    db: AsyncSession,
    school_year_id: UUID,
    payload: SchoolYearUpdate,
) -> SchoolYearResponse:
    sy = await _get_or_404(db, school_year_id)
    if payload.name is not None:
        name = payload.name.strip()
        other = await db.execute(
            select(SchoolYear.id).where(SchoolYear.name == name, SchoolYear.id != school_year_id)
        )
        if other.scalar_one_or_none():
            raise ConflictError(f"L'anno scolastico '{name}' esiste già")
        sy.name = name
    if payload.start_date is not None:
        sy.start_date = payload.start_date
    if payload.end_date is not None:
        sy.end_date = payload.end_date
    if payload.start_date is not None or payload.end_date is not None:
        _validate_dates(sy.start_date, sy.end_date)
    if payload.weeks_count is not None:
        sy.weeks_count = payload.weeks_count
    await db.commit()
    await db.refresh(sy)
    return _to_response(sy)


async def activate_school_year(db: AsyncSession, school_year_id: UUID) -> SchoolYearResponse:
    """Make this the only active school year. Sole writer of is_active."""
    sy = await _get_or_404(db, school_year_id)
    await _deactivate_others(db, sy.id)
    sy.is_active = True
    await db.commit()
    await db.refresh(sy)
    logger.info("school_year_activated", school_year_id=str(sy.id), name=sy.name)
    return _to_response(sy)


async def delete_school_year(db: AsyncSession, school_year_id: UUID) -> None:
    """Delete a school year. Blocked while any budget references it."""
    sy = await _get_or_404(db, school_year_id)
    budgets = await db.execute(
        select(func.count(TeacherBudget.id)).where(TeacherBudget.school_year_id == school_year_id)
    )
    if budgets.scalar_one() > 0:
        raise ConflictError("Impossibile eliminare: esistono budget associati a questo anno scolastico")
    await db.delete(sy)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Impossibile eliminare: l'anno scolastico è ancora referenziato")


async def find_or_create_by_name(db: AsyncSession, name: str) -> SchoolYear:
    """
    Resolve a YYYY-YY school year by name. A missing year is created spanning
    1 September - 31 August with 36 weeks and becomes the active year.
    """
    name = name.strip()
    if not SCHOOL_YEAR_NAME_RE.match(name):
        raise InvalidDataError("Formato anno scolastico non valido. Usa AAAA-AA (es. 2024-25)")
    result = await db.execute(select(SchoolYear).where(SchoolYear.name == name))
    sy = result.scalar_one_or_none()
    if sy:
        return sy
    start_year_str, end_year_short = name.split("-")
    start_year = int(start_year_str)
    end_year = int(f"{start_year_str[:2]}{end_year_short}")
    if end_year != start_year + 1:
        raise InvalidDataError(f"L'anno scolastico '{name}' deve coprire due anni consecutivi")
    created = await create_school_year(
        db,
        SchoolYearCreate(
            name=name,
            start_date=date(start_year, 9, 1),
            end_date=date(end_year, 8, 31),
            weeks_count=36,
            is_active=False,
        ),
    )
    await activate_school_year(db, created.id)
    return await _get_or_404(db, created.id)


async def resolve_school_year(
    db: AsyncSession,
    school_year_id: Optional[UUID] = None,
    school_year_name: Optional[str] = None,
) -> SchoolYear:
    """School year selector used by imports: explicit id wins over name."""
    if school_year_id is not None:
        return await _get_or_404(db, school_year_id)
    if school_year_name:
        return await find_or_create_by_name(db, school_year_name)
    raise InvalidDataError("Anno scolastico obbligatorio (school_year_id o school_year_name)")
