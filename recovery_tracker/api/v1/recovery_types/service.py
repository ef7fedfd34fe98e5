from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.core.exceptions import ConflictError, NotFoundError
from recovery_tracker.core.models import RecoveryType

from .schemas import RecoveryTypeCreate, RecoveryTypeResponse, RecoveryTypeUpdate


def _to_response(rt: RecoveryType) -> RecoveryTypeResponse:
    return RecoveryTypeResponse.model_validate(rt)


async def get_recovery_type(db: AsyncSession, recovery_type_id: UUID) -> RecoveryType:
    rt = await db.get(RecoveryType, recovery_type_id)
    if not rt:
        raise NotFoundError("Tipo di recupero non trovato")
    return rt


async def find_active_by_name(db: AsyncSession, name: str) -> Optional[RecoveryType]:
    """Case-insensitive lookup among active types."""
    result = await db.execute(
        select(RecoveryType).where(
            func.lower(RecoveryType.name) == name.strip().lower(),
            RecoveryType.is_active.is_(True),
        )
    )
    return result.scalars().first()


async def list_recovery_types(db: AsyncSession, active_only: bool = True) -> List[RecoveryTypeResponse]:
    stmt = select(RecoveryType)
    if active_only:
        stmt = stmt.where(RecoveryType.is_active.is_(True))
    result = await db.execute(stmt.order_by(RecoveryType.name))
    return [_to_response(rt) for rt in result.scalars().all()]


async def create_recovery_type(db: AsyncSession, payload: RecoveryTypeCreate) -> RecoveryTypeResponse:
    rt = RecoveryType(**payload.model_dump())
    rt.name = rt.name.strip()
    db.add(rt)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(f"Il tipo di recupero '{payload.name}' esiste già")
    await db.refresh(rt)
    return _to_response(rt)


async def update_recovery_type(
    db: AsyncSession,
    recovery_type_id: UUID,
    payload: RecoveryTypeUpdate,
) -> RecoveryTypeResponse:
    rt = await get_recovery_type(db, recovery_type_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(rt, field, value.strip() if field == "name" and value else value)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(f"Il tipo di recupero '{payload.name}' esiste già")
    await db.refresh(rt)
    return _to_response(rt)
