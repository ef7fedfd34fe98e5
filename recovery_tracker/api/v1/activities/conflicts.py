"""
Scheduling conflict detection over the activity store.

Blocking: the same teacher already has an activity on the same date and module.
Warning: the same class already has an activity on the same date and module,
whoever the teacher is. Warnings never block a write.

This is a read-before-write pre-check; two concurrent bookings can both pass it.
The unique constraint on (teacher_id, date, module_number) is the authoritative
guard and the ledger maps its violation back to a SchedulingConflictError.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.core.models import RecoveryActivity


@dataclass(frozen=True)
class ConflictResult:
    blocking: Optional[RecoveryActivity] = None
    warning: Optional[str] = None


async def find_teacher_overlap(
    db: AsyncSession,
    teacher_id: UUID,
    on_date: date,
    module_number: int,
    exclude_activity_id: Optional[UUID] = None,
) -> Optional[RecoveryActivity]:
    stmt = select(RecoveryActivity).where(
        RecoveryActivity.teacher_id == teacher_id,
        RecoveryActivity.date == on_date,
        RecoveryActivity.module_number == module_number,
    )
    if exclude_activity_id is not None:
        stmt = stmt.where(RecoveryActivity.id != exclude_activity_id)
    result = await db.execute(stmt.limit(1))
    return result.scalars().first()


async def find_class_overlap(
    db: AsyncSession,
    class_name: str,
    on_date: date,
    module_number: int,
    exclude_activity_id: Optional[UUID] = None,
) -> Optional[RecoveryActivity]:
    stmt = select(RecoveryActivity).where(
        RecoveryActivity.class_name == class_name,
        RecoveryActivity.date == on_date,
        RecoveryActivity.module_number == module_number,
    )
    if exclude_activity_id is not None:
        stmt = stmt.where(RecoveryActivity.id != exclude_activity_id)
    stmt = stmt.order_by(RecoveryActivity.created_at).limit(1).execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalars().first()


def class_warning(class_name: str, other: RecoveryActivity) -> str:
    teacher = other.teacher
    if teacher is None:
        return f"Attenzione: la classe {class_name} ha già un'attività in questo modulo"
    return (
        f"Attenzione: la classe {class_name} ha già un'attività in questo modulo "
        f"con {teacher.given_name} {teacher.surname}"
    )


async def check_conflicts(
    db: AsyncSession,
    teacher_id: UUID,
    on_date: date,
    module_number: Optional[int],
    class_name: Optional[str],
    exclude_activity_id: Optional[UUID] = None,
    *,
    check_teacher: bool = True,
) -> ConflictResult:
    """
    Blocking and warning signals for a candidate (teacher, date, module, class).
    Pass exclude_activity_id when re-checking an activity being edited.
    check_teacher=False skips the blocking query (edit that only changes the class).
    """
    if module_number is None:
        return ConflictResult()

    if check_teacher:
        blocking = await find_teacher_overlap(db, teacher_id, on_date, module_number, exclude_activity_id)
        if blocking is not None:
            return ConflictResult(blocking=blocking)

    warning = None
    if class_name:
        other = await find_class_overlap(db, class_name, on_date, module_number, exclude_activity_id)
        if other is not None:
            warning = class_warning(class_name, other)
    return ConflictResult(warning=warning)
