from datetime import date
from typing import Optional

import pytest
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.api.v1.activities import service as activities_service
from recovery_tracker.api.v1.activities.conflicts import ConflictResult
from recovery_tracker.api.v1.activities.schemas import ActivityCreate, ActivityStatusUpdate, ActivityUpdate
from recovery_tracker.api.v1.budgets import service as budgets_service
from recovery_tracker.core.exceptions import (
    BudgetExhaustedError,
    ForbiddenError,
    ImmutableActivityError,
    InvalidDataError,
    SchedulingConflictError,
)
from recovery_tracker.core.models import RecoveryActivity, RecoveryType, Teacher, TeacherBudget

MONDAY = date(2024, 11, 4)


def booking(
    teacher: Teacher,
    rt: RecoveryType,
    *,
    on_date: date = MONDAY,
    module_number: int = 3,
    class_name: str = "3A",
    duration_minutes: Optional[int] = None,
    co_teacher_name: Optional[str] = None,
) -> ActivityCreate:
    return ActivityCreate(
        teacher_id=teacher.id,
        recovery_type_id=rt.id,
        date=on_date,
        module_number=module_number,
        class_name=class_name,
        duration_minutes=duration_minutes,
        co_teacher_name=co_teacher_name,
    )


async def count_activities(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(RecoveryActivity))
    return result.scalar_one()


def test_modules_equivalent_rounding() -> None:
    assert activities_service.modules_equivalent(50) == 1
    assert activities_service.modules_equivalent(60) == 2
    assert activities_service.modules_equivalent(60, round_up=False) == 1
    assert activities_service.modules_equivalent(30, round_up=False) == 0


@pytest.mark.asyncio
async def test_last_module_is_bookable_then_budget_is_exhausted(
    db_session: AsyncSession, teacher, recovery_type, make_budget
) -> None:
    budget = await make_budget(teacher, modules_annual=10, modules_used=9)

    created = await activities_service.create_activity(
        db_session, booking(teacher, recovery_type, duration_minutes=50), acting_teacher_id=None, performed_by=None
    )
    assert created.budget.modules_used == 10
    assert created.budget.modules_remaining == 0
    assert created.activity.modules_equivalent == 1
    assert created.activity.status == "planned"
    assert created.activity.title == "Sportello - 3A - Modulo 3"

    with pytest.raises(BudgetExhaustedError) as exc_info:
        await activities_service.create_activity(
            db_session,
            booking(teacher, recovery_type, module_number=4, duration_minutes=50),
            acting_teacher_id=None,
            performed_by=None,
        )
    assert exc_info.value.status_code == 400
    assert exc_info.value.detail["budget"] == {"annual": 10, "used": 10, "remaining": 0}

    reloaded = await budgets_service.get_budget(db_session, budget.id)
    assert reloaded.modules_used == 10
    assert await count_activities(db_session) == 1


@pytest.mark.asyncio
async def test_debit_beyond_remaining_is_refused_and_activity_rolled_back(
    db_session: AsyncSession, teacher, recovery_type, make_budget
) -> None:
    budget = await make_budget(teacher, modules_annual=10, modules_used=9)

    # 100 minutes cost 2 modules with only 1 left
    with pytest.raises(BudgetExhaustedError):
        await activities_service.create_activity(
            db_session, booking(teacher, recovery_type, duration_minutes=100), acting_teacher_id=None, performed_by=None
        )

    reloaded = await budgets_service.get_budget(db_session, budget.id)
    assert reloaded.modules_used == 9
    assert reloaded.modules_used <= reloaded.modules_annual
    assert await count_activities(db_session) == 0


@pytest.mark.asyncio
async def test_create_then_delete_restores_budget(
    db_session: AsyncSession, teacher, recovery_type, make_budget
) -> None:
    budget = await make_budget(teacher, modules_annual=10, modules_used=4)

    created = await activities_service.create_activity(
        db_session, booking(teacher, recovery_type, duration_minutes=60), acting_teacher_id=None, performed_by=None
    )
    assert created.budget.modules_used == 6
    assert created.budget.minutes_used == 4 * 50 + 60

    deleted = await activities_service.delete_activity(db_session, created.activity.id, acting_teacher_id=None)
    assert deleted.warning is None
    assert deleted.budget.modules_used == 4

    reloaded = await budgets_service.get_budget(db_session, budget.id)
    assert reloaded.modules_used == 4
    assert reloaded.minutes_used == 200
    assert await count_activities(db_session) == 0


@pytest.mark.asyncio
async def test_same_teacher_same_slot_is_blocked_with_conflicting_id(
    db_session: AsyncSession, teacher, recovery_type, make_budget
) -> None:
    budget = await make_budget(teacher)
    first = await activities_service.create_activity(
        db_session, booking(teacher, recovery_type), acting_teacher_id=None, performed_by=None
    )

    with pytest.raises(SchedulingConflictError) as exc_info:
        await activities_service.create_activity(
            db_session, booking(teacher, recovery_type, class_name="4B"), acting_teacher_id=None, performed_by=None
        )
    assert exc_info.value.status_code == 409
    assert exc_info.value.conflicting_activity_id == first.activity.id

    reloaded = await budgets_service.get_budget(db_session, budget.id)
    assert reloaded.modules_used == 1
    assert await count_activities(db_session) == 1


@pytest.mark.asyncio
async def test_same_class_same_slot_only_warns(
    db_session: AsyncSession, teacher, other_teacher, recovery_type, make_budget
) -> None:
    await make_budget(teacher)
    await make_budget(other_teacher)
    await activities_service.create_activity(
        db_session, booking(teacher, recovery_type), acting_teacher_id=None, performed_by=None
    )

    second = await activities_service.create_activity(
        db_session, booking(other_teacher, recovery_type), acting_teacher_id=None, performed_by=None
    )
    assert second.warning is not None
    assert second.warning.startswith("Attenzione: la classe 3A")
    assert "Mario Rossi" in second.warning
    assert second.budget.modules_used == 1
    assert await count_activities(db_session) == 2


@pytest.mark.asyncio
async def test_failed_debit_removes_inserted_activity(
    db_session: AsyncSession, teacher, recovery_type, make_budget, monkeypatch
) -> None:
    budget = await make_budget(teacher)

    async def failing_apply_delta(*args, **kwargs):
        raise RuntimeError("budget store unavailable")

    monkeypatch.setattr(budgets_service, "apply_delta", failing_apply_delta)

    with pytest.raises(RuntimeError, match="budget store unavailable"):
        await activities_service.create_activity(
            db_session, booking(teacher, recovery_type), acting_teacher_id=None, performed_by=None
        )

    assert await count_activities(db_session) == 0
    monkeypatch.undo()
    reloaded = await budgets_service.get_budget(db_session, budget.id)
    assert reloaded.modules_used == 0


@pytest.mark.asyncio
async def test_completed_activity_is_immutable_until_reopened(
    db_session: AsyncSession, teacher, recovery_type, make_budget
) -> None:
    budget = await make_budget(teacher, modules_annual=10, modules_used=0)
    created = await activities_service.create_activity(
        db_session, booking(teacher, recovery_type), acting_teacher_id=None, performed_by=None
    )
    activity_id = created.activity.id

    done = await activities_service.toggle_completion(
        db_session, activity_id, ActivityStatusUpdate(completed=True), acting_teacher_id=None
    )
    assert done.activity.status == "completed"
    assert done.message == "Attività completata con successo"

    with pytest.raises(ImmutableActivityError):
        await activities_service.delete_activity(db_session, activity_id, acting_teacher_id=None)
    with pytest.raises(ImmutableActivityError):
        await activities_service.update_activity(
            db_session,
            activity_id,
            ActivityUpdate(date=MONDAY, module_number=5, class_name="3A", recovery_type_id=recovery_type.id),
            acting_teacher_id=None,
        )

    again = await activities_service.toggle_completion(
        db_session, activity_id, ActivityStatusUpdate(status="completed"), acting_teacher_id=None
    )
    assert again.message == "L'attività è già completata"

    # Status changes never touch the budget
    reloaded = await budgets_service.get_budget(db_session, budget.id)
    assert reloaded.modules_used == 1

    reopened = await activities_service.toggle_completion(
        db_session, activity_id, ActivityStatusUpdate(completed=False), acting_teacher_id=None
    )
    assert reopened.activity.status == "planned"

    deleted = await activities_service.delete_activity(db_session, activity_id, acting_teacher_id=None)
    assert deleted.budget.modules_used == 0


@pytest.mark.asyncio
async def test_update_rechecks_conflicts_excluding_itself(
    db_session: AsyncSession, teacher, recovery_type, make_budget
) -> None:
    await make_budget(teacher)
    first = await activities_service.create_activity(
        db_session, booking(teacher, recovery_type, module_number=1), acting_teacher_id=None, performed_by=None
    )
    second = await activities_service.create_activity(
        db_session, booking(teacher, recovery_type, module_number=2), acting_teacher_id=None, performed_by=None
    )

    unchanged_slot = await activities_service.update_activity(
        db_session,
        first.activity.id,
        ActivityUpdate(date=MONDAY, module_number=1, class_name="3A", recovery_type_id=recovery_type.id, description="ripasso"),
        acting_teacher_id=None,
    )
    assert unchanged_slot.activity.description == "ripasso"

    with pytest.raises(SchedulingConflictError) as exc_info:
        await activities_service.update_activity(
            db_session,
            first.activity.id,
            ActivityUpdate(date=MONDAY, module_number=2, class_name="3A", recovery_type_id=recovery_type.id),
            acting_teacher_id=None,
        )
    assert exc_info.value.conflicting_activity_id == second.activity.id

    moved = await activities_service.update_activity(
        db_session,
        first.activity.id,
        ActivityUpdate(date=MONDAY, module_number=6, class_name="3A", recovery_type_id=recovery_type.id),
        acting_teacher_id=None,
    )
    assert moved.activity.module_number == 6
    assert moved.activity.title == "Sportello - 3A - Modulo 6"


async def no_conflicts(*args, **kwargs) -> ConflictResult:
    return ConflictResult()


@pytest.mark.asyncio
async def test_unique_slot_constraint_blocks_create_that_skips_pre_check(
    db_session: AsyncSession, teacher, recovery_type, make_budget, monkeypatch
) -> None:
    budget = await make_budget(teacher)
    budget_id = budget.id
    first = await activities_service.create_activity(
        db_session, booking(teacher, recovery_type), acting_teacher_id=None, performed_by=None
    )
    duplicate = booking(teacher, recovery_type, class_name="4B")

    # a concurrent booking landing between the conflict check and the insert
    monkeypatch.setattr(activities_service, "check_conflicts", no_conflicts)
    with pytest.raises(SchedulingConflictError) as exc_info:
        await activities_service.create_activity(db_session, duplicate, acting_teacher_id=None, performed_by=None)
    assert exc_info.value.status_code == 409
    assert exc_info.value.conflicting_activity_id == first.activity.id

    assert await count_activities(db_session) == 1
    reloaded = await budgets_service.get_budget(db_session, budget_id)
    assert reloaded.modules_used == 1


@pytest.mark.asyncio
async def test_unique_slot_constraint_blocks_update_that_skips_pre_check(
    db_session: AsyncSession, teacher, recovery_type, make_budget, monkeypatch
) -> None:
    budget = await make_budget(teacher)
    budget_id = budget.id
    recovery_type_id = recovery_type.id
    first = await activities_service.create_activity(
        db_session, booking(teacher, recovery_type, module_number=1), acting_teacher_id=None, performed_by=None
    )
    second = await activities_service.create_activity(
        db_session, booking(teacher, recovery_type, module_number=2), acting_teacher_id=None, performed_by=None
    )

    monkeypatch.setattr(activities_service, "check_conflicts", no_conflicts)
    with pytest.raises(SchedulingConflictError) as exc_info:
        await activities_service.update_activity(
            db_session,
            first.activity.id,
            ActivityUpdate(date=MONDAY, module_number=2, class_name="3A", recovery_type_id=recovery_type_id),
            acting_teacher_id=None,
        )
    assert exc_info.value.status_code == 409
    assert exc_info.value.conflicting_activity_id == second.activity.id

    assert await count_activities(db_session) == 2
    kept = await activities_service.get_activity(db_session, first.activity.id, acting_teacher_id=None)
    assert kept.module_number == 1
    assert kept.title == "Sportello - 3A - Modulo 1"
    reloaded = await budgets_service.get_budget(db_session, budget_id)
    assert reloaded.modules_used == 2


@pytest.mark.asyncio
async def test_co_teaching_requires_co_teacher_name(
    db_session: AsyncSession, teacher, co_teaching_type, make_budget
) -> None:
    await make_budget(teacher)

    with pytest.raises(InvalidDataError):
        await activities_service.create_activity(
            db_session, booking(teacher, co_teaching_type, co_teacher_name="  "), acting_teacher_id=None, performed_by=None
        )
    assert await count_activities(db_session) == 0

    created = await activities_service.create_activity(
        db_session,
        booking(teacher, co_teaching_type, co_teacher_name="Verdi Anna"),
        acting_teacher_id=None,
        performed_by=None,
    )
    assert created.activity.co_teacher_name == "Verdi Anna"


@pytest.mark.asyncio
async def test_teacher_cannot_touch_another_teachers_activity(
    db_session: AsyncSession, teacher, other_teacher, recovery_type, make_budget
) -> None:
    await make_budget(teacher)
    created = await activities_service.create_activity(
        db_session, booking(teacher, recovery_type), acting_teacher_id=teacher.id, performed_by=None
    )

    with pytest.raises(ForbiddenError):
        await activities_service.delete_activity(db_session, created.activity.id, acting_teacher_id=other_teacher.id)
    with pytest.raises(ForbiddenError):
        await activities_service.create_activity(
            db_session, booking(teacher, recovery_type, module_number=5), acting_teacher_id=other_teacher.id, performed_by=None
        )
    assert await count_activities(db_session) == 1


@pytest.mark.asyncio
async def test_delete_without_budget_warns_and_still_deletes(
    db_session: AsyncSession, teacher, recovery_type, make_budget
) -> None:
    budget = await make_budget(teacher)
    created = await activities_service.create_activity(
        db_session, booking(teacher, recovery_type), acting_teacher_id=None, performed_by=None
    )
    await db_session.execute(delete(TeacherBudget).where(TeacherBudget.id == budget.id))
    await db_session.commit()

    deleted = await activities_service.delete_activity(db_session, created.activity.id, acting_teacher_id=None)
    assert deleted.warning == "Attività eliminata ma budget non aggiornato"
    assert deleted.budget is None
    assert await count_activities(db_session) == 0


@pytest.mark.asyncio
async def test_credit_never_drives_used_below_zero(
    db_session: AsyncSession, teacher, make_budget
) -> None:
    budget = await make_budget(teacher, modules_annual=10, modules_used=1)
    updated = await budgets_service.apply_delta(db_session, budget.id, -500, -3)
    assert updated.modules_used == 0
    assert updated.minutes_used == 0
