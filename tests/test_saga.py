from typing import List

import pytest

from recovery_tracker.core.saga import Saga


@pytest.mark.asyncio
async def test_saga_returns_results_in_step_order() -> None:
    async def first() -> int:
        return 1

    async def second() -> str:
        return "two"

    results = await Saga("ok").step("first", first).step("second", second).run()
    assert results == [1, "two"]


@pytest.mark.asyncio
async def test_failed_step_compensates_completed_steps_in_reverse() -> None:
    undone: List[str] = []

    async def reserve() -> str:
        return "reservation"

    async def charge() -> str:
        return "charge"

    async def boom() -> None:
        raise RuntimeError("store unavailable")

    async def undo_reserve(result: str) -> None:
        undone.append(f"undo {result}")

    async def undo_charge(result: str) -> None:
        undone.append(f"undo {result}")

    saga = (
        Saga("reverse")
        .step("reserve", reserve, undo_reserve)
        .step("charge", charge, undo_charge)
        .step("boom", boom)
    )
    with pytest.raises(RuntimeError, match="store unavailable"):
        await saga.run()

    assert undone == ["undo charge", "undo reservation"]


@pytest.mark.asyncio
async def test_failed_step_is_not_compensated_itself() -> None:
    undone: List[str] = []

    async def fails() -> None:
        raise ValueError("nope")

    async def undo(_result) -> None:
        undone.append("undo")

    with pytest.raises(ValueError):
        await Saga("single").step("fails", fails, undo).run()
    assert undone == []


@pytest.mark.asyncio
async def test_compensation_failure_does_not_mask_original_error() -> None:
    async def insert() -> int:
        return 42

    async def broken_undo(_result: int) -> None:
        raise RuntimeError("compensation failed too")

    async def debit() -> None:
        raise LookupError("budget gone")

    with pytest.raises(LookupError, match="budget gone"):
        await Saga("masking").step("insert", insert, broken_undo).step("debit", debit).run()
