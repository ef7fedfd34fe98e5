import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.core.models import SchoolYear


@pytest.mark.asyncio
async def test_activating_a_year_deactivates_the_others(
    client: AsyncClient, db_session: AsyncSession, school_year: SchoolYear, admin_headers
) -> None:
    created = await client.post(
        "/api/v1/school-years",
        json={"name": "2025-26", "start_date": "2025-09-01", "end_date": "2026-08-31"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    assert created.json()["is_active"] is False

    activated = await client.post(f"/api/v1/school-years/{created.json()['id']}/activate", headers=admin_headers)
    assert activated.status_code == 200
    assert activated.json()["is_active"] is True

    active = await client.get("/api/v1/school-years", params={"activeOnly": "true"}, headers=admin_headers)
    assert [sy["name"] for sy in active.json()] == ["2025-26"]

    result = await db_session.execute(
        select(SchoolYear.name).where(SchoolYear.is_active.is_(True)).execution_options(populate_existing=True)
    )
    assert result.scalars().all() == ["2025-26"]


@pytest.mark.asyncio
async def test_school_year_with_budgets_cannot_be_deleted(
    client: AsyncClient, school_year: SchoolYear, teacher, make_budget, admin_headers
) -> None:
    await make_budget(teacher)

    response = await client.delete(f"/api/v1/school-years/{school_year.id}", headers=admin_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_duplicate_school_year_name_is_rejected(
    client: AsyncClient, school_year: SchoolYear, admin_headers
) -> None:
    response = await client.post(
        "/api/v1/school-years",
        json={"name": "2024-25", "start_date": "2024-09-01", "end_date": "2025-08-31"},
        headers=admin_headers,
    )
    assert response.status_code == 409
    assert response.json()["detail"] == "L'anno scolastico '2024-25' esiste già"


@pytest.mark.asyncio
async def test_teacher_profile_shows_active_year_budget(
    client: AsyncClient, school_year: SchoolYear, teacher, make_budget, teacher_headers
) -> None:
    await make_budget(teacher, modules_annual=36, modules_used=9)

    response = await client.get("/api/v1/teachers/me", headers=teacher_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["teacher"]["surname"] == "Rossi"
    assert data["school_year_name"] == "2024-25"
    assert data["current_budget"]["modules_remaining"] == 27
    assert data["current_budget"]["percentage_used"] == 25
    assert data["message"] is None


@pytest.mark.asyncio
async def test_teacher_only_sees_own_budget(
    client: AsyncClient, school_year: SchoolYear, teacher, other_teacher, make_budget, teacher_headers
) -> None:
    await make_budget(teacher)
    other_budget = await make_budget(other_teacher)

    listing = await client.get("/api/v1/budgets", headers=teacher_headers)
    assert [b["teacher_id"] for b in listing.json()] == [str(teacher.id)]

    hidden = await client.get(f"/api/v1/budgets/{other_budget.id}", headers=teacher_headers)
    assert hidden.status_code == 404


@pytest.mark.asyncio
async def test_allocation_cannot_drop_below_usage(
    client: AsyncClient, school_year: SchoolYear, teacher, make_budget, admin_headers
) -> None:
    budget = await make_budget(teacher, modules_annual=10, modules_used=6)

    rejected = await client.put(f"/api/v1/budgets/{budget.id}", json={"modules_annual": 5}, headers=admin_headers)
    assert rejected.status_code == 400

    accepted = await client.put(f"/api/v1/budgets/{budget.id}", json={"modules_annual": 12}, headers=admin_headers)
    assert accepted.status_code == 200
    assert accepted.json()["modules_remaining"] == 6


@pytest.mark.asyncio
async def test_recovery_type_catalog_is_admin_managed(
    client: AsyncClient, admin_headers, teacher_headers
) -> None:
    payload = {"name": "Copresenza", "default_duration": 50, "requires_co_teacher": True}

    forbidden = await client.post("/api/v1/recovery-types", json=payload, headers=teacher_headers)
    assert forbidden.status_code == 403

    created = await client.post("/api/v1/recovery-types", json=payload, headers=admin_headers)
    assert created.status_code == 201
    assert created.json()["requires_co_teacher"] is True

    listing = await client.get("/api/v1/recovery-types", headers=teacher_headers)
    assert [rt["name"] for rt in listing.json()] == ["Copresenza"]


@pytest.mark.asyncio
async def test_malformed_school_year_name_is_rejected_in_italian(
    client: AsyncClient, admin_headers
) -> None:
    response = await client.post(
        "/api/v1/budgets/import",
        files={"file": ("budget.csv", "Docente;Minuti;Tesoretto;Moduli;Saldo\n".encode(), "text/csv")},
        data={"school_year_name": "2024/2025"},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Formato anno scolastico non valido. Usa AAAA-AA (es. 2024-25)"
