import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from datetime import date
from typing import AsyncGenerator, Callable, Dict

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from recovery_tracker.auth.models import User
from recovery_tracker.auth.security import create_access_token
from recovery_tracker.core.models import RecoveryType, SchoolYear, Teacher, TeacherBudget
from recovery_tracker.db.session import Base, get_db
from recovery_tracker.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory SQLite database per test; StaticPool keeps the single connection alive."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for a test and override FastAPI dependency."""
    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.clear()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
async def school_year(db_session: AsyncSession) -> SchoolYear:
    sy = SchoolYear(
        name="2024-25",
        start_date=date(2024, 9, 1),
        end_date=date(2025, 8, 31),
        weeks_count=36,
        is_active=True,
    )
    db_session.add(sy)
    await db_session.commit()
    return sy


@pytest.fixture()
async def teacher(db_session: AsyncSession) -> Teacher:
    t = Teacher(surname="Rossi", given_name="Mario", email="mario.rossi@scuola.it")
    db_session.add(t)
    await db_session.commit()
    return t


@pytest.fixture()
async def other_teacher(db_session: AsyncSession) -> Teacher:
    t = Teacher(surname="Bianchi", given_name="Laura", email="laura.bianchi@scuola.it")
    db_session.add(t)
    await db_session.commit()
    return t


@pytest.fixture()
def make_budget(db_session: AsyncSession, school_year: SchoolYear) -> Callable:
    async def _make(teacher: Teacher, modules_annual: int = 10, modules_used: int = 0) -> TeacherBudget:
        budget = TeacherBudget(
            teacher_id=teacher.id,
            school_year_id=school_year.id,
            minutes_weekly=60,
            minutes_annual=modules_annual * 50,
            modules_annual=modules_annual,
            minutes_used=modules_used * 50,
            modules_used=modules_used,
        )
        db_session.add(budget)
        await db_session.commit()
        return budget

    return _make


@pytest.fixture()
async def recovery_type(db_session: AsyncSession) -> RecoveryType:
    rt = RecoveryType(name="Sportello", color="#10B981", default_duration=50)
    db_session.add(rt)
    await db_session.commit()
    return rt


@pytest.fixture()
async def co_teaching_type(db_session: AsyncSession) -> RecoveryType:
    rt = RecoveryType(name="Copresenza", color="#F59E0B", default_duration=50, requires_co_teacher=True)
    db_session.add(rt)
    await db_session.commit()
    return rt


@pytest.fixture()
async def admin_user(db_session: AsyncSession) -> User:
    user = User(email="segreteria@scuola.it", name="Segreteria", role="admin")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture()
async def teacher_user(db_session: AsyncSession, teacher: Teacher) -> User:
    user = User(email="Mario.Rossi@scuola.it", name="Mario Rossi", role="teacher")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture()
async def other_teacher_user(db_session: AsyncSession, other_teacher: Teacher) -> User:
    user = User(email="laura.bianchi@scuola.it", name="Laura Bianchi", role="teacher")
    db_session.add(user)
    await db_session.commit()
    return user


def auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(subject={"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers(admin_user: User) -> Dict[str, str]:
    return auth_headers(admin_user)


@pytest.fixture()
def teacher_headers(teacher_user: User) -> Dict[str, str]:
    return auth_headers(teacher_user)


@pytest.fixture()
def other_teacher_headers(other_teacher_user: User) -> Dict[str, str]:
    return auth_headers(other_teacher_user)
