"""
Shared fixtures — in-memory SQLite database and an in-process API client.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ALLOW_DEV_AUTH", "true")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-enough-length-32")
os.environ.setdefault("SUPABASE_URL", "")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "")

import time
from datetime import date, datetime, timedelta, timezone

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from api.main import app
from dashboard.config import get_settings
from dashboard.db.session import get_session
from dashboard.db.models import (
    Base, User, UserRole, Project, ProjectMilestone, Notification,
)
from dashboard.services.auth_admin import get_auth_admin


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def foreign_keys(engine):
    """Enforce foreign keys on the shared in-memory connection, as Postgres does."""
    async with engine.connect() as conn:
        await conn.exec_driver_sql("PRAGMA foreign_keys=ON")


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_auth_admin] = lambda: None
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# ─── PEOPLE ──────────────────────────────────────────────

async def make_user(db, role: UserRole, email: str, name: str) -> User:
    user = User(email=email, full_name=name, role=role.value, phone="+27110000000")
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def admin(db):
    return await make_user(db, UserRole.ADMIN, "admin@korabuild.test", "Ada Admin")


@pytest.fixture
async def other_admin(db):
    return await make_user(db, UserRole.ADMIN, "second@korabuild.test", "Second Admin")


@pytest.fixture
async def inspector(db):
    return await make_user(db, UserRole.INSPECTOR, "inspector@korabuild.test", "Ivan Inspector")


@pytest.fixture
async def client_user(db):
    return await make_user(db, UserRole.CLIENT, "client@example.test", "Cleo Client")


def as_user(user: User) -> dict:
    """Query params that authenticate requests as `user`."""
    return {"dev_user_id": user.id}


def bearer(user: User, secret: str | None = None, expires_in: int = 3600) -> dict:
    settings = get_settings()
    token = jwt.encode(
        {
            "sub": user.id,
            "aud": settings.jwt_audience,
            "role": "authenticated",
            "exp": int(time.time()) + expires_in,
        },
        secret or settings.supabase_jwt_secret,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


# ─── PROJECTS ────────────────────────────────────────────

@pytest.fixture
async def project(db, client_user):
    p = Project(
        client_id=client_user.id,
        project_name="Sandton Villa",
        project_address="12 Rivonia Rd, Sandton",
        contract_value=1_000_000,
        start_date=date.today() - timedelta(days=30),
        expected_completion=date.today() + timedelta(days=150),
        status="in_progress",
        current_phase="Foundation",
        progress_percentage=0,
    )
    db.add(p)
    await db.commit()
    return p


@pytest.fixture
async def milestones(db, project):
    rows = [
        ProjectMilestone(project_id=project.id, milestone_name="Site prep", status="completed",
                         progress_percentage=100, order_index=1),
        ProjectMilestone(project_id=project.id, milestone_name="Foundation", status="in_progress",
                         progress_percentage=50, order_index=2),
        ProjectMilestone(project_id=project.id, milestone_name="Roofing", status="not_started",
                         progress_percentage=0, order_index=3),
    ]
    db.add_all(rows)
    await db.commit()
    return rows


def at(minutes_ago: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)


async def add_notification(db, **kwargs) -> Notification:
    kwargs.setdefault("notification_type", "general")
    kwargs.setdefault("title", "Something happened")
    kwargs.setdefault("message", "")
    kwargs.setdefault("meta", {})
    n = Notification(**kwargs)
    db.add(n)
    await db.commit()
    return n
