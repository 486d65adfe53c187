"""
Shared test fixtures for the Timeclock test suite.

Async throughout (aiosqlite + AsyncSession).  Staff auth is overridden with an
in-memory admin; employee endpoints go through the real PIN login.
"""

import os
import sys
from collections.abc import AsyncGenerator

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["RATE_LIMIT_ENABLED"] = "false"

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from timeclock.api.v1.deps import get_current_active_user, get_db, require_admin
from timeclock.db.base import Base
from timeclock.main import app
from timeclock.models.user import User

# Long enough to pass the minimum signature length
SIGNATURE = "data:image/png;base64," + "x" * 120
GEO = {"latitude": 40.4168, "longitude": -3.7038, "accuracy": 12.0}

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before usage and drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestingSessionLocal() as session:
        yield session


app.dependency_overrides[get_db] = _override_get_db


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with TestingSessionLocal() as session:
        yield session


# ── Auth Overrides ──────────────────────────────────────────────────
async def _override_get_current_active_user():
    return User(id=1, email="test@example.com", is_active=True, role="admin")


async def _override_require_admin():
    return User(id=1, email="admin@example.com", is_active=True, role="admin")


app.dependency_overrides[get_current_active_user] = _override_get_current_active_user
app.dependency_overrides[require_admin] = _override_require_admin


# ── Employee helpers ────────────────────────────────────────────────
async def create_employee(
    client: AsyncClient,
    first_name: str = "Lucia",
    last_name: str = "Garcia",
    pin: str = "4821",
    email: str | None = None,
) -> dict:
    resp = await client.post(
        "/api/v1/employees",
        json={"first_name": first_name, "last_name": last_name, "pin": pin, "email": email},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def employee_headers(client: AsyncClient, pin: str = "4821") -> dict:
    resp = await client.post("/api/v1/auth/employee-login", json={"pin": pin})
    assert resp.status_code == 200, resp.text
    # The cookie would authenticate too; keep tests explicit about whose token is used
    client.cookies.clear()
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


async def punch(
    client: AsyncClient,
    headers: dict,
    punch_type: str,
    timestamp: str | int | None = None,
    **extra,
):
    body = {"type": punch_type, **extra}
    if timestamp is not None:
        body["timestamp"] = timestamp
    if punch_type in ("IN", "OUT"):
        body.setdefault("signature_data", SIGNATURE)
        for key, value in GEO.items():
            body.setdefault(key, value)
    return await client.post("/api/v1/punches", json=body, headers=headers)


@pytest.fixture
async def employee(async_client: AsyncClient) -> dict:
    """An active employee with PIN 4821 and a valid employee token."""
    emp = await create_employee(async_client)
    emp["headers"] = await employee_headers(async_client)
    return emp
