import os
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# ------------------------------------------------------------------
# FORCE TESTING MODE
# Must be set BEFORE importing app.main so database.py builds the
# in-memory SQLite engine (StaticPool) instead of the Postgres one.
# ------------------------------------------------------------------
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENV"] = "test"
os.environ["DEFAULT_ADMIN_EMAIL"] = ""

from app.main import app  # noqa: E402
from app.core.database import AsyncSessionLocal, engine, init_db  # noqa: E402
from app.models.department import Department  # noqa: E402
from app.models.faculty import Faculty  # noqa: E402

ADMIN_EMAIL = "admin@college.edu"


@pytest_asyncio.fixture(autouse=True)
async def database():
    # Fresh schema per test; disposing drops the in-memory database
    await init_db()
    yield
    await engine.dispose()


@pytest_asyncio.fixture
async def session():
    async with AsyncSessionLocal() as s:
        yield s


@pytest_asyncio.fixture
async def client():
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
        headers={"X-Admin-Email": ADMIN_EMAIL},
    ) as ac:
        yield ac


@pytest.fixture
def make_faculty(session):
    counter = {"n": 0}

    async def _make(first_name=None, department="Computer Science", is_active=True, **extra):
        counter["n"] += 1
        n = counter["n"]
        faculty = Faculty(
            first_name=first_name or f"Faculty{n}",
            last_name="Test",
            department=department,
            email=f"faculty{n}@college.edu",
            is_active=is_active,
            admin_email=ADMIN_EMAIL,
            **extra,
        )
        session.add(faculty)
        await session.commit()
        await session.refresh(faculty)
        session.expunge(faculty)
        return faculty

    return _make


@pytest.fixture
def make_department(session):
    async def _make(name, hod_id=None, is_active=False):
        department = Department(
            name=name,
            department_hod_id=hod_id,
            is_department_active=is_active,
            admin_email=ADMIN_EMAIL,
        )
        session.add(department)
        await session.commit()
        await session.refresh(department)
        session.expunge(department)
        return department

    return _make
