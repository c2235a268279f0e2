"""
conftest.py: shared fixtures for the lembur test suite.

Strategy:
- Point DATABASE_URL at a throwaway SQLite file (aiosqlite) before the app is
  imported; tables are created from the ORM metadata and emptied after every test.
- The app's get_db / get_sessionmaker are overridden with a NullPool engine so
  connections never outlive the event loop of the test that opened them.
- The photo classifier is replaced by a fake whose answer each test can set;
  the overlay and change feed are fresh per test.
- Users are inserted directly and logged in through /api/auth/login.
"""

from __future__ import annotations

import os
import tempfile
import uuid
from pathlib import Path

_TMP_DIR = Path(tempfile.mkdtemp(prefix="lembur-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR / 'lembur.db'}"
os.environ["PHOTO_STORAGE_DIR"] = str(_TMP_DIR / "storage")
os.environ["PHOTO_UPLOAD_BACKOFF_SEC"] = "0"
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "false"
os.environ["GEMINI_API_KEY"] = ""
os.environ["PHOTO_GATE_ENABLED"] = "true"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool  # noqa: E402

from lembur.core.config import settings  # noqa: E402
from lembur.core.security import hash_password  # noqa: E402
from lembur.db.models import ROLE_ADMIN, ROLE_USER, Base, User  # noqa: E402
from lembur.db.session import get_db, get_sessionmaker  # noqa: E402
from lembur.main import app  # noqa: E402
from lembur.services.feed import RecordFeed, get_feed  # noqa: E402
from lembur.services.overlay import PendingPhotoOverlay, get_overlay  # noqa: E402
from lembur.services.photo_classifier import get_photo_classifier  # noqa: E402
from tests.fakes import MEDAN, PHOTO_DATA_URI, FakeClassifier  # noqa: E402

# ---------------------------------------------------------------------------
# Database engine for tests (replaces the app's engine through overrides)
# ---------------------------------------------------------------------------
_test_engine = create_async_engine(settings.DATABASE_URL, poolclass=NullPool)
_TestSession = async_sessionmaker(_test_engine, class_=AsyncSession, expire_on_commit=False)


@event.listens_for(_test_engine.sync_engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def _override_get_db():
    async with _TestSession() as session:
        yield session


# ---------------------------------------------------------------------------
# Schema + dependency overrides
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(autouse=True)
async def _database():
    """Create tables if needed, then empty them after the test."""
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with _test_engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())


@pytest.fixture
def classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def overlay() -> PendingPhotoOverlay:
    return PendingPhotoOverlay(ttl_sec=120)


@pytest.fixture
def feed() -> RecordFeed:
    return RecordFeed(queue_size=10)


@pytest.fixture(autouse=True)
def _overrides(classifier: FakeClassifier, overlay: PendingPhotoOverlay, feed: RecordFeed):
    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_sessionmaker] = lambda: _TestSession
    app.dependency_overrides[get_photo_classifier] = lambda: classifier
    app.dependency_overrides[get_overlay] = lambda: overlay
    app.dependency_overrides[get_feed] = lambda: feed
    yield
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# HTTP client fixture
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client() -> AsyncClient:
    """Fresh HTTPX async client per test function (maintains cookie jar)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db() -> AsyncSession:
    """Provides a raw DB session for direct DB queries in tests."""
    async with _TestSession() as session:
        yield session


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    return _TestSession


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def _create_user(
    *,
    name: str,
    role: str,
    jabatan: str,
    password: str,
    is_active: bool = True,
) -> dict:
    email = f"qa_{uuid.uuid4().hex[:8]}@lembur.test"
    async with _TestSession() as session:
        user = User(
            email=email,
            password_hash=hash_password(password),
            name=name,
            nip=uuid.uuid4().hex[:18],
            pangkat="Penata Muda (III/a)",
            jabatan=jabatan,
            role=role,
            is_active=is_active,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return {"id": user.id, "email": email, "password": password, "name": name}


async def _login(email: str, password: str) -> str:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        resp = await ac.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, f"Login failed: {resp.text}"
        return resp.json()["access_token"]


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def admin_user() -> dict:
    return await _create_user(
        name="Admin Kantor", role=ROLE_ADMIN, jabatan="ADMIN", password="QaAdmin123!"
    )


@pytest_asyncio.fixture
async def admin_headers(admin_user: dict) -> dict:
    return _bearer(await _login(admin_user["email"], admin_user["password"]))


@pytest_asyncio.fixture
async def employee_user() -> dict:
    return await _create_user(
        name="Budi Santoso", role=ROLE_USER, jabatan="Analis Kepegawaian", password="QaEmp123!"
    )


@pytest_asyncio.fixture
async def employee_headers(employee_user: dict) -> dict:
    return _bearer(await _login(employee_user["email"], employee_user["password"]))


@pytest_asyncio.fixture
async def other_employee() -> dict:
    return await _create_user(
        name="Siti Aminah", role=ROLE_USER, jabatan="Pengelola Keuangan", password="QaOther123!"
    )


@pytest_asyncio.fixture
async def other_headers(other_employee: dict) -> dict:
    return _bearer(await _login(other_employee["email"], other_employee["password"]))


@pytest_asyncio.fixture
async def inactive_user() -> dict:
    return await _create_user(
        name="Pegawai Nonaktif",
        role=ROLE_USER,
        jabatan="Staf",
        password="QaInactive123!",
        is_active=False,
    )


# ---------------------------------------------------------------------------
# Overtime helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def check_in_payload() -> dict:
    return {
        "purpose": "Menyusun laporan keuangan triwulan",
        "photoDataUri": PHOTO_DATA_URI,
        "location": MEDAN,
    }


@pytest.fixture
def check_out_payload() -> dict:
    return {"photoDataUri": PHOTO_DATA_URI, "location": MEDAN}


@pytest_asyncio.fixture
async def checked_out_record(
    client: AsyncClient,
    employee_headers: dict,
    check_in_payload: dict,
    check_out_payload: dict,
) -> dict:
    """A completed session of the employee user, as returned by check-out."""
    resp = await client.post(
        "/api/overtime/check-in", json=check_in_payload, headers=employee_headers
    )
    assert resp.status_code == 201, resp.text
    record_id = resp.json()["id"]
    resp = await client.post(
        f"/api/overtime/{record_id}/check-out", json=check_out_payload, headers=employee_headers
    )
    assert resp.status_code == 200, resp.text
    return resp.json()
