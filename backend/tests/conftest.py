"""Pytest configuration and fixtures for TradeLedger tests.

Every test gets its own in-memory SQLite database (aiosqlite, one shared
connection via StaticPool) with all tables created from the models, an
HTTP client wired to it, and tokens for a manager and a viewer.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import tradeledger.models  # noqa: F401
from tradeledger.auth.jwt import create_access_token
from tradeledger.auth.password import hash_password
from tradeledger.auth.permissions import resolve_permissions
from tradeledger.config import settings
from tradeledger.database import Base, get_db
from tradeledger.main import app
from tradeledger.models.user import User, UserRole
from tradeledger.services.backup import BackupRunner, get_backup_runner


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def _storage_dirs(tmp_path, monkeypatch):
    """Keep uploads and backup archives inside the test's tmp dir."""
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "backup_dir", str(tmp_path / "backups"))


class RecordingRunner(BackupRunner):
    """Records started jobs instead of scheduling them."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.started = []

    def start(self, job):
        self.started.append(job.id)


@pytest.fixture
def backup_runner(session_factory) -> RecordingRunner:
    return RecordingRunner(session_factory)


@pytest_asyncio.fixture
async def client(session_factory, backup_runner) -> AsyncGenerator[AsyncClient, None]:
    """Test client with the database and backup runner overridden.

    Each request runs in its own session and transaction, like production.
    """

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_backup_runner] = lambda: backup_runner

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

async def _make_user(db: AsyncSession, username: str, role: UserRole) -> User:
    user = User(
        username=username,
        full_name=username.title(),
        hashed_password=hash_password("testpassword123"),
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


def _headers(user: User) -> dict:
    token = create_access_token(
        user_id=user.id,
        role=user.role.value,
        permissions=resolve_permissions(user.role.value),
    )
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Manager account used by most API tests."""
    return await _make_user(db_session, "manager", UserRole.MANAGER)


@pytest_asyncio.fixture
async def viewer_user(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "viewer", UserRole.VIEWER)


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    return _headers(test_user)


@pytest.fixture
def viewer_headers(viewer_user: User) -> dict:
    return _headers(viewer_user)


@pytest_asyncio.fixture
async def import_setup(client: AsyncClient, auth_headers) -> dict:
    """Two suppliers and a shipping company, created through the API."""
    ids = {}
    for key, name in (("supplier_a", "Yiwu Toys"), ("supplier_b", "Guangzhou Textiles")):
        resp = await client.post("/api/suppliers/", headers=auth_headers, json={"name": name})
        assert resp.status_code == 201, resp.text
        ids[key] = resp.json()["id"]
    resp = await client.post(
        "/api/shipping-companies/", headers=auth_headers, json={"name": "Sea Freight Co"}
    )
    assert resp.status_code == 201, resp.text
    ids["company"] = resp.json()["id"]
    return ids


@pytest_asyncio.fixture
async def shipment(client: AsyncClient, auth_headers, import_setup) -> dict:
    """Shipment at purchase rate 7 with two items:

        supplier A: 10 CTN × 10 PCS at 5 RMB   →   500 RMB
        supplier B:  5 CTN × 20 PCS at 10 RMB  →  1000 RMB
    """
    resp = await client.post("/api/shipments/", headers=auth_headers, json={
        "shipment_name": "Spring toys",
        "purchase_date": "2025-03-01",
        "purchase_rmb_to_egp_rate": "7",
        "shipping_company_id": import_setup["company"],
        "items": [
            {
                "supplier_id": import_setup["supplier_a"],
                "product_name": "Plush bear",
                "cartons_ctn": 10,
                "pieces_per_carton_pcs": 10,
                "purchase_price_per_piece_rmb": "5",
            },
            {
                "supplier_id": import_setup["supplier_b"],
                "product_name": "Cotton towel",
                "cartons_ctn": 5,
                "pieces_per_carton_pcs": 20,
                "purchase_price_per_piece_rmb": "10",
            },
        ],
    })
    assert resp.status_code == 201, resp.text
    data = resp.json()
    data["setup"] = import_setup
    return data


# ── Pytest Configuration ─────────────────────────────────────────

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "auth: Authentication tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
