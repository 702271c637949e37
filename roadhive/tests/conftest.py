"""
Shared fixtures: in-memory database, fake Redis, role tokens and loads at
each stage of a Mumbai -> Delhi trip.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from roadhive.app.main import app
from roadhive.app.db.session import get_db, Base
from roadhive.app.core.redis_client import get_redis
from roadhive.app.core.jwt import create_access_token
from roadhive.app.tracking.api_client import TripApiClient
import roadhive.app.core.redis_client as redis_client_module
from roadhive.tests.factories import (
    SHIPPER, OTHER_SHIPPER, TRANSPORTER, DRIVER, OTHER_DRIVER, RECEIVER, SUPER_ADMIN,
    auth, load_payload,
)

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class MockRedis:
    """In-memory stand-in for the OTP attempt counters."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def ping(self):
        return True

    async def incr(self, key):
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    async def expire(self, key, seconds):
        if key not in self.store:
            return False
        self.ttls[key] = seconds
        return True

    async def delete(self, key):
        self.ttls.pop(key, None)
        return 1 if self.store.pop(key, None) is not None else 0

    async def flushdb(self):
        self.store = {}
        self.ttls = {}

# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()

@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session.
    Global override is safer here than per-test override to avoid app state flux.
    """

    # Patch the global redis client used by the health check
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client

@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

@pytest.fixture
def session_factory():
    return TestingSessionLocal

# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


# Tokens per role

@pytest.fixture
def shipper_token():
    return create_access_token(data=SHIPPER)

@pytest.fixture
def other_shipper_token():
    return create_access_token(data=OTHER_SHIPPER)

@pytest.fixture
def transporter_token():
    return create_access_token(data=TRANSPORTER)

@pytest.fixture
def driver_token():
    return create_access_token(data=DRIVER)

@pytest.fixture
def other_driver_token():
    return create_access_token(data=OTHER_DRIVER)

@pytest.fixture
def receiver_token():
    return create_access_token(data=RECEIVER)

@pytest.fixture
def super_admin_token():
    return create_access_token(data=SUPER_ADMIN)


# Loads at each stage of the trip

@pytest.fixture
async def posted_load(client, shipper_token):
    response = await client.post("/v1/loads", json=load_payload(), headers=auth(shipper_token))
    assert response.status_code == 201
    return response.json()

@pytest.fixture
async def assigned_load(client, posted_load, transporter_token):
    response = await client.post(
        f"/v1/loads/{posted_load['id']}/bids",
        json={"amount": 48000.0, "vehicle_details": "MH-04-AB-1234", "driver_id": DRIVER["user_id"]},
        headers=auth(transporter_token),
    )
    assert response.status_code == 200
    return response.json()

@pytest.fixture
async def in_transit_load(client, assigned_load, driver_token):
    response = await client.patch(
        f"/v1/loads/{assigned_load['id']}/status",
        json={"status": "In Transit"},
        headers=auth(driver_token),
    )
    assert response.status_code == 200
    return response.json()

@pytest.fixture
async def reached_load(client, in_transit_load, driver_token):
    response = await client.patch(
        f"/v1/loads/{in_transit_load['id']}/status",
        json={"status": "Reached"},
        headers=auth(driver_token),
    )
    assert response.status_code == 200
    return response.json()


# Tracking client wired to the in-process app

@pytest.fixture
async def api_client_for():
    """Build TripApiClients for tokens, talking to the in-process app."""
    opened = []

    def build(token: str) -> TripApiClient:
        http = AsyncClient(transport=ASGITransport(app=app), base_url="http://test/v1")
        opened.append(http)
        return TripApiClient(token=token, client=http)

    yield build

    for http in opened:
        await http.aclose()
