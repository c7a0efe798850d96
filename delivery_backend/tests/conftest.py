"""
Centralized Test Configuration.
"""

import itertools

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from delivery_backend.app.main import app
from delivery_backend.app.db.session import get_db, Base
from delivery_backend.app.core.exceptions import PaymentGatewayError
from delivery_backend.app.core.jwt import create_identity_token
from delivery_backend.app.core.redis_client import get_redis
from delivery_backend.app.domain.payments.gateway import PaymentIntent, get_payment_gateway
from delivery_backend.app.models.account import Account
from delivery_backend.app.models.enums import AccountRole, AccountStatus
from delivery_backend.app.models.rider import RiderApplication
from delivery_backend.app.models.rider_enums import RiderStatus
from delivery_backend.app.db.session import utcnow

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def ping(self):
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, key):
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        return 1 if key in self.store else 0

    async def flushdb(self):
        self.store = {}
        self.ttls = {}

    async def aclose(self):
        self.store = {}


class FakePaymentGateway:
    """In-memory stand-in for the PaymentIntents API."""

    provider = "stripe"

    def __init__(self):
        self.intents = {}
        self.created = []
        self._ids = itertools.count(1)

    def reset(self):
        self.intents = {}
        self.created = []

    def add_intent(self, intent_id, status="succeeded", amount=0, currency="usd", methods=("card",), metadata=None):
        self.intents[intent_id] = PaymentIntent(
            id=intent_id,
            status=status,
            amount=amount,
            currency=currency,
            client_secret=f"{intent_id}_secret",
            payment_method_types=list(methods),
            metadata=dict(metadata or {}),
        )
        return self.intents[intent_id]

    async def create_intent(self, amount_minor_units, currency, metadata=None):
        intent = self.add_intent(
            f"pi_test_{next(self._ids)}", status="requires_payment_method",
            amount=amount_minor_units, currency=currency, metadata=metadata,
        )
        self.created.append(intent)
        return intent

    async def retrieve_intent(self, intent_id):
        if intent_id not in self.intents:
            raise PaymentGatewayError(f"No such payment intent: {intent_id}")
        return self.intents[intent_id]


_redis = MockRedis()
_gateway = FakePaymentGateway()


@pytest.fixture
def redis_client():
    return _redis


@pytest.fixture
def payment_gateway():
    return _gateway


@pytest.fixture(scope="session", autouse=True)
def apply_overrides():
    """Apply overrides once for the session."""

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return _redis

    def override_get_payment_gateway():
        return _gateway

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_payment_gateway] = override_get_payment_gateway
    yield
    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await _redis.flushdb()
    _gateway.reset()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


def auth_headers(uid: str, email: str) -> dict:
    return {"Authorization": f"Bearer {create_identity_token(uid, email)}"}


async def create_account(db, uid, email, role=AccountRole.USER, name=None) -> Account:
    account = Account(
        uid=uid,
        email=email,
        name=name or uid,
        provider="password",
        role=role,
        status=AccountStatus.ACTIVE,
    )
    db.add(account)
    await db.commit()
    return account


async def create_rider(db, created_by_email, phone, nid, status=RiderStatus.APPROVED, name="Rider") -> RiderApplication:
    now = utcnow()
    rider = RiderApplication(
        name=name,
        phone=phone,
        nid=nid,
        region="Dhaka",
        district="Dhaka",
        created_by_email=created_by_email,
        status=status,
        created_at=now,
        updated_at=now,
        approved_at=now if status == RiderStatus.APPROVED else None,
    )
    db.add(rider)
    await db.commit()
    return rider


@pytest.fixture
async def admin(db_session):
    return await create_account(db_session, "admin-uid", "admin@test.com", AccountRole.ADMIN, "Admin")


@pytest.fixture
async def customer(db_session):
    return await create_account(db_session, "customer-uid", "customer@test.com", AccountRole.USER, "Customer")


@pytest.fixture
async def rider_account(db_session):
    """An account with the rider role and an approved application."""
    account = await create_account(db_session, "rider-uid", "rider@test.com", AccountRole.RIDER, "Rider One")
    rider = await create_rider(db_session, account.email, "01700000001", "NID-0001", name="Rider One")
    return account, rider


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin.uid, admin.email)


@pytest.fixture
def customer_headers(customer):
    return auth_headers(customer.uid, customer.email)


@pytest.fixture
def rider_headers(rider_account):
    account, _ = rider_account
    return auth_headers(account.uid, account.email)


PARCEL_PAYLOAD = {
    "parcel_title": "Documents",
    "parcel_type": "document",
    "weight_kg": 0.5,
    "payment_type": "COD",
    "delivery_cost": 60,
    "cod_amount": 25.00,
    "sender_name": "Sender",
    "sender_phone": "01800000000",
    "sender_region": "Dhaka",
    "sender_center": "Mirpur",
    "receiver_name": "Receiver",
    "receiver_phone": "01900000000",
    "receiver_region": "Chattogram",
    "receiver_center": "Agrabad",
    "receiver_address": "12 Port Road",
}


@pytest.fixture
def parcel_payload():
    return dict(PARCEL_PAYLOAD)


@pytest.fixture
async def parcel(client, customer_headers, parcel_payload):
    """A parcel created by the customer through the API."""
    response = await client.post("/v1/parcels", json=parcel_payload, headers=customer_headers)
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def make_account(db_session):
    async def _make(uid, email, role=AccountRole.USER, name=None):
        return await create_account(db_session, uid, email, role, name)
    return _make


@pytest.fixture
def make_rider(db_session):
    async def _make(created_by_email, phone, nid, status=RiderStatus.APPROVED, name="Rider"):
        return await create_rider(db_session, created_by_email, phone, nid, status, name)
    return _make


@pytest.fixture
def headers_for():
    def _headers(account):
        return auth_headers(account.uid, account.email)
    return _headers
