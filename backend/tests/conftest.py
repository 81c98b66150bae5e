"""
Test Configuration — Fixtures for async DB, test client, and mock data.

Each test gets its own in-memory SQLite database. Application code commits
and rolls back on its own (approval atomicity, per-line savepoints), so the
schema is rebuilt per test instead of wrapping tests in an outer rollback.
"""

import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from api.deps import get_current_user, get_db
from api.main import app
from db.session import Base

# StaticPool keeps one connection so every session sees the same :memory: DB
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

AGENCY_ID = "00000000-0000-0000-0000-000000000001"
OTHER_AGENCY_ID = "00000000-0000-0000-0000-000000000002"


@pytest.fixture
async def test_engine():
    """Create a test database engine and build all tables."""
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


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def agency_id():
    return uuid.UUID(AGENCY_ID)


@pytest.fixture
def mock_user():
    """Mock authenticated user."""
    return {
        "sub": "auth0|test-user-id",
        "email": "agent@threadcount.test",
        "agency_id": AGENCY_ID,
    }


@pytest.fixture
async def client(test_db, mock_user):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    def override_get_current_user():
        return mock_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def seeded_db(test_db):
    """Two agencies; no catalog products."""
    from db.models import Agency

    test_db.add(Agency(agency_id=uuid.UUID(AGENCY_ID), name="Colombo Agency"))
    test_db.add(Agency(agency_id=uuid.UUID(OTHER_AGENCY_ID), name="Kandy Agency"))
    await test_db.commit()
    return {"agency_id": uuid.UUID(AGENCY_ID), "other_agency_id": uuid.UUID(OTHER_AGENCY_ID)}


@pytest.fixture
async def catalog_db(test_db, seeded_db):
    """Seeded agencies plus a small apparel catalog for the first agency."""
    from db.models import Product

    agency = seeded_db["agency_id"]
    products = {
        "solace": Product(
            agency_id=agency,
            name="SOLACE-BLACK",
            category="Innerwear",
            sub_category="Solace",
            colors=["BLACK"],
            sizes=["32", "34", "42"],
            selling_price=650,
            billing_price=500,
        ),
        "vest": Product(
            agency_id=agency,
            name="CV90 COLOR VEST",
            category="Vests",
            sub_category="Color Vest",
            colors=["RED", "BLUE"],
            sizes=["S", "M", "L"],
            selling_price=400,
            billing_price=300,
        ),
        "britny": Product(
            agency_id=agency,
            name="BRITNY BRA",
            category="Innerwear",
            sub_category="Britny",
            colors=["WHITE"],
            sizes=["M", "L", "XL"],
            selling_price=900,
            billing_price=750,
        ),
    }
    for product in products.values():
        test_db.add(product)
    await test_db.commit()
    return {**seeded_db, **products}
