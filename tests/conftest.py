"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from models import Base
from ingestion.quality import DealQualityScorer
from datetime import datetime, timedelta
from typing import AsyncGenerator

# In-memory SQLite shared across one test through a single static connection
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


async def _fetch_all(session: AsyncSession, model, *criteria):
    result = await session.execute(
        select(model)
        .where(*criteria)
        .order_by(model.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


def _future_iso(days: int) -> str:
    return (datetime.utcnow() + timedelta(days=days)).replace(microsecond=0).isoformat()


@pytest.fixture
def fetch_all():
    """Fresh rows from the database, bypassing stale identity-map state"""
    return _fetch_all


@pytest.fixture
def future_iso():
    """ISO timestamp N days from now"""
    return _future_iso


@pytest.fixture
def scorer():
    """Scorer pinned to the default thresholds"""
    return DealQualityScorer(
        min_quality_score=0.40,
        auto_reject_score=0.25,
        min_discount_percentage=5,
        min_price_difference=1.0,
    )


@pytest.fixture
def clearance_deal():
    """Complete, clearly discounted deal"""
    return {
        "merchantAlias": "Lansing Brewing Company",
        "rawPayload": {
            "title": "50% Off Everything Sale",
            "description": "Massive clearance sale! Get 50% off all items in store. Limited time only.",
            "discountPercentage": 50,
            "originalPrice": 100,
            "dealPrice": 50,
            "category": "Shopping",
            "endDate": _future_iso(30),
            "addressLine1": "518 E Shiawassee St",
            "city": "Lansing",
            "state": "MI",
            "postalCode": "48912",
            "sourceUrl": "https://lansingbrewingcompany.com/specials",
        },
        "confidence": 0.8,
    }


@pytest.fixture
def menu_deal():
    """Listing with nothing deal-like about it"""
    return {
        "merchantAlias": "Lansing Brewing Company",
        "rawPayload": {"title": "Menu", "description": "", "category": "Dining"},
        "confidence": 0.4,
    }


@pytest.fixture
def event_deal():
    """Priced event with a normalized payload"""
    return {
        "merchantAlias": "The Robin Theatre",
        "rawPayload": {"sourceUrl": "https://therobintheatre.com/events/jazz"},
        "normalizedPayload": {
            "title": "Jazz Night in REO Town",
            "description": "Live jazz quartet with local openers every Thursday.",
            "category": "Events",
            "price": {"amount": 15},
            "schedule": {"rule": {"startsAt": _future_iso(2), "endsAt": _future_iso(3)}},
            "location": {"name": "The Robin Theatre", "city": "Lansing", "state": "MI"},
        },
        "confidence": 0.6,
    }
