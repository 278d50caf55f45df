"""Pytest configuration and shared fixtures."""

from datetime import date
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from goldwatch.models import Base, ProductCategory, VendorSource
from goldwatch.scrapers.base import NormalizedPriceRecord
from goldwatch.services.price_record_service import PriceRecordStore


@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite database with the schema created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield SessionLocal

    await engine.dispose()


@pytest.fixture
def store(session_factory) -> PriceRecordStore:
    return PriceRecordStore(session_factory)


def make_record(
    gold_type: str = "1 gram",
    sell_price: int = 1_271_000,
    buy_price: Optional[int] = 1_132_000,
    pricing_date: date = date(2024, 10, 14),
    source: VendorSource = VendorSource.ANTAM,
    category: ProductCategory = ProductCategory.EMAS_BATANGAN,
) -> NormalizedPriceRecord:
    """Build a NormalizedPriceRecord with sensible defaults."""
    return NormalizedPriceRecord(
        pricing_date=pricing_date,
        gold_type=gold_type,
        source=source,
        sell_price=sell_price,
        buy_price=buy_price,
        category=category,
    )
