"""Tests for PriceRecordStore against an in-memory SQLite database."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, insert, select
from sqlalchemy.exc import OperationalError

from goldwatch.core.exceptions import PersistenceError
from goldwatch.models import PriceRecord, ProductCategory, VendorSource
from goldwatch.schemas.price_record import PriceRecordFilter
from goldwatch.services.price_record_service import PriceRecordStore

from conftest import make_record


async def count_rows(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count(PriceRecord.id)))).scalar()


# ============================================================================
# UPSERT
# ============================================================================

class TestCreateBatch:

    async def test_first_batch_inserts(self, store, session_factory):
        records = [make_record("1 gram"), make_record("5 gram", sell_price=5_448_588, buy_price=5_435_000)]

        saved, updated = await store.create_batch(records)

        assert (saved, updated) == (2, 0)
        assert await count_rows(session_factory) == 2

    async def test_identical_batch_is_idempotent(self, store, session_factory):
        records = [make_record("1 gram"), make_record("2 gram", sell_price=2_480_000, buy_price=2_300_000)]

        await store.create_batch(records)
        saved, updated = await store.create_batch(records)

        assert (saved, updated) == (0, 2)
        assert await count_rows(session_factory) == 2

    async def test_last_write_wins(self, store):
        await store.create_batch([make_record("1 gram", sell_price=1_271_000)])
        await store.create_batch([make_record("1 gram", sell_price=1_300_000, buy_price=1_200_000)])

        rows = await store.get_by_date(date(2024, 10, 14))
        assert len(rows) == 1
        assert rows[0].sell_price == 1_300_000
        assert rows[0].buy_price == 1_200_000

    async def test_duplicates_inside_batch_count_as_updates(self, store, session_factory):
        batch = [
            make_record("1 gram", sell_price=1_000_000, buy_price=900_000),
            make_record("1 gram", sell_price=1_100_000, buy_price=950_000),
        ]

        saved, updated = await store.create_batch(batch)

        assert (saved, updated) == (1, 1)
        assert await count_rows(session_factory) == 1
        rows = await store.get_by_date(date(2024, 10, 14))
        assert rows[0].sell_price == 1_100_000

    async def test_same_weight_different_vendor_or_date_are_distinct(self, store, session_factory):
        batch = [
            make_record("1 gram"),
            make_record("1 gram", source=VendorSource.UBS),
            make_record("1 gram", pricing_date=date(2024, 10, 15)),
        ]

        assert await store.create_batch(batch) == (3, 0)
        assert await count_rows(session_factory) == 3

    async def test_empty_batch(self, store):
        assert await store.create_batch([]) == (0, 0)

    async def test_database_error_becomes_persistence_error(self):
        failing_factory = MagicMock(side_effect=OperationalError("INSERT", {}, Exception("database is locked")))
        store = PriceRecordStore(failing_factory)

        with pytest.raises(PersistenceError) as exc_info:
            await store.create_batch([make_record()])

        assert "Failed to save batch" in str(exc_info.value)
        assert isinstance(exc_info.value.original, OperationalError)

    async def test_out_of_range_price_becomes_persistence_error(self, store, session_factory):
        batch = [make_record("1 gram"), make_record("1000 gram", sell_price=2**63, buy_price=None)]

        with pytest.raises(PersistenceError):
            await store.create_batch(batch)

        assert await count_rows(session_factory) == 0

    async def test_kilo_bar_price_fits(self, store):
        await store.create_batch([make_record("1000 gram", sell_price=2_400_000_000, buy_price=2_250_000_000)])

        [row] = await store.get_by_date(date(2024, 10, 14))
        assert row.sell_price == 2_400_000_000

    async def test_failure_after_writes_rolls_back_whole_batch(self, store, session_factory, monkeypatch):
        upsert = PriceRecordStore._upsert
        written = []

        async def upsert_then_fail(self, session, records):
            counts = await upsert(self, session, records)
            written.append((await session.execute(select(func.count(PriceRecord.id)))).scalar())
            # Row without a sell price violates NOT NULL
            await session.execute(insert(PriceRecord).values(
                pricing_date=date(2024, 10, 14), gold_type="2 gram", source=VendorSource.ANTAM, sell_price=None,
            ))
            return counts

        monkeypatch.setattr(PriceRecordStore, "_upsert", upsert_then_fail)

        with pytest.raises(PersistenceError):
            await store.create_batch([make_record("1 gram"), make_record("5 gram", sell_price=5_400_000)])

        assert written == [2]
        assert await count_rows(session_factory) == 0

    async def test_create_returns_stored_row(self, store):
        row = await store.create(make_record("10 gram", sell_price=12_000_000, buy_price=11_000_000))

        assert row.id is not None
        assert row.gold_type == "10 gram"
        assert row.source == VendorSource.ANTAM
        assert row.category == ProductCategory.EMAS_BATANGAN

        again = await store.create(make_record("10 gram", sell_price=12_500_000, buy_price=11_000_000))
        assert again.id == row.id
        assert again.sell_price == 12_500_000


# ============================================================================
# QUERIES
# ============================================================================

class TestQueries:

    async def test_get_latest_one_row_per_type_and_vendor(self, store):
        await store.create_batch([
            make_record("1 gram", pricing_date=date(2024, 10, 13), sell_price=1_250_000),
            make_record("1 gram", pricing_date=date(2024, 10, 14), sell_price=1_271_000),
            make_record("1 gram", pricing_date=date(2024, 10, 12), source=VendorSource.UBS, sell_price=1_200_000),
            make_record("5 gram", pricing_date=date(2024, 10, 13), sell_price=5_400_000, buy_price=5_000_000),
        ])

        latest = await store.get_latest()

        summary = {(r.gold_type, r.source): (r.pricing_date, r.sell_price) for r in latest}
        assert summary == {
            ("1 gram", VendorSource.ANTAM): (date(2024, 10, 14), 1_271_000),
            ("1 gram", VendorSource.UBS): (date(2024, 10, 12), 1_200_000),
            ("5 gram", VendorSource.ANTAM): (date(2024, 10, 13), 5_400_000),
        }

    async def test_get_all_filters(self, store):
        await store.create_batch([
            make_record("1 gram", pricing_date=date(2024, 10, 1)),
            make_record("10 gram", pricing_date=date(2024, 10, 5), sell_price=12_000_000, buy_price=11_000_000),
            make_record("1 gram", pricing_date=date(2024, 10, 5), source=VendorSource.GALERI24),
            make_record(
                "1 gram", pricing_date=date(2024, 10, 9),
                category=ProductCategory.EMAS_BATANGAN_GIFT_SERIES, source=VendorSource.UBS,
            ),
        ])

        by_type = await store.get_all(PriceRecordFilter(gold_type="10 GRAM"))
        assert [r.gold_type for r in by_type] == ["10 gram"]
        assert await store.get_all(PriceRecordFilter(gold_type="1_gram")) == []
        assert await store.get_all(PriceRecordFilter(gold_type="%")) == []

        by_source = await store.get_all(PriceRecordFilter(source=VendorSource.GALERI24))
        assert len(by_source) == 1

        by_category = await store.get_all(PriceRecordFilter(category=ProductCategory.EMAS_BATANGAN_GIFT_SERIES))
        assert [r.source for r in by_category] == [VendorSource.UBS]

        in_range = await store.get_all(PriceRecordFilter(start_date=date(2024, 10, 2), end_date=date(2024, 10, 5)))
        assert len(in_range) == 2

        everything = await store.get_all()
        assert [r.pricing_date for r in everything] == sorted((r.pricing_date for r in everything), reverse=True)

        page = await store.get_all(PriceRecordFilter(limit=2, offset=1))
        assert [r.id for r in page] == [r.id for r in everything[1:3]]

    async def test_get_by_id_and_date(self, store):
        row = await store.create(make_record("1 gram"))

        assert (await store.get_by_id(row.id)).gold_type == "1 gram"
        assert await store.get_by_id(9999) is None
        assert len(await store.get_by_date(date(2024, 10, 14))) == 1
        assert await store.get_by_date(date(2000, 1, 1)) == []
        assert await store.count_by_date(date(2024, 10, 14)) == 1

    async def test_get_by_date_range_inclusive(self, store):
        await store.create_batch([
            make_record("1 gram", pricing_date=date(2024, 10, d)) for d in (1, 2, 3, 4)
        ])

        rows = await store.get_by_date_range(date(2024, 10, 2), date(2024, 10, 3))

        assert [r.pricing_date for r in rows] == [date(2024, 10, 2), date(2024, 10, 3)]

    async def test_stats_and_vendor_list(self, store):
        empty = await store.get_stats()
        assert empty.total_records == 0
        assert empty.latest_pricing_date is None

        await store.create_batch([
            make_record("1 gram", pricing_date=date(2024, 10, 1)),
            make_record("5 gram", pricing_date=date(2024, 10, 3), sell_price=5_400_000, buy_price=5_000_000),
            make_record("1 gram", pricing_date=date(2024, 10, 2), source=VendorSource.GALERI24),
        ])

        stats = await store.get_stats()
        assert stats.total_records == 3
        assert stats.unique_vendors == 2
        assert stats.unique_gold_types == 2
        assert stats.oldest_pricing_date == date(2024, 10, 1)
        assert stats.latest_pricing_date == date(2024, 10, 3)
        assert stats.latest_scraped_at is not None

        assert set(await store.get_vendor_list()) == {VendorSource.ANTAM, VendorSource.GALERI24}


# ============================================================================
# RETENTION
# ============================================================================

class TestDeleteOlderThan:

    async def test_deletes_strictly_older_rows(self, store):
        today = datetime.now(timezone.utc).date()
        await store.create_batch([
            make_record("1 gram", pricing_date=today),
            make_record("1 gram", pricing_date=today - timedelta(days=30)),
            make_record("1 gram", pricing_date=today - timedelta(days=31)),
            make_record("1 gram", pricing_date=today - timedelta(days=400)),
        ])

        deleted = await store.delete_older_than(30)

        assert deleted == 2
        remaining = sorted(r.pricing_date for r in await store.get_all())
        assert remaining == [today - timedelta(days=30), today]

    async def test_negative_days_rejected(self, store):
        with pytest.raises(ValueError):
            await store.delete_older_than(-1)
