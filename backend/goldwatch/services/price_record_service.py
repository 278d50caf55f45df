"""Price record service: persistence and queries for scraped gold prices.

Writes are idempotent upserts keyed by (pricing_date, gold_type, source).
A batch is written in a single transaction; any failure rolls the whole
batch back and surfaces as PersistenceError.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from goldwatch.core.exceptions import PersistenceError
from goldwatch.models.enums import VendorSource
from goldwatch.models.price_record import PriceRecord
from goldwatch.scrapers.base import NormalizedPriceRecord
from goldwatch.schemas.price_record import PriceRecordFilter, PriceStats

logger = structlog.get_logger(__name__)


IDENTITY_COLUMNS = ("pricing_date", "gold_type", "source")
UPDATABLE_COLUMNS = ("base_price", "buy_price", "sell_price", "include_tax", "category", "scraped_at")


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class PriceRecordStore:
    """Store for PriceRecord rows.

    Each public method opens its own session from the factory, so the
    store can be shared between concurrent scrape runs.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize price record store.

        Args:
            session_factory: Async session factory bound to the target database
        """
        self._session_factory = session_factory
        self.logger = logger.bind(service="price_record_store")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_batch(self, records: Sequence[NormalizedPriceRecord]) -> Tuple[int, int]:
        """Upsert a batch of normalized records in one transaction.

        Keys already stored are counted as updated, the rest as saved. A key
        repeated inside the batch counts as an update after its first
        occurrence, and the last occurrence wins.

        Args:
            records: Normalized records from one scrape run

        Returns:
            Tuple of (saved_count, updated_count)

        Raises:
            PersistenceError: the batch was rolled back
        """
        if not records:
            return 0, 0

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    saved, updated = await self._upsert(session, records)
        except (SQLAlchemyError, OverflowError) as e:
            self.logger.error("batch_save_failed", count=len(records), error=str(e), exc_info=True)
            raise PersistenceError(f"Failed to save batch: {e}", original=e) from e

        self.logger.info("batch_saved", saved=saved, updated=updated)
        return saved, updated

    async def create(self, record: NormalizedPriceRecord) -> PriceRecord:
        """Upsert a single record and return the stored row.

        Raises:
            PersistenceError: the write was rolled back
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await self._upsert(session, [record])
                    result = await session.execute(
                        select(PriceRecord).where(
                            PriceRecord.pricing_date == record.pricing_date,
                            PriceRecord.gold_type == record.gold_type,
                            PriceRecord.source == record.source,
                        )
                    )
                    row = result.scalar_one()
        except (SQLAlchemyError, OverflowError) as e:
            self.logger.error("record_save_failed", gold_type=record.gold_type, error=str(e), exc_info=True)
            raise PersistenceError(f"Failed to save record: {e}", original=e) from e
        return row

    async def _upsert(self, session: AsyncSession, records: Sequence[NormalizedPriceRecord]) -> Tuple[int, int]:
        existing = await self._existing_keys(session, records)

        saved = 0
        updated = 0
        seen = set(existing)
        rows: Dict[tuple, Dict[str, Any]] = {}
        scraped_at = datetime.now(timezone.utc)

        for record in records:
            key = record.identity_key
            if key in seen:
                updated += 1
            else:
                saved += 1
                seen.add(key)
            rows[key] = {
                "pricing_date": record.pricing_date,
                "gold_type": record.gold_type,
                "source": record.source,
                "base_price": record.base_price,
                "buy_price": record.buy_price,
                "sell_price": record.sell_price,
                "include_tax": record.include_tax,
                "category": record.category,
                "scraped_at": scraped_at,
            }

        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise PersistenceError(f"Unsupported database dialect: {dialect}")

        stmt = insert(PriceRecord).values(list(rows.values()))
        stmt = stmt.on_conflict_do_update(
            index_elements=list(IDENTITY_COLUMNS),
            set_={
                **{column: stmt.excluded[column] for column in UPDATABLE_COLUMNS},
                "updated_at": func.now(),
            },
        )
        await session.execute(stmt)
        return saved, updated

    async def _existing_keys(self, session: AsyncSession, records: Sequence[NormalizedPriceRecord]) -> set:
        dates = {r.pricing_date for r in records}
        sources = {r.source for r in records}
        wanted = {r.identity_key for r in records}

        result = await session.execute(
            select(PriceRecord.pricing_date, PriceRecord.gold_type, PriceRecord.source).where(
                PriceRecord.pricing_date.in_(dates),
                PriceRecord.source.in_(sources),
            )
        )
        return {tuple(row) for row in result.all()} & wanted

    async def delete_older_than(self, days: int) -> int:
        """Delete records whose pricing_date is before today (UTC) minus days.

        Returns:
            Number of rows deleted
        """
        if days < 0:
            raise ValueError("days must be non-negative")

        cutoff = _utc_today() - timedelta(days=days)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(PriceRecord).where(PriceRecord.pricing_date < cutoff)
                    )
        except SQLAlchemyError as e:
            self.logger.error("purge_failed", days=days, error=str(e), exc_info=True)
            raise PersistenceError(f"Failed to delete old records: {e}", original=e) from e

        deleted = result.rowcount or 0
        self.logger.info("old_records_deleted", cutoff=cutoff.isoformat(), deleted=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _fetch_all(self, query) -> List[PriceRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error("query_failed", error=str(e), exc_info=True)
            raise PersistenceError(f"Failed to query price records: {e}", original=e) from e

    async def _fetch_scalar(self, query) -> Any:
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return result.scalar()
        except SQLAlchemyError as e:
            self.logger.error("query_failed", error=str(e), exc_info=True)
            raise PersistenceError(f"Failed to query price records: {e}", original=e) from e

    async def get_all(self, filter: Optional[PriceRecordFilter] = None) -> List[PriceRecord]:
        """List records matching a filter, newest pricing date first.

        A limit of 0 (or None) means no limit.
        """
        filter = filter or PriceRecordFilter()
        query = select(PriceRecord)

        if filter.gold_type:
            query = query.where(PriceRecord.gold_type.icontains(filter.gold_type, autoescape=True))
        if filter.source:
            query = query.where(PriceRecord.source == filter.source)
        if filter.category:
            query = query.where(PriceRecord.category == filter.category)
        if filter.start_date:
            query = query.where(PriceRecord.pricing_date >= filter.start_date)
        if filter.end_date:
            query = query.where(PriceRecord.pricing_date <= filter.end_date)

        query = query.order_by(
            PriceRecord.pricing_date.desc(),
            PriceRecord.source.asc(),
            PriceRecord.gold_type.asc(),
        )

        if filter.limit:
            query = query.limit(filter.limit)
        if filter.offset:
            query = query.offset(filter.offset)

        return await self._fetch_all(query)

    async def get_latest(self) -> List[PriceRecord]:
        """One record per (gold_type, source): the one with the newest pricing_date."""
        newest = (
            select(
                PriceRecord.gold_type,
                PriceRecord.source,
                func.max(PriceRecord.pricing_date).label("max_date"),
            )
            .group_by(PriceRecord.gold_type, PriceRecord.source)
            .subquery()
        )
        query = (
            select(PriceRecord)
            .join(
                newest,
                (PriceRecord.gold_type == newest.c.gold_type)
                & (PriceRecord.source == newest.c.source)
                & (PriceRecord.pricing_date == newest.c.max_date),
            )
            .order_by(PriceRecord.source.asc(), PriceRecord.gold_type.asc())
        )
        return await self._fetch_all(query)

    async def get_by_id(self, record_id: int) -> Optional[PriceRecord]:
        records = await self._fetch_all(select(PriceRecord).where(PriceRecord.id == record_id))
        return records[0] if records else None

    async def get_by_date(self, pricing_date: date) -> List[PriceRecord]:
        return await self._fetch_all(
            select(PriceRecord)
            .where(PriceRecord.pricing_date == pricing_date)
            .order_by(PriceRecord.source.asc(), PriceRecord.gold_type.asc())
        )

    async def get_by_date_range(self, start_date: date, end_date: date) -> List[PriceRecord]:
        """Records with start_date <= pricing_date <= end_date, oldest first."""
        if end_date < start_date:
            raise ValueError("end_date must not be before start_date")
        return await self._fetch_all(
            select(PriceRecord)
            .where(PriceRecord.pricing_date >= start_date, PriceRecord.pricing_date <= end_date)
            .order_by(PriceRecord.pricing_date.asc(), PriceRecord.source.asc(), PriceRecord.gold_type.asc())
        )

    async def count_by_date(self, pricing_date: date) -> int:
        count = await self._fetch_scalar(
            select(func.count(PriceRecord.id)).where(PriceRecord.pricing_date == pricing_date)
        )
        return count or 0

    async def get_vendor_list(self) -> List[VendorSource]:
        """Distinct vendors that have at least one stored record."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(PriceRecord.source).distinct().order_by(PriceRecord.source.asc())
                )
                return [VendorSource(value) for value in result.scalars().all()]
        except SQLAlchemyError as e:
            self.logger.error("query_failed", error=str(e), exc_info=True)
            raise PersistenceError(f"Failed to query vendor list: {e}", original=e) from e

    async def get_stats(self) -> PriceStats:
        """Summary counts and date bounds over the whole table."""
        query = select(
            func.count(PriceRecord.id),
            func.count(func.distinct(PriceRecord.source)),
            func.count(func.distinct(PriceRecord.gold_type)),
            func.max(PriceRecord.scraped_at),
            func.min(PriceRecord.pricing_date),
            func.max(PriceRecord.pricing_date),
        )
        try:
            async with self._session_factory() as session:
                row = (await session.execute(query)).one()
        except SQLAlchemyError as e:
            self.logger.error("query_failed", error=str(e), exc_info=True)
            raise PersistenceError(f"Failed to compute stats: {e}", original=e) from e

        return PriceStats(
            total_records=row[0] or 0,
            unique_vendors=row[1] or 0,
            unique_gold_types=row[2] or 0,
            latest_scraped_at=row[3],
            oldest_pricing_date=row[4],
            latest_pricing_date=row[5],
        )
