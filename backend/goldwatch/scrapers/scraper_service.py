"""Scrape orchestration service.

Connects fetching, extraction, normalization and persistence for one
vendor page. A run moves through FETCHING -> EXTRACTING -> NORMALIZING ->
PERSISTING and ends in DONE or FAILED; every transition is reported to the
diagnostic sink. Fatal errors end up in the returned ScrapeResult instead
of propagating to the caller.
"""

import time
from datetime import date, datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, List, Optional

import structlog
from bs4 import BeautifulSoup

from goldwatch.config import settings
from goldwatch.core.exceptions import (
    ExtractionEmptyError,
    FetchError,
    FormatError,
    MisalignedBlockError,
    NormalizationError,
    PersistenceError,
    PriceInvariantError,
    UnknownSourceError,
)
from goldwatch.schemas.price_record import PriceRecordResponse
from goldwatch.schemas.scrape import ScrapeResult
from goldwatch.scrapers.base import (
    ExtractionContext,
    FetchedDocument,
    NormalizedPriceRecord,
    RawPriceTuple,
)
from goldwatch.scrapers.diagnostics import DiagnosticSink, StructlogDiagnosticSink
from goldwatch.scrapers.fetch_client import FetchClient, FetchConfig
from goldwatch.scrapers.sources import ScrapeSource, SourceRegistry, build_default_registry
from goldwatch.scrapers.strategies import ExtractionChain
from goldwatch.scrapers.utils.normalizer import (
    derive_buy_price,
    detect_category,
    format_gold_type,
    parse_currency,
    parse_pricing_date,
    parse_weight,
    qualify_gold_type,
    resolve_vendor,
)
from goldwatch.scrapers.utils.retry import linear_retry
from goldwatch.services.price_record_service import PriceRecordStore

logger = structlog.get_logger(__name__)


class RetryableRunFailure(Exception):
    """A run ended in a failure worth repeating (fetch exhausted or save failed)."""

    def __init__(self, result: ScrapeResult):
        super().__init__(result.message)
        self.result = result


class ScrapeState(str, Enum):
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    NORMALIZING = "normalizing"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


def normalize_price_tuple(raw: RawPriceTuple, pricing_date: date) -> NormalizedPriceRecord:
    """Turn one raw tuple into a canonical record.

    Raises:
        MisalignedBlockError: the tuple marks an unpairable text block
        UnknownVendorError: vendor label missing or not mapped
        FormatError: weight or price text cannot be parsed
        PriceInvariantError: observed buy price exceeds sell price
    """
    if raw.misaligned:
        raise MisalignedBlockError(raw.vendor_label or "unknown vendor", raw.weight_count, raw.price_count)

    source = resolve_vendor(raw.vendor_label)
    label = " ".join(part for part in (raw.category_hint, raw.product_label) if part)
    category = detect_category(label)
    gold_type = qualify_gold_type(format_gold_type(parse_weight(raw.weight or raw.product_label)), category)

    if not raw.sell_price:
        raise FormatError("", f"missing sell price for {gold_type}")
    sell_price = parse_currency(raw.sell_price)
    base_price = parse_currency(raw.base_price) if raw.base_price else None

    if raw.buy_price:
        buy_price = parse_currency(raw.buy_price)
        buy_price_derived = False
        if buy_price > sell_price:
            raise PriceInvariantError(gold_type, buy_price, sell_price)
    else:
        buy_price = derive_buy_price(sell_price)
        buy_price_derived = True

    return NormalizedPriceRecord(
        pricing_date=pricing_date,
        gold_type=gold_type,
        source=source,
        sell_price=sell_price,
        buy_price=buy_price,
        base_price=base_price,
        category=category,
        buy_price_derived=buy_price_derived,
    )


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def resolve_pricing_date(document: FetchedDocument, today: date) -> date:
    """Date printed on the page ("Diperbarui ..."), falling back to today."""
    texts = list(document.text_blocks)
    if document.html:
        texts.append(BeautifulSoup(document.html, "html.parser").get_text(" "))
    for text in texts:
        found = parse_pricing_date(text)
        if found:
            return found
    return today


class ScrapeOrchestrator:
    """Runs scrapes for registered vendor pages and persists the results.

    Every run builds its own strategy objects and browser session; the
    store opens one transaction per run, after fetching and extraction are
    complete.
    """

    def __init__(
        self,
        store: PriceRecordStore,
        fetch_client: Optional[FetchClient] = None,
        registry: Optional[SourceRegistry] = None,
        diagnostics: Optional[DiagnosticSink] = None,
        fetch_config: Optional[FetchConfig] = None,
        default_source: Optional[str] = None,
        clock: Callable[[], date] = _utc_today,
        run_retries: Optional[int] = None,
        run_backoff: Optional[float] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """Initialize the orchestrator.

        Args:
            store: Persistence for normalized records
            fetch_client: HTTP / browser fetcher (default FetchClient())
            registry: Known sources (default logammulia + galeri24)
            diagnostics: Sink for state transitions and capture stats
            fetch_config: Fetch settings (default from settings)
            default_source: Source used when trigger_scrape gets None
            clock: Returns "today" when the page prints no pricing date
            run_retries: Extra whole-run attempts after a fetch or save failure
            run_backoff: Linear backoff step between run attempts, in seconds
            sleep: Optional sleep coroutine used between run attempts
        """
        self.store = store
        self.fetch_client = fetch_client or FetchClient()
        self.registry = registry or build_default_registry()
        self.diagnostics = diagnostics or StructlogDiagnosticSink()
        self.fetch_config = fetch_config or settings.fetch_config()
        self.default_source = default_source or settings.DEFAULT_SOURCE
        self.clock = clock
        self.run_retries = settings.SCRAPE_RUN_RETRIES if run_retries is None else run_retries
        self.run_backoff = settings.SCRAPE_RUN_BACKOFF_SECONDS if run_backoff is None else run_backoff
        self.sleep = sleep
        self.logger = logger.bind(service="scrape_orchestrator")

    async def trigger_scrape(self, source_id: Optional[str] = None) -> ScrapeResult:
        """Run one complete scrape.

        A run that fails to fetch or to save is repeated up to run_retries
        times with linear backoff. Empty extraction and invalid records are
        returned on the first attempt.

        Args:
            source_id: Registered source identifier; None runs the default

        Returns:
            ScrapeResult (success=False on any fatal error)
        """
        source_id = source_id or self.default_source
        started = time.monotonic()
        self.logger.info("scrape_started", source=source_id)

        retrying = linear_retry(
            self.run_retries,
            self.run_backoff,
            retry_on=(RetryableRunFailure,),
            sleep=self.sleep,
            log_event="scrape_retry_scheduled",
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._run(source_id, started)
        except RetryableRunFailure as e:
            self.logger.error("scrape_attempts_exhausted", source=source_id, attempts=self.run_retries + 1)
            return e.result
        except Exception as e:
            self.logger.error("scrape_crashed", source=source_id, error=str(e), exc_info=True)
            self._transition(source_id, ScrapeState.FAILED, error=str(e))
            return self._failure(source_id, started, "Scrape failed unexpectedly", [str(e)])

    async def trigger_all(self) -> List[ScrapeResult]:
        """Scrape every registered source sequentially."""
        results = []
        for source in self.registry.list():
            results.append(await self.trigger_scrape(source.id))
        return results

    async def _run(self, source_id: str, started: float) -> ScrapeResult:
        try:
            source = self.registry.get(source_id)
        except UnknownSourceError as e:
            self.logger.warning("unknown_source", source=source_id)
            self._transition(source_id, ScrapeState.FAILED, error=str(e))
            return self._failure(source_id, started, str(e), [str(e)])

        # Fetching
        self._transition(source.id, ScrapeState.FETCHING, url=source.url, render=source.render)
        try:
            document = await self._fetch(source)
        except FetchError as e:
            self.logger.error("scrape_fetch_failed", source=source.id, error=str(e), exc_info=True)
            self._transition(source.id, ScrapeState.FAILED, error=str(e), status_code=e.status_code)
            raise RetryableRunFailure(self._failure(source.id, started, "Failed to fetch page", [str(e)]))

        self.diagnostics.record(
            "document_captured",
            source=source.id,
            html_length=len(document.html or ""),
            api_response_count=len(document.api_bodies),
            text_block_count=len(document.text_blocks),
            rendered=document.rendered,
        )

        # Extracting
        self._transition(source.id, ScrapeState.EXTRACTING)
        context = ExtractionContext(
            source_id=source.id,
            default_vendor=source.default_vendor,
            base_url=source.url,
            sell_only=source.sell_only,
        )
        outcome = ExtractionChain(source.build_strategies()).run(document, context)
        self.diagnostics.record(
            "extraction_finished",
            source=source.id,
            strategies_tried=list(outcome.tried),
            strategy=outcome.strategy,
            tuple_count=len(outcome.tuples),
        )

        if not outcome.tuples:
            error = ExtractionEmptyError(source.id, outcome.tried)
            self.logger.error("scrape_extraction_empty", source=source.id, tried=outcome.tried)
            self._transition(source.id, ScrapeState.FAILED, error=str(error))
            return self._failure(source.id, started, "no pricing data found", [str(error)] + outcome.errors)

        # Normalizing
        self._transition(source.id, ScrapeState.NORMALIZING, strategy=outcome.strategy)
        pricing_date = resolve_pricing_date(document, self.clock())
        records: List[NormalizedPriceRecord] = []
        errors: List[str] = list(outcome.errors)

        for raw in outcome.tuples:
            try:
                records.append(normalize_price_tuple(raw, pricing_date))
            except NormalizationError as e:
                self.logger.warning("record_normalization_failed", source=source.id, error=str(e))
                errors.append(str(e))

        total = len(outcome.tuples)
        failed = total - len(records)

        if not records:
            self._transition(source.id, ScrapeState.FAILED, failed=failed)
            return self._failure(
                source.id, started, f"No valid records among {total} scraped items", errors,
                pricing_date=pricing_date, total=total,
            )

        # Persisting
        self._transition(source.id, ScrapeState.PERSISTING, records=len(records))
        try:
            saved, updated = await self.store.create_batch(records)
        except PersistenceError as e:
            self.logger.error("scrape_persist_failed", source=source.id, error=str(e), exc_info=True)
            self._transition(source.id, ScrapeState.FAILED, error=str(e))
            raise RetryableRunFailure(self._failure(
                source.id, started, "Failed to save scraped prices", errors + [str(e)],
                pricing_date=pricing_date, total=total,
            ))

        data = None
        try:
            stored = await self.store.get_by_date(pricing_date)
            data = [PriceRecordResponse.model_validate(row) for row in stored]
        except PersistenceError as e:
            self.logger.warning("scrape_readback_failed", source=source.id, error=str(e))
            errors.append(str(e))

        if failed:
            message = f"Scraped {total} items: {saved} new, {updated} updated, {failed} failed"
        else:
            message = f"Successfully scraped {total} items: {saved} new, {updated} updated"

        self._transition(source.id, ScrapeState.DONE, saved=saved, updated=updated, failed=failed)
        self.logger.info(
            "scrape_completed",
            source=source.id,
            strategy=outcome.strategy,
            total=total,
            saved=saved,
            updated=updated,
            failed=failed,
        )

        return ScrapeResult(
            success=True,
            message=message,
            source=source.id,
            pricing_date=pricing_date,
            total_scraped=total,
            saved_count=saved,
            updated_count=updated,
            failed_count=failed,
            errors=errors,
            duration=_elapsed(started),
            data=data,
        )

    async def _fetch(self, source: ScrapeSource) -> FetchedDocument:
        if source.render:
            return await self.fetch_client.render(source.url, self.fetch_config)
        return await self.fetch_client.fetch(source.url, self.fetch_config)

    def _transition(self, source_id: str, state: ScrapeState, **fields) -> None:
        self.diagnostics.record("scrape_state", source=source_id, state=state.value, **fields)

    @staticmethod
    def _failure(
        source_id: str,
        started: float,
        message: str,
        errors: List[str],
        pricing_date: Optional[date] = None,
        total: int = 0,
    ) -> ScrapeResult:
        # Nothing was persisted, so every scraped item counts as failed
        return ScrapeResult(
            success=False,
            message=message,
            source=source_id,
            pricing_date=pricing_date,
            total_scraped=total,
            failed_count=total,
            errors=errors,
            duration=_elapsed(started),
        )


def _elapsed(started: float) -> str:
    return f"{time.monotonic() - started:.2f}s"


def build_orchestrator(
    session_factory=None,
    diagnostics: Optional[DiagnosticSink] = None,
) -> ScrapeOrchestrator:
    """Orchestrator wired to the process-wide database session factory."""
    if session_factory is None:
        from goldwatch.db.session import async_session_factory

        session_factory = async_session_factory
    return ScrapeOrchestrator(store=PriceRecordStore(session_factory), diagnostics=diagnostics)
