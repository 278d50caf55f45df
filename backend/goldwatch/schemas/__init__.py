"""Pydantic schemas returned by the store and the orchestrator."""

from goldwatch.schemas.price_record import PriceRecordFilter, PriceRecordResponse, PriceStats
from goldwatch.schemas.scrape import ScrapeResult

__all__ = [
    "PriceRecordFilter",
    "PriceRecordResponse",
    "PriceStats",
    "ScrapeResult",
]
