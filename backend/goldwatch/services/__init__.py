"""Services module for persistence and queries."""

from goldwatch.services.price_record_service import PriceRecordStore

__all__ = ["PriceRecordStore"]
