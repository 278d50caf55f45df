"""Pydantic schemas for stored price records and their queries."""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from goldwatch.models.enums import ProductCategory, VendorSource


class PriceRecordResponse(BaseModel):
    """A persisted price record as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    pricing_date: date
    gold_type: str
    source: VendorSource
    category: ProductCategory
    base_price: Optional[int] = None
    buy_price: Optional[int] = None
    sell_price: int
    include_tax: bool = True
    scraped_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PriceRecordFilter(BaseModel):
    """Query filter for listing price records.

    All fields are optional; unset fields do not constrain the query.
    """

    gold_type: Optional[str] = Field(None, description="Case-insensitive substring of the gold type")
    source: Optional[VendorSource] = None
    category: Optional[ProductCategory] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    limit: Optional[int] = Field(None, ge=0)
    offset: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_date_range(self) -> "PriceRecordFilter":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class PriceStats(BaseModel):
    """Summary statistics over the whole price table."""

    total_records: int = 0
    unique_vendors: int = 0
    unique_gold_types: int = 0
    latest_scraped_at: Optional[datetime] = None
    oldest_pricing_date: Optional[date] = None
    latest_pricing_date: Optional[date] = None
