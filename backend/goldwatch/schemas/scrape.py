"""Outcome reporting contract for one scrape run."""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from goldwatch.schemas.price_record import PriceRecordResponse


class ScrapeResult(BaseModel):
    """Result of a single orchestration run.

    ``success`` stays True when some records failed normalization, as long
    as the valid subset was persisted.
    """

    success: bool = False
    message: str = ""
    source: Optional[str] = None
    pricing_date: Optional[date] = None
    total_scraped: int = Field(0, ge=0)
    saved_count: int = Field(0, ge=0)
    updated_count: int = Field(0, ge=0)
    failed_count: int = Field(0, ge=0)
    errors: List[str] = Field(default_factory=list)
    duration: str = ""
    data: Optional[List[PriceRecordResponse]] = None

    @model_validator(mode="after")
    def check_accounting(self) -> "ScrapeResult":
        accounted = self.saved_count + self.updated_count + self.failed_count
        if self.total_scraped != accounted:
            raise ValueError(
                f"total_scraped ({self.total_scraped}) != saved + updated + failed ({accounted})"
            )
        return self
