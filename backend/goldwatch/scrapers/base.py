"""Base data structures and the extraction strategy interface.

Fetchers produce a FetchedDocument, strategies turn it into RawPriceTuple
objects, and the normalizer turns those into NormalizedPriceRecord objects
ready for the PriceRecordStore.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

import structlog

from goldwatch.models.enums import ProductCategory, VendorSource


@dataclass
class FetchedDocument:
    """Everything captured from one successful fetch of a vendor page."""

    url: str
    html: str
    status_code: int = 200
    api_bodies: Dict[str, str] = field(default_factory=dict)  # response URL -> body
    text_blocks: List[str] = field(default_factory=list)  # JS-evaluated element texts
    rendered: bool = False  # True when captured through the headless browser


@dataclass
class RawPriceTuple:
    """One un-normalized price observation as found on the page.

    Price and weight fields hold the text exactly as scraped. ``misaligned``
    marks a text block whose weights and prices could not be paired.
    """

    vendor_label: Optional[str]
    product_label: str
    weight: Optional[str] = None
    buy_price: Optional[str] = None
    sell_price: Optional[str] = None
    base_price: Optional[str] = None
    category_hint: Optional[str] = None  # Section heading the row appeared under
    misaligned: bool = False
    weight_count: int = 0
    price_count: int = 0


@dataclass
class NormalizedPriceRecord:
    """Canonical record accepted by PriceRecordStore.create_batch."""

    pricing_date: date
    gold_type: str
    source: VendorSource
    sell_price: int
    buy_price: Optional[int] = None
    base_price: Optional[int] = None
    category: ProductCategory = ProductCategory.EMAS_BATANGAN
    include_tax: bool = True
    buy_price_derived: bool = False

    def __post_init__(self):
        """Validate data after initialization."""
        if not self.gold_type:
            raise ValueError("gold_type is required")
        if self.sell_price is None or self.sell_price < 0:
            raise ValueError("sell_price must be a non-negative integer")
        if self.buy_price is not None and self.buy_price < 0:
            raise ValueError("buy_price must be a non-negative integer")

    @property
    def identity_key(self) -> tuple:
        return (self.pricing_date, self.gold_type, self.source)


@dataclass
class ExtractionContext:
    """Per-source hints handed to every strategy."""

    source_id: str
    default_vendor: Optional[str] = None  # Vendor label for single-vendor pages
    base_url: str = ""
    sell_only: bool = False  # Text blocks carry one price per weight


class ExtractionStrategy(ABC):
    """Abstract base class for one way of reading prices out of a document.

    Strategies must be side-effect free and return an empty list (never
    raise) when the document does not have the shape they understand.
    """

    name: str = ""  # Must be overridden in subclass

    def __init__(self):
        self.logger = structlog.get_logger(strategy=self.name)

    @abstractmethod
    def extract(self, document: FetchedDocument, context: ExtractionContext) -> List[RawPriceTuple]:
        """Extract raw price tuples from a document.

        Args:
            document: Captured page content
            context: Source hints (default vendor label, base URL)

        Returns:
            List of RawPriceTuple, empty when the strategy does not apply
        """
        pass
