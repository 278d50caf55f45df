"""Custom exception classes for the scraping pipeline.

Fatal errors (FetchError, ExtractionEmptyError, PersistenceError) end a
scrape run. NormalizationError and its subclasses are per-record: the
orchestrator drops the record, counts it as failed and keeps going.
"""

from typing import Optional


class GoldwatchException(Exception):
    """Base exception for all goldwatch errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class FetchError(GoldwatchException):
    """Raised when a vendor page cannot be fetched.

    ``exhausted`` is True once every retry attempt has failed; the last
    HTTP status (if any) and the last underlying exception are kept for
    operator diagnosis.
    """

    def __init__(
        self,
        url: str,
        message: str,
        exhausted: bool = False,
        status_code: Optional[int] = None,
        last_error: Optional[BaseException] = None,
    ):
        self.url = url
        self.exhausted = exhausted
        self.status_code = status_code
        self.last_error = last_error
        prefix = "Fetch failed after retries" if exhausted else "Fetch failed"
        super().__init__(f"{prefix} for {url}: {message}")


class ExtractionEmptyError(GoldwatchException):
    """Raised when no extraction strategy produced any price tuples."""

    def __init__(self, source: str, tried: Optional[list[str]] = None):
        self.source = source
        self.tried = tried or []
        detail = f" (tried: {', '.join(self.tried)})" if self.tried else ""
        super().__init__(f"No pricing data found for {source}{detail}")


class NormalizationError(GoldwatchException):
    """Raised when a single raw record cannot be normalized."""


class FormatError(NormalizationError):
    """Raised when currency or weight text cannot be parsed."""

    def __init__(self, value: str, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Cannot parse '{value}': {reason}")


class UnknownVendorError(NormalizationError):
    """Raised when a vendor label does not map onto a known VendorSource."""

    def __init__(self, label: str):
        self.label = label
        super().__init__(f"Unknown vendor label '{label}'")


class MisalignedBlockError(NormalizationError):
    """Raised when a text block's weights and prices cannot be paired."""

    def __init__(self, vendor: str, weights: int, prices: int):
        self.vendor = vendor
        self.weights = weights
        self.prices = prices
        super().__init__(
            f"Misaligned price block for {vendor}: {weights} weights vs {prices} prices"
        )


class PriceInvariantError(NormalizationError):
    """Raised when an observed buy price exceeds the observed sell price."""

    def __init__(self, gold_type: str, buy_price: int, sell_price: int):
        super().__init__(
            f"Buy price {buy_price} exceeds sell price {sell_price} for {gold_type}"
        )


class PersistenceError(GoldwatchException):
    """Raised when the database rejects a read or write; nothing is committed."""

    def __init__(self, message: str, original: Optional[BaseException] = None):
        self.original = original
        super().__init__(message)


class UnknownSourceError(GoldwatchException):
    """Raised when a scrape is triggered for an unregistered source."""

    def __init__(self, source_id: str):
        self.source_id = source_id
        super().__init__(f"Scrape source with identifier '{source_id}' not found")
