"""SQLAlchemy models for goldwatch.

All models are imported here so metadata.create_all can discover them.
"""

from goldwatch.models.base import Base, IntegerPrimaryKeyMixin, TimestampMixin
from goldwatch.models.enums import ProductCategory, VendorSource, VENDOR_NAME_MAPPING
from goldwatch.models.price_record import PriceRecord

__all__ = [
    "Base",
    "IntegerPrimaryKeyMixin",
    "TimestampMixin",
    "ProductCategory",
    "VendorSource",
    "VENDOR_NAME_MAPPING",
    "PriceRecord",
]
