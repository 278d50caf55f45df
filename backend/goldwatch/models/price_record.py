"""Observed gold price points keyed by (pricing_date, gold_type, source)."""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, Date, DateTime, Enum, Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from goldwatch.models.base import Base, IntegerPrimaryKeyMixin, TimestampMixin
from goldwatch.models.enums import ProductCategory, VendorSource


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class PriceRecord(IntegerPrimaryKeyMixin, TimestampMixin, Base):
    """One observed price point for a product variant at one vendor.

    A later scrape for the same (pricing_date, gold_type, source) updates
    the row in place; rows are only removed by the retention purge.
    """

    __tablename__ = "gold_pricing_histories"

    pricing_date: Mapped[date] = mapped_column(Date, nullable=False, comment="Date the price applies to")
    gold_type: Mapped[str] = mapped_column(
        String(100), nullable=False, comment="Weight label plus product line, e.g. '1 gram gift series'"
    )
    source: Mapped[VendorSource] = mapped_column(
        Enum(VendorSource, native_enum=False, length=40, values_callable=_enum_values),
        nullable=False,
    )

    # Prices in whole rupiah; a 1 kg bar exceeds the 32-bit range
    base_price: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    buy_price: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    sell_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    include_tax: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    category: Mapped[ProductCategory] = mapped_column(
        Enum(ProductCategory, native_enum=False, length=60, values_callable=_enum_values),
        nullable=False,
        default=ProductCategory.EMAS_BATANGAN,
    )

    scraped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="When this price was last observed",
    )

    __table_args__ = (
        UniqueConstraint("pricing_date", "gold_type", "source", name="uq_gold_pricing_date_type_source"),
        Index("idx_gold_pricing_date", "pricing_date"),
        Index("idx_gold_pricing_type_source_date", "gold_type", "source", "pricing_date"),
    )

    @property
    def identity_key(self) -> tuple[date, str, VendorSource]:
        return (self.pricing_date, self.gold_type, self.source)

    def __repr__(self) -> str:
        return (
            f"<PriceRecord(id={self.id}, pricing_date={self.pricing_date}, "
            f"gold_type='{self.gold_type}', source={self.source.value}, sell_price={self.sell_price})>"
        )
