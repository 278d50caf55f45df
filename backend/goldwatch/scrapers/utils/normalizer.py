"""Text normalization for scraped price listings.

Turns locale-formatted rupiah amounts, weight labels, vendor names and
product names into typed values. Everything here is pure (no I/O) so the
same rules apply to every extraction strategy.
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

import structlog

from goldwatch.core.exceptions import FormatError, UnknownVendorError
from goldwatch.models.enums import ProductCategory, VendorSource, VENDOR_NAME_MAPPING

logger = structlog.get_logger()


# Fixed buy/sell spread applied when a vendor only publishes the sell price
BUY_PRICE_RATIO_PERCENT = 94

_WHITESPACE_RE = re.compile(r"\s+")
_CURRENCY_MARKER_RE = re.compile(r"Rp\.?|IDR", re.IGNORECASE)
_NEGATIVE_RE = re.compile(r"(?<!\d)-\s*\d")
_ZERO_FRACTION_RE = re.compile(r"[.,]00\s*$")
_DIGIT_RUN_RE = re.compile(r"\d+")
_WEIGHT_RE = re.compile(r"(\d+(?:[.,]\d+)*)\s*(?:gram|gr|g)\b", re.IGNORECASE)
_THOUSANDS_WEIGHT_RE = re.compile(r"^\d{1,3}(?:\.\d{3})+$")


# Ordered rules: first match wins. Each rule is a list of keyword groups;
# every group must match, and a group matches when any keyword is present.
# Compound labels ("Liontin Batik Seri III") need the specific rules first.
CATEGORY_RULES: list[tuple[ProductCategory, list[tuple[str, ...]]]] = [
    (ProductCategory.LIONTIN_BATIK_SERI_III, [("liontin", "pendant"), ("batik",)]),
    (ProductCategory.EMAS_BATANGAN_BATIK_SERI_III, [("batik seri iii", "batik seri 3")]),
    (ProductCategory.EMAS_BATANGAN_GIFT_SERIES, [("gift",)]),
    (ProductCategory.EMAS_BATANGAN_SELAMAT_IDUL_FITRI, [("idul fitri", "lebaran")]),
    (ProductCategory.EMAS_BATANGAN_IMLEK, [("imlek", "chinese new year", "lunar new year")]),
    (ProductCategory.PERAK_HERITAGE, [("perak", "silver"), ("heritage",)]),
    (ProductCategory.PERAK_MURNI, [("perak", "silver")]),
    (ProductCategory.LIONTIN_BATIK_SERI_III, [("liontin", "pendant")]),
    (ProductCategory.EMAS_BATANGAN_BATIK_SERI_III, [("batik",)]),
]

DEFAULT_CATEGORY = ProductCategory.EMAS_BATANGAN

# Vendor pages repeat the same weights under each product line heading;
# the suffix keeps "1 gram" bars and "1 gram" gift bars on separate rows.
GOLD_TYPE_QUALIFIERS: dict[ProductCategory, str] = {
    ProductCategory.EMAS_BATANGAN_GIFT_SERIES: "gift series",
    ProductCategory.EMAS_BATANGAN_SELAMAT_IDUL_FITRI: "selamat idul fitri",
    ProductCategory.EMAS_BATANGAN_IMLEK: "imlek",
    ProductCategory.EMAS_BATANGAN_BATIK_SERI_III: "batik seri iii",
    ProductCategory.PERAK_MURNI: "perak murni",
    ProductCategory.PERAK_HERITAGE: "perak heritage",
    ProductCategory.LIONTIN_BATIK_SERI_III: "liontin batik seri iii",
}

# Every known vendor name as a whole word; longest first so "BABY GALERI 24"
# wins over "GALERI 24" at the same position
VENDOR_NAME_RE = re.compile(
    r"(?<![A-Z0-9])("
    + "|".join(re.escape(name) for name in sorted(VENDOR_NAME_MAPPING, key=len, reverse=True))
    + r")(?![A-Z0-9])"
)


INDONESIAN_MONTHS: dict[str, int] = {
    "januari": 1, "jan": 1, "january": 1,
    "februari": 2, "feb": 2, "february": 2, "pebruari": 2,
    "maret": 3, "mar": 3, "march": 3,
    "april": 4, "apr": 4,
    "mei": 5, "may": 5,
    "juni": 6, "jun": 6, "june": 6,
    "juli": 7, "jul": 7, "july": 7,
    "agustus": 8, "agu": 8, "agt": 8, "aug": 8, "august": 8,
    "september": 9, "sep": 9, "sept": 9,
    "oktober": 10, "okt": 10, "oct": 10, "october": 10,
    "november": 11, "nov": 11, "nopember": 11,
    "desember": 12, "des": 12, "dec": 12, "december": 12,
}

_PRICING_DATE_RES = [
    # "Diperbarui Senin, 14 Oktober 2024"
    re.compile(r"Diperbarui\s+\w+,\s+(\d{1,2})\s+([A-Za-z]+)\s+(\d{4})", re.IGNORECASE),
    # "Harga Emas Hari Ini, 14 Okt 2024" / "Update: 14 Oktober 2024"
    re.compile(
        r"(?:Diperbarui|Update[d]?|Harga[^\n]{0,40}?)[^0-9\n]{0,30}?(\d{1,2})\s+([A-Za-z]+)\s+(\d{4})",
        re.IGNORECASE,
    ),
]


class PriceNormalizer:
    """Parsing helpers for rupiah amounts and weight labels."""

    @staticmethod
    def clean_text(text: Optional[str]) -> str:
        """Collapse whitespace runs (spaces, tabs, newlines) and strip.

        "  Logam\\n\\tMulia  1  gram  " -> "Logam Mulia 1 gram"
        """
        if not text:
            return ""
        return _WHITESPACE_RE.sub(" ", text).strip()

    @staticmethod
    def parse_currency(text: Optional[str]) -> int:
        """Parse an Indonesian-formatted currency string into whole rupiah.

        Handles:
        - "Rp1.234.567" -> 1234567
        - "IDR 500" -> 500
        - "Rp 1.234,567" -> 1234567
        - "Rp1.271.000,00" -> 1271000 (a zero fraction is dropped)

        Every digit run left after removing separators is concatenated, so
        "Rp1.000 (diskon 5%)" parses as 10005. Inputs carrying unrelated
        numbers must be trimmed before they get here.

        Raises:
            FormatError: empty input, no digits, or a negative amount
        """
        if text is None or not text.strip():
            raise FormatError("", "empty price string")

        cleaned = PriceNormalizer.clean_text(text)
        cleaned = _CURRENCY_MARKER_RE.sub("", cleaned).strip()

        if _NEGATIVE_RE.search(cleaned):
            raise FormatError(text, "negative price not allowed")

        cleaned = _ZERO_FRACTION_RE.sub("", cleaned)
        cleaned = cleaned.replace(".", "").replace(",", "")

        runs = _DIGIT_RUN_RE.findall(cleaned)
        if not runs:
            raise FormatError(text, "no digits found")

        return int("".join(runs))

    @staticmethod
    def derive_buy_price(sell_price: int) -> int:
        """Derive the buy-back price as floor(sell_price * 0.94).

        Integer arithmetic keeps the result exact for large amounts.
        """
        if sell_price < 0:
            raise ValueError("sell_price must be non-negative")
        return sell_price * BUY_PRICE_RATIO_PERCENT // 100

    @staticmethod
    def parse_weight(text: Optional[str]) -> Decimal:
        """Extract a weight in grams from a label.

        Handles "1 gram", "0,5 gr", "2.5g", "1.000 gram" (thousands dot).

        Raises:
            FormatError: no "<number> <gram|gr|g>" substring present
        """
        if not text:
            raise FormatError("", "empty weight string")

        match = _WEIGHT_RE.search(text)
        if not match:
            # Bare numbers ("5") are accepted as grams
            bare = PriceNormalizer.clean_text(text)
            if re.fullmatch(r"\d+(?:[.,]\d+)?", bare):
                number = bare
            else:
                raise FormatError(text, "no weight found")
        else:
            number = match.group(1)

        if _THOUSANDS_WEIGHT_RE.match(number):
            number = number.replace(".", "")
        number = number.replace(",", ".")

        try:
            weight = Decimal(number)
        except InvalidOperation:
            raise FormatError(text, "invalid weight number")

        if weight <= 0:
            raise FormatError(text, "weight must be positive")
        return weight

    @staticmethod
    def format_gold_type(weight: Decimal) -> str:
        """Render a weight as the canonical gold type label ("0.5 gram")."""
        normalized = weight.normalize()
        return f"{format(normalized, 'f')} gram"

    @staticmethod
    def qualify_gold_type(gold_type: str, category: ProductCategory) -> str:
        """Append the product line to a weight label outside the standard bar line.

        "1 gram" + EMAS_BATANGAN -> "1 gram"
        "1 gram" + EMAS_BATANGAN_GIFT_SERIES -> "1 gram gift series"
        """
        qualifier = GOLD_TYPE_QUALIFIERS.get(category)
        if not qualifier:
            return gold_type
        return f"{gold_type} {qualifier}"


class CategoryClassifier:
    """Ordered substring rules mapping product labels onto ProductCategory."""

    @staticmethod
    def classify(label: Optional[str]) -> ProductCategory:
        """Return the first matching category, or the standard bar default.

        Args:
            label: Product name / table heading text

        Returns:
            ProductCategory (never None)
        """
        if not label:
            return DEFAULT_CATEGORY

        lowered = label.lower()
        for category, groups in CATEGORY_RULES:
            if all(any(keyword in lowered for keyword in group) for group in groups):
                logger.debug("category_detected", category=category.value, label=label)
                return category

        return DEFAULT_CATEGORY


class VendorResolver:
    """Maps vendor labels found on pages onto VendorSource."""

    @staticmethod
    def resolve(label: Optional[str]) -> VendorSource:
        """Exact-match a vendor label (case and whitespace insensitive).

        Raises:
            UnknownVendorError: label is not in VENDOR_NAME_MAPPING
        """
        key = PriceNormalizer.clean_text(label).upper()
        source = VENDOR_NAME_MAPPING.get(key)
        if source is None:
            raise UnknownVendorError(label or "")
        return source

    @staticmethod
    def find_in_text(text: Optional[str]) -> Optional[VendorSource]:
        """Find the first known vendor name contained in a text block.

        Returns:
            The VendorSource of the earliest (longest at that position) name, or None
        """
        if not text:
            return None
        match = VENDOR_NAME_RE.search(PriceNormalizer.clean_text(text).upper())
        if match is None:
            return None
        return VENDOR_NAME_MAPPING[match.group(1)]


def parse_pricing_date(text: Optional[str]) -> Optional[date]:
    """Extract the "last updated" date printed on a vendor page.

    Args:
        text: Page HTML or text

    Returns:
        The date, or None when no recognizable date is present
    """
    if not text:
        return None

    for pattern in _PRICING_DATE_RES:
        for match in pattern.finditer(text):
            day, month_name, year = match.groups()
            month = INDONESIAN_MONTHS.get(month_name.lower())
            if month is None:
                continue
            try:
                return date(int(year), month, int(day))
            except ValueError:
                logger.debug("pricing_date_invalid", raw=match.group(0))
                continue
    return None


# Function-style aliases used across the pipeline
clean_text = PriceNormalizer.clean_text
parse_currency = PriceNormalizer.parse_currency
derive_buy_price = PriceNormalizer.derive_buy_price
parse_weight = PriceNormalizer.parse_weight
format_gold_type = PriceNormalizer.format_gold_type
qualify_gold_type = PriceNormalizer.qualify_gold_type
detect_category = CategoryClassifier.classify
resolve_vendor = VendorResolver.resolve
find_vendor_in_text = VendorResolver.find_in_text
