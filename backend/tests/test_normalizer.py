"""Tests for text normalization: currency, weights, categories, vendors, dates."""

from datetime import date
from decimal import Decimal

import pytest

from goldwatch.core.exceptions import FormatError, UnknownVendorError
from goldwatch.models.enums import ProductCategory, VendorSource
from goldwatch.scrapers.utils.normalizer import (
    clean_text,
    derive_buy_price,
    detect_category,
    find_vendor_in_text,
    format_gold_type,
    parse_currency,
    parse_pricing_date,
    parse_weight,
    qualify_gold_type,
    resolve_vendor,
)


# ============================================================================
# CURRENCY
# ============================================================================

class TestParseCurrency:

    @pytest.mark.parametrize("text,expected", [
        ("Rp1.234.567", 1234567),
        ("IDR 500", 500),
        ("Rp 1.271.000", 1271000),
        ("Rp. 2.500.000", 2500000),
        ("Rp1.271.000,00", 1271000),
        ("  Rp\n 940.000 ", 940000),
    ])
    def test_valid_amounts(self, text, expected):
        assert parse_currency(text) == expected

    @pytest.mark.parametrize("text", ["", "   ", "abc", "Rp", "-1000", "Rp -1.000"])
    def test_invalid_amounts(self, text):
        with pytest.raises(FormatError):
            parse_currency(text)

    def test_none_is_rejected(self):
        with pytest.raises(FormatError):
            parse_currency(None)

    def test_disjoint_digit_runs_are_concatenated(self):
        assert parse_currency("Rp1.000 (5)") == 10005


class TestDeriveBuyPrice:

    def test_known_value(self):
        assert derive_buy_price(1000) == 940

    @pytest.mark.parametrize("sell", [0, 1, 17, 999, 1_271_000, 10**15 + 7])
    def test_floor_of_94_percent(self, sell):
        assert derive_buy_price(sell) == (sell * 94) // 100
        assert derive_buy_price(sell) <= sell

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            derive_buy_price(-1)


# ============================================================================
# WEIGHTS
# ============================================================================

class TestParseWeight:

    @pytest.mark.parametrize("text,expected", [
        ("1 gram", Decimal("1")),
        ("0,5 gr", Decimal("0.5")),
        ("2.5g", Decimal("2.5")),
        ("Emas Batangan 100 Gram", Decimal("100")),
        ("1.000 gram", Decimal("1000")),
        ("5", Decimal("5")),
    ])
    def test_valid_weights(self, text, expected):
        assert parse_weight(text) == expected

    @pytest.mark.parametrize("text", ["", "Emas Batangan", "0 gram"])
    def test_invalid_weights(self, text):
        with pytest.raises(FormatError):
            parse_weight(text)

    @pytest.mark.parametrize("weight,label", [
        (Decimal("1"), "1 gram"),
        (Decimal("0.5"), "0.5 gram"),
        (Decimal("1000"), "1000 gram"),
        (Decimal("2.50"), "2.5 gram"),
    ])
    def test_format_gold_type(self, weight, label):
        assert format_gold_type(weight) == label


# ============================================================================
# CATEGORIES
# ============================================================================

class TestDetectCategory:

    @pytest.mark.parametrize("label,expected", [
        ("Liontin Batik Seri III", ProductCategory.LIONTIN_BATIK_SERI_III),
        ("Emas Batangan Batik Seri III", ProductCategory.EMAS_BATANGAN_BATIK_SERI_III),
        ("Emas Batangan Gift Series", ProductCategory.EMAS_BATANGAN_GIFT_SERIES),
        ("Emas Batangan Selamat Idul Fitri", ProductCategory.EMAS_BATANGAN_SELAMAT_IDUL_FITRI),
        ("Emas Batangan Imlek", ProductCategory.EMAS_BATANGAN_IMLEK),
        ("Perak Heritage", ProductCategory.PERAK_HERITAGE),
        ("Perak Murni", ProductCategory.PERAK_MURNI),
        ("Silver bar", ProductCategory.PERAK_MURNI),
        ("Pendant", ProductCategory.LIONTIN_BATIK_SERI_III),
        ("Emas Batangan", ProductCategory.EMAS_BATANGAN),
        ("", ProductCategory.EMAS_BATANGAN),
    ])
    def test_rules(self, label, expected):
        assert detect_category(label) == expected

    def test_case_insensitive(self):
        assert detect_category("LIONTIN batik seri iii") == ProductCategory.LIONTIN_BATIK_SERI_III

    def test_standard_bar_keeps_weight_label(self):
        assert qualify_gold_type("1 gram", ProductCategory.EMAS_BATANGAN) == "1 gram"

    def test_product_line_is_appended(self):
        assert qualify_gold_type("1 gram", ProductCategory.EMAS_BATANGAN_GIFT_SERIES) == "1 gram gift series"
        assert qualify_gold_type("0.5 gram", ProductCategory.PERAK_MURNI) == "0.5 gram perak murni"

    def test_every_product_line_has_a_distinct_label(self):
        labels = {qualify_gold_type("1 gram", category) for category in ProductCategory}
        assert len(labels) == len(ProductCategory)


# ============================================================================
# VENDORS / TEXT
# ============================================================================

class TestVendors:

    def test_resolve_exact_label(self):
        assert resolve_vendor("  galeri 24 ") == VendorSource.GALERI24
        assert resolve_vendor("Logam Mulia") == VendorSource.ANTAM

    @pytest.mark.parametrize("label", [None, "", "ANTAM GOLD", "Unknown Vendor"])
    def test_resolve_unknown_label(self, label):
        with pytest.raises(UnknownVendorError):
            resolve_vendor(label)

    def test_find_prefers_longest_name(self):
        assert find_vendor_in_text("Harga BABY GALERI 24 hari ini") == VendorSource.BABY_GALERI24
        assert find_vendor_in_text("Harga GALERI 24 hari ini") == VendorSource.GALERI24

    def test_find_requires_word_boundary(self):
        assert find_vendor_in_text("SUBSIDI") is None

    def test_find_returns_earliest_name(self):
        assert find_vendor_in_text("UBS lalu ANTAM") == VendorSource.UBS

    def test_clean_text(self):
        assert clean_text("  Logam\n\tMulia   1  gram ") == "Logam Mulia 1 gram"
        assert clean_text(None) == ""


class TestPricingDate:

    def test_diperbarui_line(self):
        text = "Harga Emas  Diperbarui Senin, 14 Oktober 2024 pukul 08.30"
        assert parse_pricing_date(text) == date(2024, 10, 14)

    def test_english_month(self):
        assert parse_pricing_date("Updated: 3 March 2025") == date(2025, 3, 3)

    def test_missing_date(self):
        assert parse_pricing_date("Harga emas hari ini") is None
        assert parse_pricing_date(None) is None

    def test_invalid_day_is_skipped(self):
        assert parse_pricing_date("Diperbarui Senin, 31 Februari 2024") is None
