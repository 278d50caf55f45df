"""Tests for extraction strategies and the fallback chain."""

import json
from typing import List

import pytest

from goldwatch.scrapers.base import (
    ExtractionContext,
    ExtractionStrategy,
    FetchedDocument,
    RawPriceTuple,
)
from goldwatch.scrapers.strategies import (
    ApiPayloadStrategy,
    CardGridStrategy,
    ExtractionChain,
    TableStrategy,
    TextBlockStrategy,
    parse_text_block,
    split_vendor_sections,
)


LOGAM_MULIA_TABLE = """
<html><body>
<p>Harga Emas Hari Ini, Diperbarui Senin, 14 Oktober 2024</p>
<table>
  <thead><tr><th>Berat</th><th>Harga Dasar</th><th>Harga (+Pajak PPh 0.25%)</th></tr></thead>
  <tbody>
    <tr><th colspan="3">Emas Batangan</th></tr>
    <tr><td>Jenis</td><td>Harga Dasar</td><td>Harga</td></tr>
    <tr><td>1 gram</td><td>Rp1.132.000</td><td>Rp1.271.000</td></tr>
    <tr><td>5 gr</td><td>Rp5.435.000</td><td>Rp5.448.588</td></tr>
    <tr><td colspan="3">Emas Batangan Gift Series</td></tr>
    <tr><td>0,5 gram</td><td>Rp650.000</td><td>Rp661.625</td></tr>
  </tbody>
</table>
</body></html>
"""

VENDOR_GRID = """
<html><body>
<div class="vendor-grid">
  <div class="vendor-card">
    <h3>ANTAM</h3>
    <div class="price-item"><span>1 gram</span><span>Rp1.400.000</span><span>Rp1.300.000</span></div>
    <div class="price-item"><span>2 gram</span><span>Rp2.750.000</span><span>Rp2.600.000</span></div>
  </div>
  <div class="vendor-card">
    <h3>BABY GALERI 24</h3>
    <div class="price-item"><span>0.5 gram</span><span>Rp800.000</span><span>Rp700.000</span></div>
  </div>
</div>
</body></html>
"""


def ctx(default_vendor=None, sell_only=False) -> ExtractionContext:
    return ExtractionContext(
        source_id="test", default_vendor=default_vendor, base_url="https://example.com", sell_only=sell_only,
    )


def doc(html: str = "", **kwargs) -> FetchedDocument:
    return FetchedDocument(url="https://example.com/harga", html=html, **kwargs)


# ============================================================================
# TEXT BLOCK PARSING
# ============================================================================

class TestParseTextBlock:

    def test_weight_sell_buy_triples(self):
        text = "GALERI 24\n1 gram\nRp1.400.000\nRp1.300.000\n2 gram\nRp2.750.000\nRp2.600.000"
        tuples = parse_text_block(text)

        assert [(t.vendor_label, t.weight, t.sell_price, t.buy_price) for t in tuples] == [
            ("GALERI 24", "1 GRAM", "RP1.400.000", "RP1.300.000"),
            ("GALERI 24", "2 GRAM", "RP2.750.000", "RP2.600.000"),
        ]

    def test_sell_only_section(self):
        tuples = parse_text_block("UBS 1 gram Rp1.500.000 5 gram Rp7.000.000", sell_only=True)
        assert len(tuples) == 2
        assert all(t.buy_price is None for t in tuples)
        assert tuples[1].sell_price == "RP7.000.000"

    def test_one_price_per_weight_is_misaligned_without_sell_only(self):
        # The second price is the 1 gram buy-back, not the 0.5 gram sell price
        tuples = parse_text_block("GALERI 24 1 gram Rp1.000.000 Rp940.000 Harga per 0.5 gram")

        assert len(tuples) == 1
        assert tuples[0].misaligned is True
        assert (tuples[0].weight_count, tuples[0].price_count) == (2, 2)

    def test_sell_only_rejects_paired_prices(self):
        tuples = parse_text_block("UBS 1 gram Rp1.500.000 Rp1.400.000", sell_only=True)
        assert [t.misaligned for t in tuples] == [True]

    def test_mismatched_counts_yield_single_marker(self):
        tuples = parse_text_block("ANTAM 1 gram Rp1.400.000 Rp1.300.000 2 gram Rp2.750.000")

        assert len(tuples) == 1
        marker = tuples[0]
        assert marker.misaligned is True
        assert marker.vendor_label == "ANTAM"
        assert marker.weight_count == 2
        assert marker.price_count == 3

    def test_no_vendor_and_no_fallback_yields_nothing(self):
        assert parse_text_block("1 gram Rp1.400.000 Rp1.300.000") == []

    def test_fallback_vendor_used_when_no_name_printed(self):
        tuples = parse_text_block("1 gram Rp1.400.000 Rp1.300.000", fallback_vendor="ANTAM")
        assert len(tuples) == 1
        assert tuples[0].vendor_label == "ANTAM"

    def test_sections_split_on_longest_vendor_name(self):
        sections = split_vendor_sections("BABY GALERI 24 1 gram GALERI 24 2 gram")
        assert [label for label, _ in sections] == ["BABY GALERI 24", "GALERI 24"]


# ============================================================================
# API PAYLOAD
# ============================================================================

class TestApiPayloadStrategy:

    def test_reads_intercepted_bodies_with_vendor_inheritance(self):
        body = json.dumps({
            "data": [
                {"vendor": "GALERI 24", "prices": [
                    {"weight": 1, "sellPrice": 1400000, "buyPrice": 1300000},
                    {"weight": "0.5", "sellPrice": "Rp700.000", "buyPrice": "Rp650.000"},
                ]},
                {"vendor": "UBS", "prices": [{"weight": 5, "sellPrice": 7000000.0}]},
            ]
        })
        document = doc(api_bodies={"https://example.com/api/prices": body})

        tuples = ApiPayloadStrategy().extract(document, ctx())

        assert [(t.vendor_label, t.weight, t.sell_price, t.buy_price) for t in tuples] == [
            ("GALERI 24", "1", "1400000", "1300000"),
            ("GALERI 24", "0.5", "Rp700.000", "Rp650.000"),
            ("UBS", "5", "7000000", None),
        ]

    def test_reads_embedded_script_json(self):
        payload = {"props": {"products": [{"name": "Emas Batangan 1 gram", "weight": "1 gram", "price": 1271000}]}}
        html = f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(payload)}</script>'

        tuples = ApiPayloadStrategy().extract(doc(html), ctx(default_vendor="ANTAM"))

        assert len(tuples) == 1
        assert tuples[0].vendor_label == "ANTAM"
        assert tuples[0].product_label == "Emas Batangan 1 gram"

    def test_ignores_invalid_and_unrelated_json(self):
        document = doc(
            '<script type="application/json">{"menu": ["home"]}</script>',
            api_bodies={"https://example.com/api/x": "not json"},
        )
        assert ApiPayloadStrategy().extract(document, ctx()) == []


# ============================================================================
# TABLE
# ============================================================================

class TestTableStrategy:

    def test_rows_carry_category_context(self):
        tuples = TableStrategy().extract(doc(LOGAM_MULIA_TABLE), ctx(default_vendor="ANTAM"))

        assert [(t.weight, t.buy_price, t.sell_price, t.category_hint) for t in tuples] == [
            ("1 gram", "Rp1.132.000", "Rp1.271.000", "Emas Batangan"),
            ("5 gr", "Rp5.435.000", "Rp5.448.588", "Emas Batangan"),
            ("0,5 gram", "Rp650.000", "Rp661.625", "Emas Batangan Gift Series"),
        ]
        assert all(t.vendor_label == "ANTAM" for t in tuples)
        assert tuples[0].base_price == "Rp1.132.000"

    def test_two_column_table_has_no_buy_price(self):
        html = "<table><tr><td>1 gram</td><td>Rp1.271.000</td></tr></table>"
        tuples = TableStrategy().extract(doc(html), ctx(default_vendor="ANTAM"))
        assert len(tuples) == 1
        assert tuples[0].buy_price is None
        assert tuples[0].sell_price == "Rp1.271.000"

    def test_no_table(self):
        assert TableStrategy().extract(doc("<div>nothing</div>"), ctx()) == []


# ============================================================================
# CARD GRID / TEXT BLOCKS
# ============================================================================

class TestCardGridStrategy:

    def test_vendor_sections_from_cards(self):
        tuples = CardGridStrategy().extract(doc(VENDOR_GRID), ctx())

        assert [(t.vendor_label, t.weight, t.sell_price, t.buy_price) for t in tuples] == [
            ("ANTAM", "1 GRAM", "RP1.400.000", "RP1.300.000"),
            ("ANTAM", "2 GRAM", "RP2.750.000", "RP2.600.000"),
            ("BABY GALERI 24", "0.5 GRAM", "RP800.000", "RP700.000"),
        ]

    def test_single_vendor_page_uses_default_vendor(self):
        html = """
        <div class="product-card"><p>1 gram</p><p>Rp1.271.000</p></div>
        <div class="product-card"><p>2 gram</p><p>Rp2.480.000</p></div>
        """
        tuples = CardGridStrategy().extract(doc(html), ctx(default_vendor="ANTAM", sell_only=True))
        assert [(t.vendor_label, t.weight) for t in tuples] == [("ANTAM", "1 GRAM"), ("ANTAM", "2 GRAM")]

        misread = CardGridStrategy().extract(doc(html), ctx(default_vendor="ANTAM"))
        assert all(t.misaligned for t in misread)

    def test_no_cards(self):
        assert CardGridStrategy().extract(doc("<p>Rp1.000</p>"), ctx()) == []


class TestTextBlockStrategy:

    def test_duplicate_nested_blocks_collapse(self):
        inner = "LOTUS ARCHI\n1 gram\nRp1.350.000\nRp1.250.000"
        outer = "Harga emas\n" + inner
        document = doc(text_blocks=[outer, inner, "Menu Beranda"], rendered=True)

        tuples = TextBlockStrategy().extract(document, ctx())

        assert len(tuples) == 1
        assert tuples[0].vendor_label == "LOTUS ARCHI"

    def test_falls_back_to_page_text(self):
        html = "<div><h2>UBS</h2><p>1 gram</p><p>Rp1.500.000</p><p>Rp1.400.000</p></div><script>var x = 'Rp1';</script>"
        tuples = TextBlockStrategy().extract(doc(html), ctx())
        assert [(t.vendor_label, t.sell_price, t.buy_price) for t in tuples] == [
            ("UBS", "RP1.500.000", "RP1.400.000"),
        ]


# ============================================================================
# CHAIN
# ============================================================================

class CountingStrategy(ExtractionStrategy):
    """Strategy double that records how often it was called."""

    def __init__(self, name: str, result: List[RawPriceTuple], error: Exception = None):
        self.name = name
        super().__init__()
        self.result = result
        self.error = error
        self.calls = 0

    def extract(self, document, context):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


class TestExtractionChain:

    def test_first_non_empty_strategy_wins(self):
        winner_tuple = RawPriceTuple(vendor_label="ANTAM", product_label="1 gram", weight="1 gram", sell_price="Rp1")
        first = CountingStrategy("first", [])
        second = CountingStrategy("second", [winner_tuple])
        third = CountingStrategy("third", [winner_tuple, winner_tuple])

        outcome = ExtractionChain([first, second, third]).run(doc(), ctx())

        assert outcome.strategy == "second"
        assert outcome.tuples == [winner_tuple]
        assert outcome.tried == ["first", "second"]
        assert (first.calls, second.calls, third.calls) == (1, 1, 0)

    def test_all_empty(self):
        outcome = ExtractionChain([CountingStrategy("a", []), CountingStrategy("b", [])]).run(doc(), ctx())
        assert outcome.strategy is None
        assert outcome.tuples == []
        assert outcome.tried == ["a", "b"]

    def test_broken_strategy_falls_through(self):
        good = RawPriceTuple(vendor_label="ANTAM", product_label="1 gram", weight="1 gram", sell_price="Rp1")
        broken = CountingStrategy("broken", [], error=RuntimeError("boom"))
        backup = CountingStrategy("backup", [good])

        outcome = ExtractionChain([broken, backup]).run(doc(), ctx())

        assert outcome.strategy == "backup"
        assert outcome.errors == ["Strategy broken failed: boom"]

    def test_table_page_is_read_by_table_strategy_only(self):
        chain = ExtractionChain([ApiPayloadStrategy(), TableStrategy(), CardGridStrategy()])
        outcome = chain.run(doc(LOGAM_MULIA_TABLE), ctx(default_vendor="ANTAM"))
        assert outcome.strategy == "table"
        assert len(outcome.tuples) == 3
