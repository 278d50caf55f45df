"""Extraction strategies: ordered ways of reading prices out of a page.

The chain tries each strategy in order and keeps the output of the first
one that yields any tuples. Outputs are never merged, so a page that
matches an early strategy is read exactly one way.

Default order, most trusted first:
1. ApiPayloadStrategy  - JSON captured from XHR calls or embedded in <script>
2. TableStrategy       - rows of the main HTML price table
3. CardGridStrategy    - repeated card/grid elements
4. TextBlockStrategy   - free text of JS-rendered vendor blocks
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, List, Optional, Sequence

import structlog
from bs4 import BeautifulSoup, Tag

from goldwatch.scrapers.base import (
    ExtractionContext,
    ExtractionStrategy,
    FetchedDocument,
    RawPriceTuple,
)
from goldwatch.scrapers.utils.normalizer import VENDOR_NAME_RE, clean_text, find_vendor_in_text

logger = structlog.get_logger(__name__)


PRICE_TEXT_RE = re.compile(r"(?:Rp|IDR)\s?\.?\s?\d[\d.,]*", re.IGNORECASE)
WEIGHT_TEXT_RE = re.compile(r"\d+(?:[.,]\d+)*\s*(?:gram|gr|g)\b", re.IGNORECASE)

# First-cell texts of column heading rows
TABLE_HEADING_KEYWORDS = frozenset(
    ["jenis", "type", "berat", "weight", "gram", "harga", "harga dasar", "produk", "product"]
)


def _has_digit(text: str) -> bool:
    return any(ch.isdigit() for ch in text)


# ---------------------------------------------------------------------------
# Shared text-block parsing (card grid + free text)
# ---------------------------------------------------------------------------


def split_vendor_sections(text: str, fallback_vendor: Optional[str] = None) -> List[tuple]:
    """Split a text block into (vendor_label, section_text) pieces.

    A section runs from one vendor name to the next. Text before the first
    vendor name belongs to ``fallback_vendor`` (dropped when there is none).
    """
    upper = clean_text(text).upper()
    matches = list(VENDOR_NAME_RE.finditer(upper))

    sections = []
    if not matches:
        if fallback_vendor:
            sections.append((fallback_vendor, upper))
        return sections

    leading = upper[: matches[0].start()]
    if fallback_vendor and leading.strip():
        sections.append((fallback_vendor, leading))

    for idx, match in enumerate(matches):
        end = matches[idx + 1].start() if idx + 1 < len(matches) else len(upper)
        sections.append((match.group(1), upper[match.end():end]))
    return sections


def parse_text_block(
    text: str,
    fallback_vendor: Optional[str] = None,
    sell_only: bool = False,
) -> List[RawPriceTuple]:
    """Pair weights and prices positionally inside each vendor section.

    Each vendor section is expected to print, per product, a weight then a
    sell price then a buy-back price. With ``sell_only`` (pages that never
    print a buy-back price) one price per weight is expected instead. Any
    other count yields one misaligned marker tuple, which normalization
    rejects.
    """
    results: List[RawPriceTuple] = []
    prices_per_weight = 1 if sell_only else 2

    for vendor_label, section in split_vendor_sections(text, fallback_vendor):
        prices = PRICE_TEXT_RE.findall(section)
        weights = WEIGHT_TEXT_RE.findall(section)

        if not prices and not weights:
            continue

        if not weights or len(prices) != prices_per_weight * len(weights):
            results.append(RawPriceTuple(
                vendor_label=vendor_label,
                product_label=section[:80].strip(),
                misaligned=True,
                weight_count=len(weights),
                price_count=len(prices),
            ))
            continue

        for i, weight in enumerate(weights):
            results.append(RawPriceTuple(
                vendor_label=vendor_label,
                product_label=weight,
                weight=weight,
                sell_price=prices[prices_per_weight * i],
                buy_price=None if sell_only else prices[2 * i + 1],
                category_hint=vendor_label,
            ))

    return results


def _dedupe(tuples: Iterable[RawPriceTuple]) -> List[RawPriceTuple]:
    seen = set()
    unique = []
    for item in tuples:
        key = (
            item.vendor_label, item.weight, item.sell_price, item.buy_price,
            item.misaligned, item.product_label if item.misaligned else None,
        )
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


# ---------------------------------------------------------------------------
# Strategy 1: structured API payload
# ---------------------------------------------------------------------------


class ApiPayloadStrategy(ExtractionStrategy):
    """Reads product lists out of JSON payloads.

    Sources are the XHR/fetch bodies intercepted during a browser render
    and JSON embedded in ``<script type="application/json">`` or
    ``#__NEXT_DATA__``. Any dict carrying a weight key and a sell-price key
    is a product row; vendor names are inherited from enclosing dicts.
    """

    name = "api_payload"

    WEIGHT_KEYS = ("weight", "gold_type", "goldType", "berat", "denom", "denomination")
    SELL_KEYS = ("sellPrice", "sell_price", "harga_jual", "hargaJual", "price", "harga")
    BUY_KEYS = ("buyPrice", "buy_price", "buyback", "buybackPrice", "buyback_price", "harga_beli", "hargaBeli")
    NAME_KEYS = ("name", "product_name", "productName", "title", "nama")
    VENDOR_KEYS = ("vendor", "vendor_name", "vendorName", "brand", "vendorLabel")

    def extract(self, document: FetchedDocument, context: ExtractionContext) -> List[RawPriceTuple]:
        results: List[RawPriceTuple] = []
        for origin, payload in self._payloads(document):
            found = list(self._walk(payload, context.default_vendor))
            if found:
                self.logger.info("api_payload_products_found", origin=origin, count=len(found))
                results.extend(found)
        return _dedupe(results)

    def _payloads(self, document: FetchedDocument) -> Iterator[tuple]:
        for url, body in document.api_bodies.items():
            data = self._loads(body)
            if data is not None:
                yield url, data

        if not document.html:
            return
        soup = BeautifulSoup(document.html, "html.parser")
        for script in soup.select("script[type='application/json'], script#__NEXT_DATA__"):
            data = self._loads(script.string or script.get_text())
            if data is not None:
                yield "script", data

    @staticmethod
    def _loads(body: Optional[str]) -> Any:
        if not body or not body.strip():
            return None
        try:
            return json.loads(body)
        except (json.JSONDecodeError, TypeError):
            return None

    @staticmethod
    def _first(item: dict, keys: Sequence[str]) -> Any:
        for key in keys:
            value = item.get(key)
            if value not in (None, ""):
                return value
        return None

    def _walk(self, node: Any, vendor: Optional[str]) -> Iterator[RawPriceTuple]:
        if isinstance(node, list):
            for child in node:
                yield from self._walk(child, vendor)
            return
        if not isinstance(node, dict):
            return

        own_vendor = self._first(node, self.VENDOR_KEYS)
        if isinstance(own_vendor, str):
            vendor = own_vendor

        weight = self._first(node, self.WEIGHT_KEYS)
        sell = self._first(node, self.SELL_KEYS)
        if weight is not None and isinstance(sell, (str, int, float)):
            buy = self._first(node, self.BUY_KEYS)
            label = self._first(node, self.NAME_KEYS)
            yield RawPriceTuple(
                vendor_label=vendor,
                product_label=str(label) if label else str(weight),
                weight=_scalar_text(weight),
                sell_price=_scalar_text(sell),
                buy_price=_scalar_text(buy) if buy is not None else None,
                category_hint=str(label) if label else None,
            )
            return

        for value in node.values():
            if isinstance(value, (dict, list)):
                yield from self._walk(value, vendor)


def _scalar_text(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ---------------------------------------------------------------------------
# Strategy 2: semantic DOM table
# ---------------------------------------------------------------------------


class TableStrategy(ExtractionStrategy):
    """Reads (label, base/buy, sell) rows from HTML price tables.

    Category heading rows (no data cells, a single spanning cell, or no
    numbers outside the first cell) set the category context for the rows
    below them until the next heading.
    """

    name = "table"

    def extract(self, document: FetchedDocument, context: ExtractionContext) -> List[RawPriceTuple]:
        if not document.html:
            return []
        soup = BeautifulSoup(document.html, "html.parser")

        results: List[RawPriceTuple] = []
        for table in soup.find_all("table"):
            results.extend(self._parse_table(table, context))
        return results

    def _parse_table(self, table: Tag, context: ExtractionContext) -> List[RawPriceTuple]:
        rows = table.select("tbody tr") or table.find_all("tr")
        current_category: Optional[str] = None
        results: List[RawPriceTuple] = []

        for row in rows:
            cells = row.find_all("td")
            if not cells:
                heading = clean_text(row.get_text(" "))
                if heading and heading.lower() not in TABLE_HEADING_KEYWORDS and not _has_digit(heading):
                    current_category = heading
                continue

            texts = [clean_text(cell.get_text(" ")) for cell in cells]
            first = texts[0]

            if not first or first.lower() in TABLE_HEADING_KEYWORDS:
                continue

            if len(texts) == 1 or not any(_has_digit(t) for t in texts[1:]):
                if not _has_digit(first):
                    current_category = first
                continue

            if len(texts) >= 3:
                base_or_buy, sell = texts[1], texts[2]
            else:
                base_or_buy, sell = None, texts[1]

            results.append(RawPriceTuple(
                vendor_label=context.default_vendor,
                product_label=first,
                weight=first,
                buy_price=base_or_buy,
                base_price=base_or_buy,
                sell_price=sell,
                category_hint=current_category,
            ))

        return results


# ---------------------------------------------------------------------------
# Strategy 3: card / grid elements
# ---------------------------------------------------------------------------


class CardGridStrategy(ExtractionStrategy):
    """Finds repeated card-like elements and parses their text.

    Prefers the innermost cards that name a vendor and show prices (one
    vendor section each). On single-vendor pages no card names a vendor,
    so the innermost priced cards are read under the default vendor.
    """

    name = "card_grid"

    CARD_SELECTOR = ", ".join([
        "[class*='card']",
        "[class*='price']",
        "[class*='vendor']",
        "[class*='product']",
        ".price-item",
        ".gold-price-item",
    ])

    def extract(self, document: FetchedDocument, context: ExtractionContext) -> List[RawPriceTuple]:
        if not document.html:
            return []
        soup = BeautifulSoup(document.html, "html.parser")
        cards = soup.select(self.CARD_SELECTOR)
        if not cards:
            return []

        priced = [card for card in cards if PRICE_TEXT_RE.search(card.get_text(" "))]
        vendor_cards = [
            card for card in priced
            if find_vendor_in_text(card.get_text(" ")) is not None
        ]

        if vendor_cards:
            selected = _innermost(vendor_cards)
            fallback = None
        else:
            selected = _innermost(priced)
            fallback = context.default_vendor

        self.logger.debug("cards_selected", total=len(cards), selected=len(selected))

        results: List[RawPriceTuple] = []
        for card in selected:
            results.extend(parse_text_block(
                card.get_text("\n"), fallback_vendor=fallback, sell_only=context.sell_only,
            ))
        return _dedupe(results)


def _innermost(elements: List[Tag]) -> List[Tag]:
    """Drop every element that has another candidate element as a descendant."""
    candidate_ids = {id(el) for el in elements}
    innermost = []
    for el in elements:
        has_candidate_descendant = any(
            id(desc) in candidate_ids for desc in el.descendants if isinstance(desc, Tag)
        )
        if not has_candidate_descendant:
            innermost.append(el)
    return innermost


# ---------------------------------------------------------------------------
# Strategy 4: free-text block scanning
# ---------------------------------------------------------------------------


class TextBlockStrategy(ExtractionStrategy):
    """Scans JS-evaluated text blocks (or the page text) for vendor sections.

    Relies on each vendor section printing weight, sell and buy-back price
    in a fixed order. Sections that break the pattern become misaligned
    markers instead of guessed pairings.
    """

    name = "text_block"

    def extract(self, document: FetchedDocument, context: ExtractionContext) -> List[RawPriceTuple]:
        blocks = list(document.text_blocks)
        if not blocks and document.html:
            soup = BeautifulSoup(document.html, "html.parser")
            for hidden in soup(["script", "style", "noscript"]):
                hidden.decompose()
            blocks = [soup.get_text("\n")]

        results: List[RawPriceTuple] = []
        for block in blocks:
            if not block or not (PRICE_TEXT_RE.search(block) or WEIGHT_TEXT_RE.search(block)):
                continue
            results.extend(parse_text_block(
                block, fallback_vendor=context.default_vendor, sell_only=context.sell_only,
            ))
        return _dedupe(results)


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------


@dataclass
class ExtractionOutcome:
    """Which strategy won and what it produced."""

    strategy: Optional[str]
    tuples: List[RawPriceTuple] = field(default_factory=list)
    tried: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class ExtractionChain:
    """Runs strategies in order; the first non-empty result wins."""

    def __init__(self, strategies: Sequence[ExtractionStrategy]):
        self.strategies = list(strategies)
        self.logger = logger.bind(service="extraction_chain")

    def run(self, document: FetchedDocument, context: ExtractionContext) -> ExtractionOutcome:
        outcome = ExtractionOutcome(strategy=None)

        for strategy in self.strategies:
            outcome.tried.append(strategy.name)
            try:
                tuples = strategy.extract(document, context)
            except Exception as e:
                # A broken strategy must not hide the fallbacks behind it
                message = f"Strategy {strategy.name} failed: {e}"
                self.logger.warning("strategy_failed", strategy=strategy.name, error=str(e), exc_info=True)
                outcome.errors.append(message)
                continue

            self.logger.info("strategy_tried", strategy=strategy.name, count=len(tuples))
            if tuples:
                outcome.strategy = strategy.name
                outcome.tuples = tuples
                return outcome

        return outcome


def default_strategies() -> List[ExtractionStrategy]:
    """All four strategies in trust order."""
    return [ApiPayloadStrategy(), TableStrategy(), CardGridStrategy(), TextBlockStrategy()]
