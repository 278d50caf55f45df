"""Scraper utilities for text normalization, retries, user agents and browser sessions."""

from .user_agents import (
    get_random_user_agent,
    get_chrome_user_agent,
    build_request_headers,
    USER_AGENTS,
)
from .normalizer import (
    PriceNormalizer,
    CategoryClassifier,
    VendorResolver,
    clean_text,
    parse_currency,
    derive_buy_price,
    parse_weight,
    format_gold_type,
    qualify_gold_type,
    detect_category,
    resolve_vendor,
    find_vendor_in_text,
    parse_pricing_date,
)
from .retry import linear_retry, RetryableStatusError


__all__ = [
    # User agents
    "get_random_user_agent",
    "get_chrome_user_agent",
    "build_request_headers",
    "USER_AGENTS",
    # Normalization
    "PriceNormalizer",
    "CategoryClassifier",
    "VendorResolver",
    "clean_text",
    "parse_currency",
    "derive_buy_price",
    "parse_weight",
    "format_gold_type",
    "qualify_gold_type",
    "detect_category",
    "resolve_vendor",
    "find_vendor_in_text",
    "parse_pricing_date",
    # Retry
    "linear_retry",
    "RetryableStatusError",
]
