"""Shared field coercion helpers used by every extraction strategy."""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from extracto.models import ProductAvailability, ProductMedia, ProductPrice, ProductRating, Product, SourceInfo

DEFAULT_CURRENCY = "USD"

# Checked in order, first match wins; longer symbols precede "$".
CURRENCY_SYMBOLS: List[Tuple[str, str]] = [
    ("S/", "PEN"),
    ("R$", "BRL"),
    ("ARS", "ARS"),
    ("COP", "COP"),
    ("CLP", "CLP"),
    ("$", "USD"),
    ("€", "EUR"),
    ("£", "GBP"),
    ("¥", "JPY"),
]

_NON_NUMERIC = re.compile(r"[^0-9.]")
_LEADING_FLOAT = re.compile(r"^\d*\.?\d+|^\d+\.?")
_LEADING_INT = re.compile(r"^\s*[-+]?\d+")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _leading_float(text: str) -> float:
    match = _LEADING_FLOAT.match(text)
    if not match:
        return 0.0
    try:
        return float(match.group(0))
    except ValueError:
        return 0.0


def parse_price(value: Any) -> float:
    """Turn a price-like value into a float, never raising.

    Numbers pass through. Strings lose every character that is not a digit
    or a decimal point and the remainder is parsed; anything unparseable is 0.
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _NON_NUMERIC.sub("", str(value))
    try:
        return float(cleaned)
    except ValueError:
        # "1.299.00" style leftovers: keep the leading number
        return _leading_float(cleaned)


def extract_currency(text: Any, default: str = DEFAULT_CURRENCY) -> str:
    """Map the first known currency symbol found in ``text`` to its code."""
    if not isinstance(text, str):
        return default
    for symbol, code in CURRENCY_SYMBOLS:
        if symbol in text:
            return code
    return default


def resolve_currency(code: Any, *price_like: Any, default: str = DEFAULT_CURRENCY) -> str:
    """Explicit code first, then symbol lookup over ``price_like`` strings, then ``default``."""
    if isinstance(code, str) and code.strip():
        return code.strip().upper()
    for text in price_like:
        if isinstance(text, str):
            found = extract_currency(text, default="")
            if found:
                return found
    return default


def parse_rating(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return _leading_float(value.strip())
    return 0.0


def parse_review_count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group(0)) if match else 0
    return 0


def build_rating(rating_value: Any, review_count: Any) -> Optional[ProductRating]:
    """Rating object only when both value and review count are positive."""
    value = parse_rating(rating_value)
    total_reviews = parse_review_count(review_count)
    if value > 0 and total_reviews > 0:
        return ProductRating(value=value, total_reviews=total_reviews)
    return None


def parse_int(value: Any) -> Optional[int]:
    """Integer or ``None``; zero counts as absent. Strings keep their leading digits."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        try:
            return int(value) or None
        except (ValueError, OverflowError):
            return None
    match = _LEADING_INT.match(str(value))
    if not match:
        return None
    return int(match.group(0)) or None


def parse_float(value: Any) -> Optional[float]:
    """Float or ``None``; zero counts as absent."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) or None
    return _leading_float(str(value).strip().replace(",", "")) or None


def first_present(item: dict, *keys: str) -> Any:
    """Value of the first key holding a truthy value."""
    for key in keys:
        value = item.get(key)
        if value:
            return value
    return None


def source_info(domain: str, url: str, job_id: Optional[str] = None) -> SourceInfo:
    """Provenance stamped at extraction time."""
    return SourceInfo(domain=domain, url=url, scraped_at=utc_now(), job_id=job_id)


def create_base_product(
    product_id: str,
    name: str,
    price: ProductPrice,
    domain: str,
    url: str,
    job_id: Optional[str] = None,
) -> Product:
    """Product with the required fields filled and neutral defaults elsewhere."""
    return Product(
        product_id=product_id,
        name=name,
        price=price,
        media=ProductMedia(urls=[]),
        availability=ProductAvailability(home_delivery=False),
        source=source_info(domain, url, job_id),
        seo_url=url,
        is_sponsored=False,
    )
