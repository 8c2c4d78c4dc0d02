"""Last-resort product parser for unknown JSON shapes."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from extracto.domain import domain_of
from extracto.models import Product, ProductAvailability, ProductMedia, ProductPrice
from extracto.normalize import build_rating, create_base_product, first_present, parse_price, resolve_currency
from extracto.strategies.base import ExtractionStrategy, find_records, map_records

LOGGER = logging.getLogger(__name__)

ID_KEYS = ("id", "productId", "sku", "skuId", "asin")
NAME_KEYS = ("name", "title", "displayName", "productName")
PRICE_KEYS = ("price", "currentPrice", "salePrice", "amount")

_CANDIDATE_PATHS = [("products",), ("items",), ("results",)]


def looks_like_product(item: Any) -> bool:
    """An id-like and a name-like field, under any accepted alias."""
    if not isinstance(item, dict):
        return False
    return first_present(item, *ID_KEYS) is not None and first_present(item, *NAME_KEYS) is not None


class GenericStrategy(ExtractionStrategy):
    """Claims every payload; maps with the widest set of field aliases."""

    name = "Generic"

    def can_handle(self, payload: Any, url: str) -> bool:
        return True

    def extract(self, payload: Any, url: str, job_id: Optional[str] = None) -> List[Product]:
        if isinstance(payload, list):
            records = payload
        else:
            records = find_records(payload, _CANDIDATE_PATHS)
            if records is None:
                records = [payload] if looks_like_product(payload) else []

        domain = domain_of(url)
        return map_records(records, looks_like_product, lambda item: self._to_product(item, domain, url, job_id))

    def _to_product(self, item: Dict[str, Any], domain: str, source_url: str, job_id: Optional[str]) -> Product:
        product = create_base_product(
            str(first_present(item, *ID_KEYS)),
            str(first_present(item, *NAME_KEYS) or "Unknown Product"),
            self._extract_price(item),
            domain,
            source_url,
            job_id,
        )

        for attr in ("brand", "description", "category"):
            value = item.get(attr)
            if value and not isinstance(value, (dict, list)):
                setattr(product, attr, str(value))
            elif isinstance(value, dict) and value.get("name"):
                setattr(product, attr, str(value["name"]))

        images = self._extract_image_urls(item)
        if images:
            product.media = ProductMedia(urls=images, primary_image_url=images[0])

        product.rating = build_rating(
            item.get("rating") or item.get("averageRating"),
            item.get("reviews") or item.get("reviewCount") or item.get("numReviews"),
        )
        product.availability = ProductAvailability(
            home_delivery=item.get("available") is not False and item.get("inStock") is not False,
        )

        link = item.get("url") or item.get("link")
        if link:
            product.seo_url = str(link)

        product.raw_data = item
        return product

    def _extract_price(self, item: Dict[str, Any]) -> ProductPrice:
        value = first_present(item, *PRICE_KEYS) or 0
        currency = resolve_currency(item.get("currency"), item.get("priceSymbol"), value)
        return ProductPrice(amount=parse_price(value), currency=currency)

    def _extract_image_urls(self, item: Dict[str, Any]) -> List[str]:
        urls: List[Any] = []
        if isinstance(item.get("images"), list):
            urls = [img.get("url") if isinstance(img, dict) else img for img in item["images"]]
        elif isinstance(item.get("imageUrls"), list):
            urls = item["imageUrls"]
        elif isinstance(item.get("mediaUrls"), list):
            urls = item["mediaUrls"]
        elif item.get("image"):
            urls = [str(item["image"])]
        elif item.get("imageUrl"):
            urls = [str(item["imageUrl"])]
        return [u for u in urls if isinstance(u, str) and u]
