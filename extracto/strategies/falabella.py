"""Falabella Next.js page-state products."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from extracto.domain import domain_of
from extracto.models import (
    Product,
    ProductAvailability,
    ProductBadge,
    ProductMedia,
    ProductPrice,
    ProductPromotion,
    ProductVariant,
    Seller,
)
from extracto.normalize import build_rating, extract_currency, parse_price, source_info
from extracto.strategies.base import ExtractionStrategy, dig, find_records, map_records, safe_models

LOGGER = logging.getLogger(__name__)

_CANDIDATE_PATHS = [
    ("props", "pageProps", "results"),
    ("pageProps", "results"),
]

DEFAULT_SYMBOL = "S/ "


def _is_record(item: Any) -> bool:
    return isinstance(item, dict) and bool(item.get("productId")) and bool(item.get("displayName"))


class FalabellaStrategy(ExtractionStrategy):
    """Products from ``__NEXT_DATA__`` blobs or bare result arrays."""

    name = "Falabella"

    def can_handle(self, payload: Any, url: str) -> bool:
        if "falabella.com" in (url or ""):
            return True
        if dig(payload, ("props", "pageProps", "results")) is not None:
            return True
        return (
            isinstance(payload, list)
            and len(payload) > 0
            and isinstance(payload[0], dict)
            and "displayName" in payload[0]
            and "mediaUrls" in payload[0]
        )

    def extract(self, payload: Any, url: str, job_id: Optional[str] = None) -> List[Product]:
        records = find_records(payload, _CANDIDATE_PATHS)
        if records is None:
            if isinstance(payload, list):
                records = payload
            elif _is_record(payload):
                records = [payload]
            else:
                records = []

        domain = domain_of(url)
        products = map_records(records, _is_record, lambda item: self._to_product(item, domain, url, job_id))
        LOGGER.debug("Falabella: %d of %d records mapped", len(products), len(records))
        return products

    def _to_product(self, item: Dict[str, Any], domain: str, source_url: str, job_id: Optional[str]) -> Product:
        item_url = item.get("url") or source_url
        media_urls = [u for u in item.get("mediaUrls") or [] if isinstance(u, str) and u]
        availability = item.get("availability") if isinstance(item.get("availability"), dict) else {}
        stickers = item.get("meatStickers") if isinstance(item.get("meatStickers"), list) else []

        product = Product(
            product_id=str(item.get("productId") or item.get("skuId") or ""),
            name=str(item.get("displayName") or ""),
            brand=item.get("brand") if isinstance(item.get("brand"), str) else None,
            price=self._extract_price(item),
            rating=build_rating(item.get("rating"), item.get("totalReviews") or item.get("reviews")),
            media=ProductMedia(urls=media_urls, primary_image_url=media_urls[0] if media_urls else None),
            # Falabella sends "" for a shipping mode that is not offered
            availability=ProductAvailability(
                home_delivery=availability.get("homeDeliveryShipping") != "",
                pick_up_from_store=availability.get("pickUpFromStoreShipping") != "",
                international=availability.get("internationalShipping") != "",
                next_day=any(isinstance(s, dict) and s.get("type") == "next_day" for s in stickers),
            ),
            source=source_info(domain, item_url, job_id),
            seo_url=item_url,
            is_sponsored=bool(item.get("isSponsored")),
            raw_data=item,
        )

        product.variants = safe_models(ProductVariant, item.get("variants"))
        product.badges = safe_models(ProductBadge, item.get("badges"))
        product.promotions = safe_models(ProductPromotion, item.get("promotions"))

        specs = item.get("topSpecifications")
        if isinstance(specs, list) and specs:
            product.specifications = {f"spec_{i}": str(spec) for i, spec in enumerate(specs, 1)}

        if item.get("sellerId"):
            seller_id = str(item["sellerId"])
            product.seller = Seller(id=seller_id, name=str(item.get("sellerName") or seller_id))

        return product

    def _extract_price(self, item: Dict[str, Any]) -> ProductPrice:
        prices = item.get("prices")
        if isinstance(prices, list) and prices:
            typed = [p for p in prices if isinstance(p, dict)]
            if typed:
                entry = next((p for p in typed if p.get("type") == "internetPrice"), typed[0])
                raw = entry.get("price")
                if isinstance(raw, list):
                    raw = raw[0] if raw else "0"
                return ProductPrice(
                    amount=parse_price(raw or "0"),
                    currency=extract_currency(entry.get("symbol") or DEFAULT_SYMBOL),
                    label=entry.get("label") if isinstance(entry.get("label"), str) else None,
                    is_crossed=entry.get("crossed") if isinstance(entry.get("crossed"), bool) else None,
                    type=entry.get("type") if isinstance(entry.get("type"), str) else None,
                )

        price_str = str(item.get("price") or "0")
        return ProductPrice(amount=parse_price(price_str), currency=extract_currency(price_str))
