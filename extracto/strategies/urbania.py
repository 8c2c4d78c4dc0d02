"""Urbania (urbania.pe) listings: JSON-LD, listing cards, or API JSON."""
from __future__ import annotations

import logging
from typing import Any, List, Optional

from bs4 import BeautifulSoup, Tag

from extracto.domain import domain_of
from extracto.models import Listing, ListingLocation, ListingPrice
from extracto.normalize import parse_price, resolve_currency, source_info
from extracto.strategies.listing_base import (
    BaseListingStrategy,
    id_from_url,
    listing_type_of,
    parse_details_text,
    price_period_of,
    property_type_of,
)

LOGGER = logging.getLogger(__name__)

CARD_SELECTOR = ".listing-card, .property-card, [data-property-id]"
TITLE_SELECTOR = ".title, .property-title, h2, h3"
DESCRIPTION_SELECTOR = ".description, .property-description"
PRICE_SELECTOR = '.price, .property-price, [class*="price"]'
LOCATION_SELECTOR = '.location, .address, [class*="location"]'
DETAILS_SELECTOR = ".details, .property-details, .features"

_SKIPPED_IMAGES = ("placeholder", "logo")


def _text(card: Tag, selector: str) -> str:
    node = card.select_one(selector)
    return node.get_text(" ", strip=True) if node else ""


class UrbaniaStrategy(BaseListingStrategy):
    name = "Urbania"

    default_currency = "PEN"
    country = "Peru"
    untitled = "Sin título"
    base_url = "https://urbania.pe"

    def can_handle(self, payload: Any, url: str) -> bool:
        return "urbania.pe" in (url or "")

    def from_cards(self, soup: BeautifulSoup, url: str, job_id: Optional[str] = None) -> List[Listing]:
        listings: List[Listing] = []
        seen = set()
        cards = soup.select(CARD_SELECTOR)
        for card in cards:
            try:
                listing = self._card_listing(card, url, job_id)
            except Exception:
                LOGGER.error("Urbania: failed to parse listing card", exc_info=True)
                continue
            # nested [data-property-id] nodes repeat their enclosing card
            if listing is None or listing.listing_id in seen:
                continue
            seen.add(listing.listing_id)
            listings.append(listing)
        LOGGER.info("Urbania: %d listings from %d cards", len(listings), len(cards))
        return listings

    def _card_listing(self, card: Tag, url: str, job_id: Optional[str]) -> Optional[Listing]:
        link = card.select_one("a[href]")
        listing_url = self.absolute(link["href"], url) if link else url

        listing_id = card.get("data-property-id")
        if not listing_id:
            nested = card.select_one("[data-property-id]")
            listing_id = nested.get("data-property-id") if nested else None
        if not listing_id and link:
            listing_id = id_from_url(listing_url)

        title = _text(card, TITLE_SELECTOR)
        if not listing_id or not title:
            return None

        price_text = _text(card, PRICE_SELECTOR)
        details_text = " ".join(node.get_text(" ", strip=True) for node in card.select(DETAILS_SELECTOR))
        listing_type = listing_type_of(listing_url)

        return Listing(
            listing_id=str(listing_id),
            source=source_info(domain_of(url), listing_url, job_id),
            title=title,
            description=_text(card, DESCRIPTION_SELECTOR) or None,
            listing_type=listing_type,
            property_type=property_type_of(f"{listing_url} {title}"),
            price=ListingPrice(
                amount=parse_price(price_text),
                currency=resolve_currency(None, price_text, default=self.default_currency),
                period=price_period_of(listing_url, listing_type),
            ),
            location=self._card_location(_text(card, LOCATION_SELECTOR)),
            details=parse_details_text(details_text),
            images=self._card_images(card, url) or None,
        )

    def _card_location(self, text: str) -> ListingLocation:
        # "Miraflores, Lima, Lima"
        parts = [part.strip() for part in text.split(",") if part.strip()]
        return ListingLocation(
            country=self.country,
            district=parts[0] if parts else None,
            city=parts[1] if len(parts) > 1 else None,
            region=parts[2] if len(parts) > 2 else None,
            address=text or None,
        )

    def _card_images(self, card: Tag, page_url: str) -> List[str]:
        images = []
        for img in card.select("img"):
            src = img.get("src") or img.get("data-src")
            if not src or any(word in src for word in _SKIPPED_IMAGES):
                continue
            images.append(self.absolute(src, page_url))
        return images
