"""Shared mapping for real-estate listing strategies.

A listing payload arrives in one of three shapes:

- a dict carrying an ``html`` key, or a bare HTML string: JSON-LD
  ``RealEstateListing`` blocks are preferred, card scraping is the fallback;
- pre-parsed JSON (an API response): mapped field by field, no HTML logic.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from extracto.domain import domain_of
from extracto.models import (
    Coordinates,
    Listing,
    ListingContact,
    ListingDetails,
    ListingLocation,
    ListingPrice,
)
from extracto.normalize import first_present, parse_float, parse_int, parse_price, resolve_currency, source_info
from extracto.strategies.base import ExtractionStrategy, find_records, map_records

LOGGER = logging.getLogger(__name__)

ID_KEYS = ("id", "listingId", "propertyId")
TITLE_KEYS = ("title", "name")

_CANDIDATE_PATHS = [("listings",), ("results",), ("items",)]

_BEDROOMS = re.compile(r"(\d+)\s*(?:dorm|hab|bedroom|recámara)", re.IGNORECASE)
_BATHROOMS = re.compile(r"(\d+)\s*(?:baño|bath|bathroom)", re.IGNORECASE)
_PARKING = re.compile(r"(\d+)\s*(?:estac|parking|garage)", re.IGNORECASE)
_AREA = re.compile(r"(\d+(?:\.\d+)?)\s*m[²2]", re.IGNORECASE)
_NUMERIC_SEGMENT = re.compile(r"/(\d+)")


def listing_type_of(text: str) -> str:
    text = (text or "").lower()
    if "alquiler" in text or "rent" in text:
        return "rent"
    if "venta" in text or "sale" in text:
        return "sale"
    return "other"


def property_type_of(text: str) -> str:
    text = (text or "").lower()
    if "departamento" in text or "apartment" in text:
        return "apartment"
    if "casa" in text or "house" in text:
        return "house"
    if "terreno" in text or "land" in text:
        return "land"
    if "oficina" in text or "office" in text:
        return "office"
    if "local comercial" in text or "commercial" in text:
        return "commercial"
    return "other"


def price_period_of(url: str, listing_type: str) -> str:
    url = (url or "").lower()
    if listing_type == "rent" or "alquiler" in url or "rent" in url:
        return "monthly"
    return "one_time"


def parse_details_text(text: str) -> ListingDetails:
    """Pick counts and area out of free text such as "3 dorm · 2 baños · 120 m²"."""
    details = ListingDetails()
    if not text:
        return details
    if match := _BEDROOMS.search(text):
        details.bedrooms = int(match.group(1))
    if match := _BATHROOMS.search(text):
        details.bathrooms = int(match.group(1))
    if match := _PARKING.search(text):
        details.parking_spaces = int(match.group(1))
    if match := _AREA.search(text):
        details.total_area = float(match.group(1))
    return details


def id_from_url(href: str) -> Optional[str]:
    """First all-digit path segment, else the last path segment."""
    if not href:
        return None
    path = urlparse(href).path
    if match := _NUMERIC_SEGMENT.search(path):
        return match.group(1)
    parts = [part for part in path.split("/") if part]
    return parts[-1] if parts else None


def _is_type(node: Dict[str, Any], type_name: str) -> bool:
    node_type = node.get("@type")
    return node_type == type_name or (isinstance(node_type, list) and type_name in node_type)


def _string_list(value: Any) -> Optional[List[str]]:
    if isinstance(value, str) and value:
        return [value]
    if isinstance(value, list):
        items = [v.get("url") if isinstance(v, dict) else v for v in value]
        items = [v for v in items if isinstance(v, str) and v]
        return items or None
    return None


class BaseListingStrategy(ExtractionStrategy):
    """JSON and JSON-LD mapping shared by listing strategies."""

    default_currency = "USD"
    country: Optional[str] = None
    untitled = "Untitled"
    require_title = False
    base_url: Optional[str] = None

    def extract(self, payload: Any, url: str, job_id: Optional[str] = None) -> List[Listing]:
        if isinstance(payload, dict) and isinstance(payload.get("html"), str):
            return self.extract_html(payload["html"], url, job_id)
        if isinstance(payload, str):
            return self.extract_html(payload, url, job_id)
        if isinstance(payload, (dict, list)):
            return self.extract_json(payload, url, job_id)
        LOGGER.warning("%s: unsupported payload type %s", self.name, type(payload).__name__)
        return []

    # --- pre-parsed JSON ---

    def looks_like_listing(self, item: Any) -> bool:
        if not isinstance(item, dict) or first_present(item, *ID_KEYS) is None:
            return False
        return not self.require_title or first_present(item, *TITLE_KEYS) is not None

    def extract_json(self, payload: Any, url: str, job_id: Optional[str] = None) -> List[Listing]:
        if isinstance(payload, list):
            records = payload
        else:
            records = find_records(payload, _CANDIDATE_PATHS)
            if records is None:
                records = [payload] if self.looks_like_listing(payload) else []
        return map_records(records, self.looks_like_listing, lambda item: self.json_listing(item, url, job_id))

    def json_listing(self, item: Dict[str, Any], url: str, job_id: Optional[str] = None) -> Listing:
        raw_price = item.get("price")
        price_info = raw_price if isinstance(raw_price, dict) else {}
        amount_raw = first_present(price_info, "amount", "value") if price_info else raw_price

        listing_type = listing_type_of(str(item.get("type") or item.get("listingType") or ""))
        period = price_info.get("period")
        if period not in ("monthly", "daily", "one_time"):
            period = price_period_of(url, listing_type)

        location = item.get("location") if isinstance(item.get("location"), dict) else {}
        item_url = str(item.get("url") or item.get("link") or url)

        return Listing(
            listing_id=str(first_present(item, *ID_KEYS)),
            source=source_info(domain_of(url), item_url, job_id),
            title=str(first_present(item, *TITLE_KEYS) or self.untitled),
            description=item.get("description") or None,
            listing_type=listing_type,
            property_type=property_type_of(str(item.get("propertyType") or item.get("category") or "")),
            price=ListingPrice(
                amount=parse_price(amount_raw or 0),
                currency=resolve_currency(
                    price_info.get("currency") or item.get("currency"),
                    amount_raw,
                    default=self.default_currency,
                ),
                period=period,
            ),
            location=ListingLocation(
                country=location.get("country") or self.country,
                city=location.get("city") or item.get("city") or None,
                district=location.get("district") or item.get("district") or None,
                region=location.get("region") or item.get("region") or None,
                address=location.get("address") or item.get("address") or None,
                coordinates=self._coordinates(location.get("coordinates"), item.get("coordinates"), location, item),
            ),
            details=ListingDetails(
                bedrooms=parse_int(item.get("bedrooms") or item.get("rooms")),
                bathrooms=parse_int(item.get("bathrooms")),
                parking_spaces=parse_int(item.get("parking") or item.get("parkingSpaces")),
                total_area=parse_float(item.get("area") or item.get("totalArea")),
                floor=parse_int(item.get("floor")),
                year_built=parse_int(item.get("yearBuilt")),
            ),
            features=_string_list(item.get("features")),
            amenities=_string_list(item.get("amenities")),
            images=_string_list(item.get("images")) or _string_list(item.get("image")),
            contact=ListingContact.model_validate(item["contact"]) if isinstance(item.get("contact"), dict) else None,
            raw_data=item,
        )

    @staticmethod
    def _coordinates(*sources: Any) -> Optional[Coordinates]:
        """First source carrying both a latitude and a longitude."""
        for source in sources:
            if not isinstance(source, dict):
                continue
            lat = source.get("lat", source.get("latitude"))
            lng = source.get("lng", source.get("lon", source.get("longitude")))
            try:
                return Coordinates(lat=float(lat), lng=float(lng))
            except (TypeError, ValueError):
                continue
        return None

    # --- HTML ---

    def extract_html(self, html: str, url: str, job_id: Optional[str] = None) -> List[Listing]:
        soup = BeautifulSoup(html, "lxml")
        listings = self.from_json_ld(soup, url, job_id)
        if listings:
            LOGGER.info("%s: %d listings from JSON-LD", self.name, len(listings))
            return listings
        LOGGER.debug("%s: no JSON-LD listings, trying card selectors", self.name)
        return self.from_cards(soup, url, job_id)

    def from_cards(self, soup: BeautifulSoup, url: str, job_id: Optional[str] = None) -> List[Listing]:
        """Selector-based fallback; sites with known markup override this."""
        return []

    def from_json_ld(self, soup: BeautifulSoup, url: str, job_id: Optional[str] = None) -> List[Listing]:
        listings: List[Listing] = []
        for script in soup.find_all("script", type="application/ld+json"):
            text = script.string or script.get_text()
            if not text or not text.strip():
                continue
            try:
                data = json.loads(text)
            except ValueError as exc:
                LOGGER.warning("%s: skipping unparseable JSON-LD block: %s", self.name, exc)
                continue
            for node in self._json_ld_nodes(data):
                if _is_type(node, "RealEstateListing"):
                    listings.extend(self._from_json_ld_node(node, url, job_id))
        return listings

    @staticmethod
    def _json_ld_nodes(data: Any) -> Iterable[Dict[str, Any]]:
        nodes = data if isinstance(data, list) else [data]
        for node in nodes:
            if not isinstance(node, dict):
                continue
            yield node
            graph = node.get("@graph")
            if isinstance(graph, list):
                yield from (g for g in graph if isinstance(g, dict))

    def _from_json_ld_node(self, data: Dict[str, Any], url: str, job_id: Optional[str]) -> List[Listing]:
        entities = data.get("mainEntity")
        if isinstance(entities, list):
            candidates = [e for e in entities if isinstance(e, dict)]
        elif data.get("name") or data.get("description"):
            candidates = [data]
        else:
            candidates = []
        listings = []
        for entity in candidates:
            try:
                listing = self._json_ld_entity(entity, data, url, job_id)
            except Exception:
                LOGGER.error("%s: failed to parse JSON-LD entity", self.name, exc_info=True)
                continue
            if listing is not None:
                listings.append(listing)
        return listings

    def _json_ld_entity(
        self,
        entity: Dict[str, Any],
        parent: Dict[str, Any],
        url: str,
        job_id: Optional[str],
    ) -> Optional[Listing]:
        listing_url = self.absolute(str(entity.get("url") or parent.get("url") or url), url)
        listing_id = id_from_url(listing_url)
        if not listing_id:
            return None

        offers = entity.get("offers") or parent.get("offers") or {}
        if isinstance(offers, list):
            offers = offers[0] if offers and isinstance(offers[0], dict) else {}
        elif isinstance(offers, (str, int, float)):
            offers = {"price": offers}
        elif not isinstance(offers, dict):
            offers = {}
        if _is_type(offers, "AggregateOffer"):
            amount_raw = offers.get("lowPrice") or offers.get("highPrice") or 0
        else:
            amount_raw = offers.get("price") or 0

        title = str(entity.get("name") or self.untitled)
        listing_type = listing_type_of(listing_url)
        content_location = entity.get("contentLocation") if isinstance(entity.get("contentLocation"), dict) else {}

        return Listing(
            listing_id=listing_id,
            source=source_info(domain_of(url), listing_url, job_id),
            title=title,
            description=entity.get("description") or None,
            listing_type=listing_type,
            property_type=property_type_of(title),
            price=ListingPrice(
                amount=parse_price(amount_raw),
                currency=resolve_currency(offers.get("priceCurrency"), amount_raw, default=self.default_currency),
                period=price_period_of(listing_url, listing_type),
            ),
            location=ListingLocation(country=self.country, district=content_location.get("name") or None),
            images=_string_list(entity.get("image")),
        )

    def absolute(self, href: str, page_url: str) -> str:
        if href.startswith("http"):
            return href
        return urljoin(self.base_url or page_url, href)
