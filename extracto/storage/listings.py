"""Versioned real-estate listings (``real_estate_listings`` collection)."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from extracto.models import StoredListing
from extracto.storage.base import DEFAULT_LIMIT, VersionedStore
from extracto.storage.collection import CollectionSchema, Query

LISTINGS = CollectionSchema(
    name="real_estate_listings",
    index_paths=(
        "listing_id",
        "source.domain",
        "listing_type",
        "property_type",
        "location.district",
        "location.city",
    ),
    numeric_paths=("price.amount", "details.bedrooms", "details.bathrooms"),
    text_paths=("title", "description", "location.district"),
    geo_path="location.coordinates",
)

TOP_DISTRICTS = 10


class ListingStore(VersionedStore[StoredListing]):
    stored_model = StoredListing

    def search(
        self,
        domain: Optional[str] = None,
        listing_type: Optional[str] = None,
        property_type: Optional[str] = None,
        district: Optional[str] = None,
        city: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        min_bedrooms: Optional[int] = None,
        text: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
        skip: int = 0,
    ) -> List[StoredListing]:
        query = Query(order_by="last_seen_at", text=text or None, limit=limit, skip=skip)
        for path, value in (
            ("source.domain", domain),
            ("listing_type", listing_type),
            ("property_type", property_type),
            ("location.district", district),
            ("location.city", city),
        ):
            if value:
                query.equals[path] = value
        if min_price is not None:
            query.minimum["price.amount"] = min_price
        if max_price is not None:
            query.maximum["price.amount"] = max_price
        if min_bedrooms is not None:
            query.minimum["details.bedrooms"] = min_bedrooms
        return self._find(query)

    def stats(self) -> Dict[str, Any]:
        return {
            "total": self.collection.count(),
            "by_domain": self._grouped("source.domain"),
            "by_type": self._grouped("listing_type"),
            "by_property_type": self._grouped("property_type"),
            "top_districts": self._grouped("location.district", TOP_DISTRICTS),
        }
