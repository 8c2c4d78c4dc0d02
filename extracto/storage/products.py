"""Versioned product catalogue (``products`` collection)."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from extracto.models import StoredProduct
from extracto.storage.base import DEFAULT_LIMIT, VersionedStore
from extracto.storage.collection import CollectionSchema, Query

PRODUCTS = CollectionSchema(
    name="products",
    index_paths=("product_id", "source.domain", "brand"),
    numeric_paths=("price.amount", "rating.value"),
    text_paths=("name", "brand"),
)

TOP_BRANDS = 20


class ProductStore(VersionedStore[StoredProduct]):
    stored_model = StoredProduct

    def search(
        self,
        domain: Optional[str] = None,
        brand: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        text: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
        skip: int = 0,
    ) -> List[StoredProduct]:
        """Filter products, most recently seen first. Price bounds are inclusive."""
        query = Query(order_by="last_seen_at", text=text or None, limit=limit, skip=skip)
        if domain:
            query.equals["source.domain"] = domain
        if brand:
            query.equals["brand"] = brand
        if min_price is not None:
            query.minimum["price.amount"] = min_price
        if max_price is not None:
            query.maximum["price.amount"] = max_price
        return self._find(query)

    def stats(self) -> Dict[str, Any]:
        return {
            "total": self.collection.count(),
            "by_domain": self._grouped("source.domain"),
            "by_brand": self._grouped("brand", TOP_BRANDS, Query(present=("brand",))),
        }
