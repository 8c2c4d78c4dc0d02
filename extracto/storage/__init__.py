"""Versioned document stores and their backing collections."""

from .base import UpsertStats, VersionedStore
from .collection import Collection, CollectionSchema, MemoryCollection, Query, StoreUnavailableError
from .jobs import SCRAPE_JOBS, JobResultStore
from .listings import LISTINGS, ListingStore
from .postgres import PostgresCollection
from .products import PRODUCTS, ProductStore
from .versioning import PRICE_HISTORY_LIMIT, apply_upsert, unique_key

__all__ = [
    "Collection",
    "CollectionSchema",
    "JobResultStore",
    "LISTINGS",
    "ListingStore",
    "MemoryCollection",
    "PRICE_HISTORY_LIMIT",
    "PRODUCTS",
    "PostgresCollection",
    "ProductStore",
    "Query",
    "SCRAPE_JOBS",
    "StoreUnavailableError",
    "UpsertStats",
    "VersionedStore",
    "apply_upsert",
    "unique_key",
]
