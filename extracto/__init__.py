"""Multi-strategy extraction and versioned storage for scraped catalogues.

Finished crawl jobs carry page-state JSON, product arrays or listing HTML;
extraction strategies turn them into canonical products and real-estate
listings, and the versioned stores keep them deduplicated by
``domain:entity_id`` with first/last-seen timestamps, versions and a bounded
price history.
"""

from .extractor import Extractor, build_listing_extractor, build_product_extractor
from .router import Router

__all__ = [
    "Extractor",
    "Router",
    "build_listing_extractor",
    "build_product_extractor",
]
