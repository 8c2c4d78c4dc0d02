"""Dispatch finished crawl jobs to the product or the listing pipeline."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from extracto.domain import is_real_estate_domain
from extracto.extractor import Extractor
from extracto.models import JobEvent, JobState
from extracto.storage.base import UpsertStats
from extracto.storage.jobs import JobResultStore
from extracto.storage.listings import ListingStore
from extracto.storage.products import ProductStore

LOGGER = logging.getLogger(__name__)

PRODUCT_DATA_KEYS = ("productData", "nextData", "data", "products")


@dataclass
class RouteOutcome:
    """What happened to one job event."""

    job_id: str
    kind: Optional[str] = None  # "products" or "listings"; None when nothing was extracted
    strategy_used: Optional[str] = None
    extracted: int = 0
    upsert: Optional[UpsertStats] = None
    errors: List[str] = field(default_factory=list)


def prepare_product_payload(data: Any) -> Any:
    """Unwrap the product data a fetch stored under one of the known keys.

    JSON strings are parsed (unparseable ones are skipped), objects are used
    as they are; with no usable key the data is returned unchanged.
    """
    if not isinstance(data, dict):
        return data
    for key in PRODUCT_DATA_KEYS:
        value = data.get(key)
        if not value:
            continue
        if isinstance(value, str):
            try:
                return json.loads(value)
            except ValueError as exc:
                LOGGER.debug("Could not parse %s as JSON: %s", key, exc)
                continue
        if isinstance(value, (dict, list)):
            return value
    return data


def is_real_estate_url(url: str, listing_extractor: Extractor) -> bool:
    """Allow-listed slug first, then the listing extractor's own site check."""
    return is_real_estate_domain(url) or listing_extractor.is_real_estate_site(url)


def _is_fetch_result(payload: Any) -> bool:
    return isinstance(payload, dict) and ("extractedData" in payload or "html" in payload)


class Router:
    """Routes each job event: raw job record first, then extraction and upsert.

    :class:`~extracto.storage.collection.StoreUnavailableError` from any
    store propagates to the caller.
    """

    def __init__(
        self,
        product_extractor: Extractor,
        listing_extractor: Extractor,
        products: ProductStore,
        listings: ListingStore,
        jobs: JobResultStore,
    ) -> None:
        self.product_extractor = product_extractor
        self.listing_extractor = listing_extractor
        self.products = products
        self.listings = listings
        self.jobs = jobs

    def is_real_estate(self, url: str) -> bool:
        return is_real_estate_url(url, self.listing_extractor)

    def handle(self, event: JobEvent) -> RouteOutcome:
        self.jobs.save_result(event)
        if event.final_state != JobState.COMPLETED:
            LOGGER.info("Job %s failed: %s", event.job_id, event.failure_reason)
            return RouteOutcome(job_id=event.job_id)

        if self.is_real_estate(event.url):
            return self._handle_listings(event)
        return self._handle_products(event)

    def _handle_products(self, event: JobEvent) -> RouteOutcome:
        payload = event.result_payload
        data = payload.get("extractedData") if _is_fetch_result(payload) else payload
        if not data:
            LOGGER.warning("Job %s has no extracted data, skipping product extraction", event.job_id)
            return RouteOutcome(job_id=event.job_id)

        result = self.product_extractor.extract(prepare_product_payload(data), event.url, event.job_id)
        return self._store(event, "products", result, self.products)

    def _handle_listings(self, event: JobEvent) -> RouteOutcome:
        payload = event.result_payload
        if _is_fetch_result(payload):
            data = payload.get("html") or payload.get("extractedData")
        else:
            data = payload
        if not data:
            LOGGER.warning("Job %s has no HTML or extracted data for listing extraction", event.job_id)
            return RouteOutcome(job_id=event.job_id)

        result = self.listing_extractor.extract(data, event.url, event.job_id)
        return self._store(event, "listings", result, self.listings)

    def _store(self, event: JobEvent, kind: str, result, store) -> RouteOutcome:
        outcome = RouteOutcome(
            job_id=event.job_id,
            kind=kind,
            strategy_used=result.metadata.strategy_used,
            extracted=result.metadata.total_extracted,
            errors=list(result.metadata.errors or []),
        )
        if not result.entities:
            LOGGER.warning(
                "No %s extracted from job %s (strategy=%s, errors=%s)",
                kind,
                event.job_id,
                outcome.strategy_used,
                outcome.errors,
            )
            return outcome

        outcome.upsert = store.upsert_many(result.entities)
        LOGGER.info(
            "Job %s: %d %s via %s, inserted=%d, updated=%d, errors=%d",
            event.job_id,
            outcome.extracted,
            kind,
            outcome.strategy_used,
            outcome.upsert.inserted,
            outcome.upsert.updated,
            outcome.upsert.errors,
        )
        return outcome
