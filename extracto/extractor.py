"""Strategy selection and result wrapping.

An :class:`Extractor` holds an ordered registry of strategies plus one
unconditional fallback. The first registered strategy whose ``can_handle``
returns True parses the payload; registration order is therefore priority,
and site-specific strategies must be registered before anything whose
predicate could match their payloads too.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from extracto.domain import REAL_ESTATE_SITES
from extracto.models import ExtractionMetadata, ExtractionResult
from extracto.normalize import utc_now
from extracto.strategies import (
    ExtractionStrategy,
    FalabellaStrategy,
    GenericListingStrategy,
    GenericStrategy,
    UrbaniaStrategy,
)

LOGGER = logging.getLogger(__name__)


class Extractor:
    """Ordered strategy registry with a fallback that claims everything."""

    def __init__(
        self,
        fallback: ExtractionStrategy,
        strategies: Optional[Iterable[ExtractionStrategy]] = None,
    ) -> None:
        self.fallback = fallback
        self._strategies: List[ExtractionStrategy] = list(strategies or [])

    def register(self, strategy: ExtractionStrategy) -> None:
        """Append ``strategy``; it is consulted after every earlier registration."""
        self._strategies.append(strategy)
        LOGGER.debug("Registered strategy %s", strategy.name)

    def registered_strategies(self) -> List[str]:
        return [strategy.name for strategy in self._strategies]

    def select(self, payload: Any, url: str) -> ExtractionStrategy:
        for strategy in self._strategies:
            if strategy.can_handle(payload, url):
                return strategy
        return self.fallback

    def is_real_estate_site(self, url: str) -> bool:
        url = url or ""
        return any(site in url for site in REAL_ESTATE_SITES)

    def extract(self, payload: Any, url: str, job_id: Optional[str] = None) -> ExtractionResult:
        """Parse ``payload`` with the first strategy that claims it.

        Never raises: a failure anywhere in strategy code yields an empty
        result whose ``metadata.errors`` carries the exception message.

        Parameters
        ----------
        payload : Any
            Page-state JSON, a product/listing array, HTML, or an API response
        url : str
            Source URL of the crawl job
        job_id : str, optional
            Crawl job identifier, stamped into each entity's provenance

        Returns
        -------
        ExtractionResult
        """
        try:
            strategy = self.select(payload, url)
            LOGGER.debug("Using strategy %s for %s", strategy.name, url)
            entities = strategy.extract(payload, url, job_id)
        except Exception as exc:
            LOGGER.error("Extraction failed for %s: %s", url, exc, exc_info=True)
            return ExtractionResult(
                entities=[],
                metadata=ExtractionMetadata(
                    total_extracted=0,
                    source=url,
                    extracted_at=utc_now(),
                    errors=[f"Extraction error: {exc}"],
                ),
            )

        LOGGER.info("Extracted %d entities from %s using %s", len(entities), url, strategy.name)
        return ExtractionResult(
            entities=entities,
            metadata=ExtractionMetadata(
                total_extracted=len(entities),
                source=url,
                extracted_at=utc_now(),
                strategy_used=strategy.name,
            ),
        )


def build_product_extractor() -> Extractor:
    extractor = Extractor(fallback=GenericStrategy())
    extractor.register(FalabellaStrategy())
    return extractor


def build_listing_extractor() -> Extractor:
    extractor = Extractor(fallback=GenericListingStrategy())
    extractor.register(UrbaniaStrategy())
    return extractor
