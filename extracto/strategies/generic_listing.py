"""Last-resort listing parser: API arrays, single records, JSON-LD pages."""
from __future__ import annotations

from typing import Any

from extracto.strategies.listing_base import BaseListingStrategy


class GenericListingStrategy(BaseListingStrategy):
    """Claims every payload. Requires both an id and a title on JSON records."""

    name = "Generic"
    require_title = True

    def can_handle(self, payload: Any, url: str) -> bool:
        return True
