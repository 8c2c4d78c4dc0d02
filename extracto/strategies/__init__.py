"""Pluggable parsers, one per site or payload shape."""

from .base import ExtractionStrategy
from .falabella import FalabellaStrategy
from .generic import GenericStrategy
from .generic_listing import GenericListingStrategy
from .urbania import UrbaniaStrategy

__all__ = [
    "ExtractionStrategy",
    "FalabellaStrategy",
    "GenericStrategy",
    "GenericListingStrategy",
    "UrbaniaStrategy",
]
