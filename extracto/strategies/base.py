"""
Base class for extraction strategies.
All site- and shape-specific parsers inherit from this.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from extracto.models import CanonicalEntity

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

RecordPath = Sequence[str]


class ExtractionStrategy(ABC):
    """
    Parser for one payload shape or one site.

    Subclasses must implement:
    - name: str, reported as ``strategy_used``
    - can_handle(): cheap predicate over the payload and its source URL
    - extract(): map the payload to canonical entities

    ``extract`` drops malformed raw records instead of raising; anything it
    does raise is reported by the orchestrator.
    """

    name: str

    @abstractmethod
    def can_handle(self, payload: Any, url: str) -> bool:
        """Return True if this strategy claims ``payload``."""

    @abstractmethod
    def extract(self, payload: Any, url: str, job_id: Optional[str] = None) -> List[CanonicalEntity]:
        """Parse ``payload`` into canonical entities."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


def dig(payload: Any, path: RecordPath) -> Any:
    """Follow ``path`` through nested dicts; ``None`` when it breaks."""
    current = payload
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def find_records(payload: Any, paths: Iterable[RecordPath]) -> Optional[List[Any]]:
    """Return the first list found at one of ``paths``, tolerating schema shifts."""
    for path in paths:
        current = dig(payload, path)
        if isinstance(current, list):
            return current
    return None


def map_records(
    records: Iterable[Any],
    is_valid: Callable[[Any], bool],
    mapper: Callable[[Dict[str, Any]], Optional[T]],
) -> List[T]:
    """Keep records passing the shape check and map them, skipping ``None`` results.

    A record whose fields fail model validation is dropped with a warning.
    """
    entities: List[T] = []
    for record in records:
        if not is_valid(record):
            continue
        try:
            entity = mapper(record)
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Dropping malformed record: %s", exc)
            continue
        if entity is not None:
            entities.append(entity)
    return entities


def safe_models(model: Type[M], items: Any) -> Optional[List[M]]:
    """Validate a list of site sub-records, dropping the ones that do not fit."""
    if not isinstance(items, list) or not items:
        return None
    parsed: List[M] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as exc:
            LOGGER.debug("Dropping %s sub-record: %s", model.__name__, exc)
    return parsed or None
