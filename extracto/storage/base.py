"""Versioned upsert shared by product and listing stores."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, Dict, Generic, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel

from extracto.models import CanonicalEntity
from extracto.normalize import utc_now
from extracto.storage.collection import Collection, Query, StoreUnavailableError
from extracto.storage.versioning import apply_upsert, unique_key

LOGGER = logging.getLogger(__name__)

S = TypeVar("S", bound=BaseModel)

DEFAULT_LIMIT = 50


@dataclass
class UpsertStats:
    inserted: int = 0
    updated: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class VersionedStore(Generic[S]):
    """Persists canonical entities under ``domain:entity_id``.

    First sight inserts version 1 with a one-entry price history. Every later
    upsert overwrites the canonical fields, bumps the version, refreshes
    ``last_seen_at``/``last_updated_at`` and appends to the price history only
    when amount or currency changed.
    """

    stored_model: Type[S]

    def __init__(self, collection: Collection, clock: Callable[[], datetime] = utc_now) -> None:
        self.collection = collection
        self.clock = clock

    def ensure_indexes(self) -> None:
        self.collection.ensure_indexes()

    def _upsert(self, entity: CanonicalEntity) -> bool:
        """Upsert one entity; True when it was inserted."""
        key = unique_key(entity.source.domain, entity.entity_id)
        canonical = entity.model_dump(mode="json")
        previous, document = self.collection.find_and_modify(
            key, lambda existing: apply_upsert(existing, canonical, key, self.clock())
        )
        LOGGER.debug("Upserted %s (version %s)", key, document.get("version"))
        return previous is None

    def upsert_one(self, entity: CanonicalEntity) -> None:
        self._upsert(entity)

    def upsert_many(self, entities: Iterable[CanonicalEntity]) -> UpsertStats:
        """Upsert each entity independently.

        A failing entity is logged and counted in ``errors``; the rest still
        run. :class:`StoreUnavailableError` propagates since nothing after it
        can succeed.
        """
        stats = UpsertStats()
        for entity in entities:
            try:
                inserted = self._upsert(entity)
            except StoreUnavailableError:
                raise
            except Exception as exc:
                stats.errors += 1
                LOGGER.error("Failed to upsert %s: %s", getattr(entity, "entity_id", "?"), exc, exc_info=True)
                continue
            if inserted:
                stats.inserted += 1
            else:
                stats.updated += 1

        LOGGER.info(
            "%s upsert: inserted=%d, updated=%d, errors=%d",
            self.collection.schema.name,
            stats.inserted,
            stats.updated,
            stats.errors,
        )
        return stats

    def get_one(self, domain: str, entity_id: str) -> Optional[S]:
        document = self.collection.find_one(unique_key(domain, entity_id))
        return self.stored_model.model_validate(document) if document is not None else None

    def _find(self, query: Query) -> List[S]:
        return [self.stored_model.model_validate(doc) for doc in self.collection.find(query)]

    def _grouped(self, path: str, limit: Optional[int] = None, query: Optional[Query] = None) -> Dict[str, int]:
        return {
            value if value is not None else "unknown": count
            for value, count in self.collection.group_count(path, query, limit)
        }
