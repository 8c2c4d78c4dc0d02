"""Key-addressable document collection contract.

Stores keep JSON documents (``model_dump(mode="json")`` output) addressed by a
string key. Besides point lookups and filtered reads, a collection offers one
write primitive, :meth:`Collection.find_and_modify`, which reads the current
document, computes its replacement and writes it as a single atomic step per
key. Versioning logic runs inside that step, so two concurrent upserts of the
same key compound instead of losing one update.
"""
from __future__ import annotations

import copy
import re
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

Document = Dict[str, Any]
Update = Callable[[Optional[Document]], Document]

_WORD = re.compile(r"\w+")
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class StoreUnavailableError(RuntimeError):
    """The backing store cannot be reached; no further writes can succeed."""


@dataclass(frozen=True)
class CollectionSchema:
    """Logical layout of a collection and the lookups it should index.

    Paths are dotted document paths such as ``"source.domain"``.
    """

    name: str
    index_paths: Tuple[str, ...] = ()
    numeric_paths: Tuple[str, ...] = ()
    text_paths: Tuple[str, ...] = ()
    geo_path: Optional[str] = None  # object with lat/lng


@dataclass
class Query:
    """Filter, order and page over a collection.

    ``equals`` compares as strings; ``minimum``/``maximum`` are inclusive
    numeric bounds; ``text`` requires every word to appear in the schema's
    text paths; ``order_by`` names an ISO timestamp path, newest first.
    """

    equals: Dict[str, Any] = field(default_factory=dict)
    minimum: Dict[str, float] = field(default_factory=dict)
    maximum: Dict[str, float] = field(default_factory=dict)
    present: Tuple[str, ...] = ()
    text: Optional[str] = None
    order_by: Optional[str] = None
    limit: Optional[int] = None
    skip: int = 0


class Collection(Protocol):
    """Document collection used by the versioned stores."""

    schema: CollectionSchema

    def ensure_indexes(self) -> None:
        """Create the collection and its secondary indexes if missing."""
        ...

    def find_one(self, key: str) -> Optional[Document]:
        ...

    def find_and_modify(self, key: str, update: Update) -> Tuple[Optional[Document], Document]:
        """Atomically replace the document at ``key`` with ``update(current)``.

        Returns
        -------
        tuple
            ``(previous, new)``; ``previous`` is None when the key was absent
        """
        ...

    def find(self, query: Optional[Query] = None) -> List[Document]:
        ...

    def count(self, query: Optional[Query] = None) -> int:
        ...

    def group_count(
        self,
        path: str,
        query: Optional[Query] = None,
        limit: Optional[int] = None,
    ) -> List[Tuple[Optional[str], int]]:
        """Documents per distinct value at ``path``, largest group first."""
        ...


def get_path(document: Any, path: str) -> Any:
    current = document
    for key in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return _EPOCH
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return _EPOCH


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class MemoryCollection:
    """In-process collection for tests and local runs.

    A single lock serialises ``find_and_modify``; documents are deep-copied
    on the way in and out so callers never share state with the store.
    """

    def __init__(self, schema: CollectionSchema) -> None:
        self.schema = schema
        self._documents: Dict[str, Document] = {}
        self._lock = threading.RLock()

    def ensure_indexes(self) -> None:
        pass

    def find_one(self, key: str) -> Optional[Document]:
        with self._lock:
            document = self._documents.get(key)
            return copy.deepcopy(document) if document is not None else None

    def find_and_modify(self, key: str, update: Update) -> Tuple[Optional[Document], Document]:
        with self._lock:
            previous = copy.deepcopy(self._documents.get(key))
            document = update(copy.deepcopy(previous))
            self._documents[key] = copy.deepcopy(document)
            return previous, document

    def find(self, query: Optional[Query] = None) -> List[Document]:
        query = query or Query()
        with self._lock:
            matches = [doc for doc in self._documents.values() if self._matches(doc, query)]
        if query.order_by:
            matches.sort(key=lambda doc: parse_timestamp(get_path(doc, query.order_by)), reverse=True)
        end = query.skip + query.limit if query.limit is not None else None
        return copy.deepcopy(matches[query.skip:end])

    def count(self, query: Optional[Query] = None) -> int:
        query = query or Query()
        with self._lock:
            return sum(1 for doc in self._documents.values() if self._matches(doc, query))

    def group_count(
        self,
        path: str,
        query: Optional[Query] = None,
        limit: Optional[int] = None,
    ) -> List[Tuple[Optional[str], int]]:
        query = query or Query()
        counts: Counter = Counter()
        with self._lock:
            for doc in self._documents.values():
                if self._matches(doc, query):
                    value = get_path(doc, path)
                    counts[None if value is None else str(value)] += 1
        groups = sorted(counts.items(), key=lambda item: (-item[1], item[0] is None, item[0] or ""))
        return groups[:limit] if limit is not None else groups

    def _matches(self, doc: Document, query: Query) -> bool:
        for path, expected in query.equals.items():
            value = get_path(doc, path)
            if value is None or str(value) != str(expected):
                return False
        for path in query.present:
            if get_path(doc, path) is None:
                return False
        for path, bound in query.minimum.items():
            value = _number(get_path(doc, path))
            if value is None or value < bound:
                return False
        for path, bound in query.maximum.items():
            value = _number(get_path(doc, path))
            if value is None or value > bound:
                return False
        if query.text:
            words = set()
            for path in self.schema.text_paths:
                value = get_path(doc, path)
                if isinstance(value, str):
                    words.update(_WORD.findall(value.lower()))
            if not set(_WORD.findall(query.text.lower())) <= words:
                return False
        return True
