"""Version, timestamp and price-history arithmetic for stored entities.

Pure functions over JSON documents, run inside the collection's atomic
``find_and_modify`` step.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

PRICE_HISTORY_LIMIT = 100


def unique_key(domain: str, entity_id: str) -> str:
    return f"{domain}:{entity_id}"


def _amount(price: Dict[str, Any]) -> Optional[float]:
    try:
        return float(price.get("amount"))
    except (TypeError, ValueError):
        return None


def price_changed(stored: Optional[Dict[str, Any]], incoming: Dict[str, Any]) -> bool:
    """True when amount or currency differ."""
    if not stored:
        return True
    return _amount(stored) != _amount(incoming) or stored.get("currency") != incoming.get("currency")


def apply_upsert(
    existing: Optional[Dict[str, Any]],
    canonical: Dict[str, Any],
    key: str,
    now: datetime,
) -> Dict[str, Any]:
    """Build the stored document for ``canonical`` given the current one.

    Parameters
    ----------
    existing : dict or None
        Stored document at ``key``, None on first sight
    canonical : dict
        Incoming canonical entity in JSON form
    key : str
        ``domain:entity_id``
    now : datetime
        Timestamp for this upsert

    Returns
    -------
    dict
        Canonical fields overwritten from ``canonical``; ``first_seen_at``
        kept, ``version`` bumped by one, ``last_seen_at``/``last_updated_at``
        set to ``now``, and a price-history entry appended only on a change.
    """
    stamp = now.isoformat()
    price = canonical.get("price") or {}
    entry = {"price": price, "recorded_at": stamp}
    document = dict(canonical)

    if existing is None:
        document.update(
            unique_key=key,
            first_seen_at=stamp,
            last_seen_at=stamp,
            last_updated_at=stamp,
            version=1,
            price_history=[entry],
        )
        return document

    history = list(existing.get("price_history") or [])
    if price_changed(existing.get("price"), price):
        history.append(entry)
        history = history[-PRICE_HISTORY_LIMIT:]

    document.update(
        unique_key=key,
        first_seen_at=existing.get("first_seen_at") or stamp,
        last_seen_at=stamp,
        last_updated_at=stamp,
        version=int(existing.get("version") or 0) + 1,
        price_history=history,
    )
    return document
