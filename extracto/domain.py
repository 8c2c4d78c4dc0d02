"""Site identifiers derived from URLs.

The same slug is used to tag raw job records and to build the provenance
block of every extracted entity, so both must go through :func:`domain_of`.
"""
from __future__ import annotations

from typing import FrozenSet, Tuple
from urllib.parse import urlparse

UNKNOWN_DOMAIN = "unknown"

# Second-level labels that make a TLD two labels wide (falabella.com.pe, bbc.co.uk).
COMMON_SLDS: FrozenSet[str] = frozenset({"com", "co", "org", "net", "gov", "edu", "ac"})

# Hostnames matched as substrings by the listing extractor; their slugs form
# REAL_ESTATE_DOMAINS below, so a new site is added here only.
REAL_ESTATE_SITES: Tuple[str, ...] = (
    "urbania.pe",
    "adondevivir.com",
    "properati.com.pe",
    "nexoinmobiliario.pe",
)


def domain_of(url: str) -> str:
    """Return a short lowercase site slug for ``url``.

    Examples
    --------
    >>> domain_of("https://www.falabella.com.pe/falabella-pe/category/x")
    'falabella'
    >>> domain_of("https://shop.example.com/item")
    'example'
    >>> domain_of("https://amazon.com/dp/1")
    'amazon'
    """
    try:
        hostname = urlparse(url).hostname
    except (TypeError, ValueError, AttributeError):
        return UNKNOWN_DOMAIN
    if not hostname:
        return UNKNOWN_DOMAIN

    if hostname.startswith("www."):
        hostname = hostname[len("www."):]
    parts = hostname.split(".")

    if len(parts) >= 3:
        if parts[-2] in COMMON_SLDS:
            return parts[-3]
        return parts[-2]
    return parts[0]


REAL_ESTATE_DOMAINS: FrozenSet[str] = frozenset(domain_of(f"https://{site}") for site in REAL_ESTATE_SITES)


def is_real_estate_domain(url: str) -> bool:
    """True when the canonical slug of ``url`` is a known real-estate site."""
    return domain_of(url) in REAL_ESTATE_DOMAINS
