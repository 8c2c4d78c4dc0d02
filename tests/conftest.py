from datetime import datetime, timedelta, timezone

import pytest

from extracto.storage import (
    LISTINGS,
    PRODUCTS,
    SCRAPE_JOBS,
    JobResultStore,
    ListingStore,
    MemoryCollection,
    ProductStore,
)


class TickingClock:
    """Returns a strictly increasing UTC time, one second per call."""

    def __init__(self, start=datetime(2026, 1, 1, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self):
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def product_store(clock):
    return ProductStore(MemoryCollection(PRODUCTS), clock=clock)


@pytest.fixture
def listing_store(clock):
    return ListingStore(MemoryCollection(LISTINGS), clock=clock)


@pytest.fixture
def job_store(clock):
    return JobResultStore(MemoryCollection(SCRAPE_JOBS), clock=clock)
