import logging
from datetime import timedelta

import pytest

from extracto.extractor import build_listing_extractor, build_product_extractor
from extracto.models import JobEvent, JobState
from extracto.normalize import utc_now
from extracto.queue import MemoryJobQueue, QueueStatus
from extracto.router import Router
from extracto.storage import StoreUnavailableError
from extracto.worker import Worker, WorkerConfig

FALABELLA_URL = "https://www.falabella.com.pe/falabella-pe/category/cat40052/Celulares"


def _product_event(job_id, product_id="1"):
    return JobEvent(
        job_id=job_id,
        url=FALABELLA_URL,
        result_payload=[{"productId": product_id, "displayName": f"Item {product_id}", "price": "S/ 10"}],
    )


class ExplodingRouter(Router):
    def __init__(self, router, failing, exc=ValueError):
        super().__init__(
            router.product_extractor, router.listing_extractor, router.products, router.listings, router.jobs
        )
        self.failing = set(failing)
        self.exc = exc

    def handle(self, event):
        if event.job_id in self.failing:
            raise self.exc(f"cannot handle {event.job_id}")
        return super().handle(event)


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def router(product_store, listing_store, job_store):
    return Router(
        product_extractor=build_product_extractor(),
        listing_extractor=build_listing_extractor(),
        products=product_store,
        listings=listing_store,
        jobs=job_store,
    )


def _config(**overrides):
    values = {"worker_id": "test-worker", "batch_size": 2, "graceful_shutdown": False, "stop_when_idle": True}
    values.update(overrides)
    return WorkerConfig(**values)


def test_worker_drains_queue_and_acks(router, product_store, job_store):
    queue = MemoryJobQueue(
        [
            _product_event("j1", "1"),
            _product_event("j2", "2"),
            JobEvent(job_id="j3", url=FALABELLA_URL, final_state=JobState.FAILED, failure_reason="404"),
        ]
    )
    worker = Worker(_config(), queue, router)
    worker.run()

    assert worker.events_processed == 3
    assert worker.events_succeeded == 3
    assert worker.events_failed == 0
    assert queue.stats() == {"processed": 3}
    assert product_store.stats()["total"] == 2
    assert job_store.stats()["failed_jobs"] == 1
    assert not worker.running


def test_router_exception_nacks_and_continues(router, product_store):
    queue = MemoryJobQueue([_product_event("bad", "1"), _product_event("good", "2")])
    worker = Worker(_config(), queue, ExplodingRouter(router, failing={"bad"}))
    worker.run()

    assert queue.status_of("bad") == QueueStatus.ERROR
    assert queue.error_of("bad") == "Processing error: cannot handle bad"
    assert queue.status_of("good") == QueueStatus.PROCESSED
    assert worker.events_failed == 1
    assert worker.events_succeeded == 1
    assert product_store.get_one("falabella", "2") is not None


def test_store_unavailable_stops_worker(router):
    queue = MemoryJobQueue([_product_event("j1"), _product_event("j2")])
    worker = Worker(_config(), queue, ExplodingRouter(router, failing={"j1"}, exc=StoreUnavailableError))

    with pytest.raises(StoreUnavailableError):
        worker.run()
    assert queue.status_of("j1") == QueueStatus.PENDING
    assert queue.status_of("j2") == QueueStatus.PENDING
    assert worker.events_processed == 0
    assert not worker.running

    Worker(_config(), queue, router).run()
    assert queue.stats() == {"processed": 2}


def test_max_events_limits_claims(router):
    queue = MemoryJobQueue([_product_event(f"j{i}", str(i)) for i in range(5)])
    worker = Worker(_config(batch_size=10, max_events=3, stop_when_idle=False), queue, router)
    worker.run()

    assert worker.events_processed == 3
    assert queue.stats() == {"processed": 3, "pending": 2}


def test_idle_worker_sleeps_between_polls(router):
    clock = FakeClock()
    queue = MemoryJobQueue()
    worker = Worker(
        _config(stop_when_idle=False, poll_interval=2.5),
        queue,
        router,
        sleep=clock.sleep,
        monotonic=clock.monotonic,
    )

    def sleep_then_stop(seconds):
        clock.sleep(seconds)
        if len(clock.sleeps) == 2:
            worker.stop()

    worker._sleep = sleep_then_stop
    worker.run()
    assert clock.sleeps == [2.5, 2.5]


def test_stop_leaves_rest_of_batch_pending(router):
    queue = MemoryJobQueue([_product_event("j1", "1"), _product_event("j2", "2")])
    worker = Worker(_config(), queue, router)

    original = worker._process_event

    def process_then_stop(event):
        original(event)
        worker.stop()

    worker._process_event = process_then_stop
    worker.run()

    assert worker.events_processed == 1
    assert queue.status_of("j1") == QueueStatus.PROCESSED
    assert queue.status_of("j2") == QueueStatus.PENDING

    restarted = Worker(_config(), queue, router)
    restarted.run()
    assert restarted.events_processed == 1
    assert queue.status_of("j2") == QueueStatus.PROCESSED


def test_memory_queue_lifecycle():
    queue = MemoryJobQueue([_product_event("j1"), _product_event("j2")])

    assert [e.job_id for e in queue.poll("w", batch_size=1)] == ["j1"]
    assert queue.status_of("j1") == QueueStatus.PROCESSING
    queue.nack("j1", "boom")
    queue.ack("missing")

    assert queue.stats() == {"error": 1, "pending": 1}
    assert [e.job_id for e in queue.poll("w", batch_size=5)] == ["j2"]
    assert queue.poll("w") == []


def test_memory_queue_purges_old_processed_jobs():
    queue = MemoryJobQueue([_product_event("old"), _product_event("new"), _product_event("failed")])
    queue.poll("w", batch_size=3)
    queue.ack("old")
    queue.ack("new")
    queue.nack("failed", "x")
    queue._entries["old"].processed_at = utc_now() - timedelta(days=10)

    assert queue.purge_processed(older_than_days=7) == 1
    assert queue.status_of("old") is None
    assert queue.status_of("new") == QueueStatus.PROCESSED


def test_memory_queue_release_returns_job_to_pending():
    queue = MemoryJobQueue([_product_event("j1"), _product_event("j2")])
    queue.poll("w", batch_size=2)
    queue.ack("j2")

    queue.release("j1")
    queue.release("j2")
    queue.release("missing")

    assert queue.status_of("j1") == QueueStatus.PENDING
    assert queue.status_of("j2") == QueueStatus.PROCESSED
    assert [e.job_id for e in queue.poll("w", batch_size=5)] == ["j1"]


def test_processing_log_shows_plain_state(router, caplog):
    caplog.set_level(logging.INFO, logger="extracto.worker")
    Worker(_config(), MemoryJobQueue([_product_event("j1")]), router).run()

    assert "Processing job j1 (completed)" in caplog.text
    assert "JobState" not in caplog.text
