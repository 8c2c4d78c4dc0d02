"""Worker that turns finished crawl jobs into catalogue updates."""
from __future__ import annotations

import logging
import signal
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from extracto.models import JobEvent, JobState
from extracto.queue import JobQueue
from extracto.router import Router
from extracto.storage.collection import StoreUnavailableError

LOGGER = logging.getLogger(__name__)


@dataclass
class WorkerConfig:
    """Worker configuration."""

    worker_id: str
    batch_size: int = 10
    poll_interval: float = 5.0  # seconds between empty polls
    stats_interval: float = 30.0  # seconds between statistics log lines
    graceful_shutdown: bool = True
    max_events: Optional[int] = None  # stop after N events (for testing)
    stop_when_idle: bool = False  # stop on the first empty poll instead of sleeping


class Worker:
    """Queue worker: poll, route, ack or nack."""

    def __init__(
        self,
        config: WorkerConfig,
        queue: JobQueue,
        router: Router,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize worker.

        Parameters
        ----------
        config : WorkerConfig
            Worker configuration
        queue : JobQueue
            Source of finished job events
        router : Router
            Extraction and persistence pipeline
        """
        self.config = config
        self.queue = queue
        self.router = router
        self._sleep = sleep
        self._monotonic = monotonic
        self.running = False
        self.events_processed = 0
        self.events_succeeded = 0
        self.events_failed = 0
        self._last_stats = 0.0
        self._setup_signal_handlers()

    def _setup_signal_handlers(self) -> None:
        if self.config.graceful_shutdown:
            signal.signal(signal.SIGINT, self._handle_shutdown)
            signal.signal(signal.SIGTERM, self._handle_shutdown)

    def _handle_shutdown(self, signum, frame) -> None:
        LOGGER.info("Received shutdown signal %s, stopping gracefully...", signum)
        self.running = False

    def stop(self) -> None:
        self.running = False

    def run(self) -> None:
        """Run the worker loop until stopped.

        Raises
        ------
        StoreUnavailableError
            When the backing store goes away; no further event can be stored.
        """
        LOGGER.info(
            "Starting worker %s (batch_size=%d, poll_interval=%.1fs)",
            self.config.worker_id,
            self.config.batch_size,
            self.config.poll_interval,
        )

        self.running = True
        self._last_stats = self._monotonic()

        try:
            while self.running:
                if self.config.max_events is not None and self.events_processed >= self.config.max_events:
                    LOGGER.info("Reached max events limit (%d), shutting down", self.config.max_events)
                    break

                self._maybe_log_stats()

                events = self.queue.poll(self.config.worker_id, self._batch_size())
                if not events:
                    if self.config.stop_when_idle:
                        LOGGER.info("Queue is empty, shutting down")
                        break
                    LOGGER.debug("No events available, sleeping...")
                    self._sleep(self.config.poll_interval)
                    continue

                for index, event in enumerate(events):
                    if not self.running:
                        LOGGER.info("Shutdown requested, releasing %d unprocessed job(s)", len(events) - index)
                        self._release(events[index:])
                        break
                    try:
                        self._process_event(event)
                    except StoreUnavailableError:
                        self._release(events[index:])
                        raise
                    self.events_processed += 1
        except StoreUnavailableError:
            LOGGER.error("Store unavailable, stopping worker %s", self.config.worker_id, exc_info=True)
            raise
        finally:
            self.running = False
            self._log_stats()

    def _batch_size(self) -> int:
        if self.config.max_events is None:
            return self.config.batch_size
        return max(1, min(self.config.batch_size, self.config.max_events - self.events_processed))

    def _process_event(self, event: JobEvent) -> None:
        LOGGER.info("Processing job %s (%s): %s", event.job_id, JobState(event.final_state).value, event.url)
        start_time = time.time()
        try:
            outcome = self.router.handle(event)
        except StoreUnavailableError:
            raise
        except Exception as exc:
            LOGGER.error("Exception processing job %s: %s", event.job_id, exc, exc_info=True)
            self.queue.nack(event.job_id, f"Processing error: {exc}")
            self.events_failed += 1
            return

        self.queue.ack(event.job_id)
        self.events_succeeded += 1
        LOGGER.debug(
            "Job %s done in %.2fs (kind=%s, extracted=%d)",
            event.job_id,
            time.time() - start_time,
            outcome.kind,
            outcome.extracted,
        )

    def _release(self, events: List[JobEvent]) -> None:
        """Put claimed events back to pending so another poll picks them up."""
        for event in events:
            try:
                self.queue.release(event.job_id)
            except StoreUnavailableError as exc:
                LOGGER.warning("Could not release %d job(s), queue unavailable: %s", len(events), exc)
                return

    def _maybe_log_stats(self) -> None:
        now = self._monotonic()
        if now - self._last_stats < self.config.stats_interval:
            return
        self._last_stats = now
        for name, collect in self._stat_sources():
            try:
                LOGGER.info("%s stats: %s", name, collect())
            except StoreUnavailableError:
                raise
            except Exception as exc:
                LOGGER.warning("Could not collect %s stats: %s", name, exc)

    def _stat_sources(self) -> List[Tuple[str, Callable[[], object]]]:
        return [
            ("Queue", self.queue.stats),
            ("Job", self.router.jobs.stats),
            ("Product", self.router.products.stats),
            ("Listing", self.router.listings.stats),
        ]

    def _log_stats(self) -> None:
        LOGGER.info(
            "Worker %s shutting down: processed=%d, succeeded=%d, failed=%d",
            self.config.worker_id,
            self.events_processed,
            self.events_succeeded,
            self.events_failed,
        )
