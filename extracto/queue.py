"""Source of finished crawl jobs.

Crawlers write one row per finished job into the queue table; workers claim
pending rows with ``FOR UPDATE SKIP LOCKED`` so several workers can share it.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Deque, Dict, List, Optional, Protocol

from psycopg2 import sql
from psycopg2.extras import Json, RealDictCursor

from extracto.models import JobEvent, JobState
from extracto.normalize import utc_now
from extracto.storage.postgres import pg_connection

LOGGER = logging.getLogger(__name__)


class QueueStatus(str, Enum):
    """Processing status of a queued job row."""

    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"


class JobQueue(Protocol):
    """Finished-job queue consumed by the worker."""

    def poll(self, worker_id: str, batch_size: int = 1) -> List[JobEvent]:
        """Claim up to ``batch_size`` pending events.

        Parameters
        ----------
        worker_id : str
            Worker identifier for tracking
        batch_size : int
            Number of events to claim

        Returns
        -------
        list[JobEvent]
            Events now marked as processing
        """
        ...

    def ack(self, job_id: str) -> None:
        """Mark the event as processed."""
        ...

    def nack(self, job_id: str, error: str) -> None:
        """Mark the event as failed with ``error``."""
        ...

    def release(self, job_id: str) -> None:
        """Return a claimed but unprocessed event to pending."""
        ...

    def stats(self) -> Dict[str, int]:
        """Rows per status."""
        ...

    def purge_processed(self, older_than_days: int = 7) -> int:
        """Remove processed rows older than N days; returns the count."""
        ...


class PostgresJobQueue:
    """Job queue on a PostgreSQL table."""

    def __init__(self, dsn: str, table: str = "fetch_jobs") -> None:
        self.dsn = dsn
        self.table = table
        self._table = sql.Identifier(table)

    def ensure_table(self) -> None:
        create_sql = sql.SQL(
            """
            CREATE TABLE IF NOT EXISTS {table} (
                job_id TEXT PRIMARY KEY,
                url TEXT NOT NULL,
                final_state VARCHAR(20) NOT NULL,
                result JSONB,
                failure_reason TEXT,
                metadata JSONB,
                status VARCHAR(20) NOT NULL DEFAULT 'pending',
                error_message TEXT,
                worker_id VARCHAR(100),
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                started_at TIMESTAMPTZ,
                processed_at TIMESTAMPTZ
            );

            CREATE INDEX IF NOT EXISTS {index} ON {table} (status, created_at);
            """
        ).format(table=self._table, index=sql.Identifier(f"idx_{self.table}_status"))

        with pg_connection(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(create_sql)

        LOGGER.info("Ensured %s table exists", self.table)

    def enqueue(self, event: JobEvent) -> None:
        """Insert or reset a finished job; used by crawlers and for replays."""
        insert_sql = sql.SQL(
            """
            INSERT INTO {} (job_id, url, final_state, result, failure_reason, metadata)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (job_id) DO UPDATE
            SET url = EXCLUDED.url,
                final_state = EXCLUDED.final_state,
                result = EXCLUDED.result,
                failure_reason = EXCLUDED.failure_reason,
                metadata = EXCLUDED.metadata,
                status = 'pending',
                error_message = NULL
            """
        ).format(self._table)

        with pg_connection(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    insert_sql,
                    (
                        event.job_id,
                        event.url,
                        JobState(event.final_state).value,
                        Json(event.result_payload) if event.result_payload is not None else None,
                        event.failure_reason,
                        Json(event.metadata) if event.metadata else None,
                    ),
                )

        LOGGER.debug("Enqueued job %s: %s", event.job_id, event.url)

    def poll(self, worker_id: str, batch_size: int = 1) -> List[JobEvent]:
        select_sql = sql.SQL(
            """
            UPDATE {table}
            SET status = 'processing',
                started_at = NOW(),
                worker_id = %s
            WHERE job_id IN (
                SELECT job_id
                FROM {table}
                WHERE status = 'pending'
                ORDER BY created_at ASC
                LIMIT %s
                FOR UPDATE SKIP LOCKED
            )
            RETURNING job_id, url, final_state, result, failure_reason, metadata
            """
        ).format(table=self._table)

        with pg_connection(self.dsn) as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(select_sql, (worker_id, batch_size))
                rows = cur.fetchall()

        events = [
            JobEvent(
                job_id=row["job_id"],
                url=row["url"],
                final_state=JobState(row["final_state"]),
                result_payload=row["result"],
                failure_reason=row["failure_reason"],
                metadata=row["metadata"] or {},
            )
            for row in rows
        ]
        if events:
            LOGGER.info("Claimed %d job(s) for worker %s", len(events), worker_id)
        return events

    def ack(self, job_id: str) -> None:
        self._finish(job_id, QueueStatus.PROCESSED, None)
        LOGGER.debug("Marked job %s as processed", job_id)

    def nack(self, job_id: str, error: str) -> None:
        self._finish(job_id, QueueStatus.ERROR, error)
        LOGGER.warning("Marked job %s as error: %s", job_id, error)

    def release(self, job_id: str) -> None:
        release_sql = sql.SQL(
            """
            UPDATE {}
            SET status = 'pending',
                started_at = NULL,
                worker_id = NULL
            WHERE job_id = %s AND status = 'processing'
            """
        ).format(self._table)

        with pg_connection(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(release_sql, (job_id,))

        LOGGER.info("Released job %s back to pending", job_id)

    def _finish(self, job_id: str, status: QueueStatus, error: Optional[str]) -> None:
        update_sql = sql.SQL(
            """
            UPDATE {}
            SET status = %s,
                error_message = %s,
                processed_at = NOW()
            WHERE job_id = %s
            """
        ).format(self._table)

        with pg_connection(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(update_sql, (status.value, error, job_id))

    def stats(self) -> Dict[str, int]:
        stats_sql = sql.SQL("SELECT status, COUNT(*) AS count FROM {} GROUP BY status").format(self._table)

        with pg_connection(self.dsn) as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(stats_sql)
                return {row["status"]: row["count"] for row in cur.fetchall()}

    def purge_processed(self, older_than_days: int = 7) -> int:
        delete_sql = sql.SQL(
            """
            DELETE FROM {}
            WHERE status = 'processed'
              AND processed_at < NOW() - %s * INTERVAL '1 day'
            """
        ).format(self._table)

        with pg_connection(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(delete_sql, (older_than_days,))
                count = cur.rowcount

        if count > 0:
            LOGGER.info("Purged %d processed job(s)", count)
        return count


@dataclass
class _Entry:
    event: JobEvent
    status: QueueStatus = QueueStatus.PENDING
    error: Optional[str] = None
    processed_at: Optional[datetime] = None


class MemoryJobQueue:
    """In-process queue with the same status lifecycle, for tests and local runs."""

    def __init__(self, events: Optional[List[JobEvent]] = None) -> None:
        self._entries: Dict[str, _Entry] = {}
        self._pending: Deque[str] = deque()
        self._lock = threading.Lock()
        for event in events or []:
            self.enqueue(event)

    def enqueue(self, event: JobEvent) -> None:
        with self._lock:
            self._entries[event.job_id] = _Entry(event=event)
            self._pending.append(event.job_id)

    def poll(self, worker_id: str, batch_size: int = 1) -> List[JobEvent]:
        events = []
        with self._lock:
            while self._pending and len(events) < batch_size:
                entry = self._entries[self._pending.popleft()]
                if entry.status != QueueStatus.PENDING:
                    continue
                entry.status = QueueStatus.PROCESSING
                events.append(entry.event)
        return events

    def ack(self, job_id: str) -> None:
        self._finish(job_id, QueueStatus.PROCESSED, None)

    def nack(self, job_id: str, error: str) -> None:
        self._finish(job_id, QueueStatus.ERROR, error)

    def release(self, job_id: str) -> None:
        with self._lock:
            entry = self._entries.get(job_id)
            if entry is None or entry.status != QueueStatus.PROCESSING:
                return
            entry.status = QueueStatus.PENDING
            self._pending.append(job_id)

    def _finish(self, job_id: str, status: QueueStatus, error: Optional[str]) -> None:
        with self._lock:
            entry = self._entries.get(job_id)
            if entry is None:
                LOGGER.warning("Job %s not found", job_id)
                return
            entry.status = status
            entry.error = error
            entry.processed_at = utc_now()

    def status_of(self, job_id: str) -> Optional[QueueStatus]:
        entry = self._entries.get(job_id)
        return entry.status if entry else None

    def error_of(self, job_id: str) -> Optional[str]:
        entry = self._entries.get(job_id)
        return entry.error if entry else None

    def stats(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        with self._lock:
            for entry in self._entries.values():
                counts[entry.status.value] = counts.get(entry.status.value, 0) + 1
        return counts

    def purge_processed(self, older_than_days: int = 7) -> int:
        cutoff = utc_now().timestamp() - older_than_days * 86400
        with self._lock:
            stale = [
                job_id
                for job_id, entry in self._entries.items()
                if entry.status == QueueStatus.PROCESSED
                and entry.processed_at is not None
                and entry.processed_at.timestamp() < cutoff
            ]
            for job_id in stale:
                del self._entries[job_id]
        return len(stale)
