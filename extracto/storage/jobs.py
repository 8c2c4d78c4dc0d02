"""Raw crawl-job records (``scrape_jobs`` collection), keyed by job id."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from extracto.domain import domain_of
from extracto.models import JobEvent, JobState, StoredJobResult
from extracto.normalize import utc_now
from extracto.storage.collection import Collection, CollectionSchema, Query

LOGGER = logging.getLogger(__name__)

SCRAPE_JOBS = CollectionSchema(
    name="scrape_jobs",
    index_paths=("domain", "state", "url"),
)


class JobResultStore:
    def __init__(self, collection: Collection, clock: Callable[[], datetime] = utc_now) -> None:
        self.collection = collection
        self.clock = clock

    def ensure_indexes(self) -> None:
        self.collection.ensure_indexes()

    def save_result(self, event: JobEvent) -> StoredJobResult:
        """Record the job outcome; a failed job keeps its reason and no payload."""
        failed = event.final_state == JobState.FAILED
        record = StoredJobResult(
            job_id=event.job_id,
            url=event.url,
            domain=domain_of(event.url),
            state=event.final_state,
            failure_reason=event.failure_reason if failed else None,
            stored_at=self.clock(),
            payload=None if failed else event.result_payload,
        )
        document = record.model_dump(mode="json")
        self.collection.find_and_modify(event.job_id, lambda _existing: document)
        LOGGER.debug("Saved job %s (%s) for %s", event.job_id, record.state.value, record.domain)
        return record

    def get_result(self, job_id: str) -> Optional[StoredJobResult]:
        document = self.collection.find_one(job_id)
        return StoredJobResult.model_validate(document) if document is not None else None

    def stats(self) -> Dict[str, Any]:
        completed = Query(equals={"state": JobState.COMPLETED.value})
        failed = Query(equals={"state": JobState.FAILED.value})

        by_domain: Dict[str, Dict[str, int]] = {}
        for domain, total in self.collection.group_count("domain"):
            by_domain[domain or "unknown"] = {"total": total, "completed": 0, "failed": 0}
        for state, query in (("completed", completed), ("failed", failed)):
            for domain, count in self.collection.group_count("domain", query):
                by_domain.setdefault(domain or "unknown", {"total": 0, "completed": 0, "failed": 0})[state] = count

        return {
            "total_jobs": self.collection.count(),
            "completed_jobs": self.collection.count(completed),
            "failed_jobs": self.collection.count(failed),
            "by_domain": by_domain,
        }
