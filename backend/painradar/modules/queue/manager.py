"""Durable single-flight job queue.

Layout in the key-value store:
  job:{id}            hash with the job record
  ideas:queue         list of pending IDs (LPUSH to enqueue, tail is oldest)
  ideas:processing    ID of the one job currently in flight
  claimed:{doc_id}    marker for documents that already have a job, released
                      when that job fails

Dequeue claims the processing marker and marks the job processing before it
pops the ID off the pending list. A crash between those steps leaves the job
in the list and the marker pointing at it: timeout reclamation fails the job
and the next dequeue drops its stale list entry. A processing entry that is
still young, or still named by the marker, belongs to a live claimer and
makes other dequeues back off.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import Any

import structlog

from painradar.core.config import settings
from painradar.modules.queue.schemas import Job, JobStatus, JobType
from painradar.modules.queue.store import KeyValueStore

logger = structlog.get_logger()

QUEUE_KEY = "ideas:queue"
PROCESSING_KEY = "ideas:processing"


def job_key(job_id: str) -> str:
    return f"job:{job_id}"


def claim_key(document_id: str) -> str:
    return f"claimed:{document_id}"


def _now_ms() -> int:
    return int(time.time() * 1000)


class QueueManager:
    """Enqueue/dequeue/complete/fail on top of a KeyValueStore."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        job_timeout_seconds: int | None = None,
        retention_seconds: int | None = None,
        claim_ttl_seconds: int | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.store = store
        self.job_timeout_ms = (
            job_timeout_seconds or settings.queue_job_timeout_seconds
        ) * 1000
        self.retention_seconds = retention_seconds or settings.queue_retention_seconds
        self.claim_ttl_seconds = claim_ttl_seconds or settings.document_claim_ttl_seconds
        self.clock = clock or _now_ms

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    async def _enqueue(self, job_type: JobType, payload: dict[str, Any] | None = None) -> str:
        job = Job(type=job_type, created_at=self.clock(), payload=payload)
        await self.store.hset(job_key(job.id), job.to_hash())
        await self.store.lpush(QUEUE_KEY, job.id)
        logger.info("Queue: job enqueued", job_id=job.id, type=job_type.value)
        return job.id

    async def enqueue_coordinator(self) -> str:
        return await self._enqueue(JobType.coordinator)

    async def enqueue_post_processor(
        self, document: dict[str, Any], claim_id: str | None = None
    ) -> str:
        """Enqueue one document for the full pipeline.

        ``claim_id`` names the document claim this job holds; a failed job
        releases it so a later coordinator run can enqueue the document again.
        """
        payload: dict[str, Any] = {"document": document}
        if claim_id:
            payload["claimId"] = claim_id
        return await self._enqueue(JobType.post_processor, payload=payload)

    async def claim_document(self, document_id: str) -> bool:
        """Return True the first time a document is claimed, False afterwards."""
        return await self.store.set(
            claim_key(document_id),
            str(self.clock()),
            nx=True,
            ex=self.claim_ttl_seconds,
        )

    async def release_document(self, document_id: str) -> None:
        await self.store.delete(claim_key(document_id))
        logger.info("Queue: document claim released", document_id=document_id)

    # ------------------------------------------------------------------
    # Dequeue
    # ------------------------------------------------------------------

    async def _reclaim_in_flight(self) -> bool:
        """Deal with the current processing marker.

        Returns True if a job is legitimately in flight (caller must back off).
        """
        current = await self.store.get(PROCESSING_KEY)
        if not current:
            return False

        job = await self.status(current)
        if job is None:
            logger.warning("Queue: processing marker points at missing job", job_id=current)
            await self.store.delete_if_equals(PROCESSING_KEY, current)
            return False

        if job.status == JobStatus.pending:
            # Claimed by a concurrent dequeue that has not marked it yet
            return True

        if job.status != JobStatus.processing:
            # Terminal job whose marker was never cleared
            await self.store.delete_if_equals(PROCESSING_KEY, current)
            return False

        age_ms = self._age_ms(job)
        if age_ms <= self.job_timeout_ms:
            return True

        logger.warning(
            "Queue: reclaiming stuck job",
            job_id=current,
            age_seconds=age_ms // 1000,
        )
        await self.fail(current, self._timeout_error())
        return False

    def _age_ms(self, job: Job) -> int:
        return self.clock() - (job.started_at or job.created_at)

    def _timeout_error(self) -> str:
        return f"Job timed out after {self.job_timeout_ms // 60_000} minutes"

    async def _settle_entry(self, job_id: str, job: Job | None) -> bool:
        """Handle a pending-list entry that is not pending.

        Returns True if the entry belongs to a claim still in progress, in
        which case the caller backs off. Otherwise the entry is dropped.
        """
        if job is not None and job.status == JobStatus.processing:
            if self._age_ms(job) <= self.job_timeout_ms:
                # Marked by a live claimer that has not removed it yet
                return True
            if await self.store.get(PROCESSING_KEY) == job_id:
                return True
            await self.fail(job_id, self._timeout_error())
        await self.store.lrem(QUEUE_KEY, job_id)
        logger.warning(
            "Queue: dropped stale entry",
            job_id=job_id,
            status=job.status.value if job else None,
        )
        return False

    async def dequeue(self) -> str | None:
        """Claim the oldest pending job, or return None if one is in flight."""
        if await self._reclaim_in_flight():
            return None

        while True:
            oldest = await self.store.lindex(QUEUE_KEY, -1)
            if oldest is None:
                return None
            job = await self.status(oldest)
            if job is not None and job.status == JobStatus.pending:
                break
            if await self._settle_entry(oldest, job):
                return None

        # The marker outlives the job timeout so a stuck job is always seen;
        # the TTL only releases markers orphaned by a crashed claimer.
        marker_ttl = (self.job_timeout_ms // 1000) * 2
        if not await self.store.set(PROCESSING_KEY, oldest, nx=True, ex=marker_ttl):
            # Lost the race to a concurrent dequeue
            return None

        # The peek above ran without the marker; the job may have been run since
        job = await self.status(oldest)
        if job is None or job.status != JobStatus.pending:
            await self.store.delete_if_equals(PROCESSING_KEY, oldest)
            return None

        await self.store.hset(
            job_key(oldest),
            {"status": JobStatus.processing.value, "startedAt": str(self.clock())},
        )
        if not await self.store.lrem(QUEUE_KEY, oldest):
            logger.error("Queue: claimed job was not in the pending list", job_id=oldest)

        logger.info("Queue: job dequeued", job_id=oldest)
        return oldest

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    async def _finish(self, job_id: str, fields: dict[str, str]) -> None:
        key = job_key(job_id)
        fields["completedAt"] = str(self.clock())
        await self.store.hset(key, fields)
        await self.store.delete_if_equals(PROCESSING_KEY, job_id)
        await self.store.expire(key, self.retention_seconds)

    async def complete(self, job_id: str, result: dict[str, Any]) -> None:
        await self._finish(
            job_id,
            {"status": JobStatus.completed.value, "result": json.dumps(result)},
        )
        logger.info("Queue: job completed", job_id=job_id)

    async def fail(self, job_id: str, error: str) -> None:
        job = await self.status(job_id)
        await self._finish(job_id, {"status": JobStatus.failed.value, "error": error})
        logger.warning("Queue: job failed", job_id=job_id, error=error)
        claim_id = (job.payload or {}).get("claimId") if job else None
        if claim_id:
            await self.release_document(claim_id)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    async def status(self, job_id: str) -> Job | None:
        data = await self.store.hgetall(job_key(job_id))
        if not data:
            return None
        return Job.from_hash(data)

    async def queue_position(self, job_id: str) -> int | None:
        """1-indexed position among pending jobs, counting the one in flight."""
        pending = await self.store.lrange(QUEUE_KEY, 0, -1)
        if job_id not in pending:
            return None
        # Head of the list is the newest job
        ahead = len(pending) - 1 - pending.index(job_id)
        in_flight = 1 if await self.store.get(PROCESSING_KEY) else 0
        return ahead + in_flight + 1

    async def pending_count(self) -> int:
        return len(await self.store.lrange(QUEUE_KEY, 0, -1))
