"""Job handlers and the one-tick worker.

  CoordinatorHandler     fetch documents per topic, drop already-processed
                         ones, enqueue one post_processor job per new document
  PostProcessorHandler   run one document through the pipeline and persist
                         the best idea it produced
  process_next           dequeue one job, dispatch by type, complete or fail
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from painradar.core.config import settings
from painradar.core.errors import NoNewInput, PainRadarError, SourceUnavailable
from painradar.modules.ideas.store import RecordStore
from painradar.modules.pipeline.orchestrator import PipelineOrchestrator
from painradar.modules.pipeline.schemas import PipelineStep
from painradar.modules.queue.manager import QueueManager
from painradar.modules.queue.schemas import Job, JobType, ProcessResponse
from painradar.modules.sources.base import DocumentSource
from painradar.modules.sources.retry import RetryPolicy
from painradar.modules.sources.schemas import Document, post_id_from_url

logger = structlog.get_logger()


class JobHandler(ABC):
    @abstractmethod
    async def handle(self, job: Job) -> dict[str, Any]:
        """Run the job and return its result record. Raise to fail it."""


class CoordinatorHandler(JobHandler):
    def __init__(
        self,
        queue: QueueManager,
        source: DocumentSource,
        records: RecordStore,
        *,
        topics: list[str] | None = None,
        fetch_limit: int | None = None,
        max_fetch_limit: int | None = None,
        topic_delay: float | None = None,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.queue = queue
        self.source = source
        self.records = records
        self.topics = topics or settings.source_topics
        self.fetch_limit = fetch_limit or settings.coordinator_fetch_limit
        self.max_fetch_limit = max_fetch_limit or settings.coordinator_max_fetch_limit
        self.topic_delay = (
            topic_delay if topic_delay is not None else settings.coordinator_topic_delay_seconds
        )
        self.retry = retry or RetryPolicy(sleep=sleep)
        self.sleep = sleep

    async def _fetch_all(self, limit: int) -> list[Document]:
        documents: list[Document] = []
        failed: list[str] = []
        for index, topic in enumerate(self.topics):
            if index > 0 and self.topic_delay:
                await self.sleep(self.topic_delay)
            try:
                fetched = await self.retry.run(
                    lambda: self.source.fetch_documents(topic, limit),
                    label=f"fetch r/{topic}",
                )
            except SourceUnavailable as e:
                failed.append(topic)
                logger.warning("Coordinator: topic skipped", topic=topic, error=str(e))
                continue
            documents.extend(fetched)
            logger.info("Coordinator: topic fetched", topic=topic, documents=len(fetched))

        if failed and len(failed) == len(self.topics):
            raise SourceUnavailable(f"All {len(failed)} topics failed: {', '.join(failed)}")
        return documents

    @staticmethod
    def _post_id(doc: Document) -> str:
        return post_id_from_url(doc.url) or doc.id

    async def handle(self, job: Job) -> dict[str, Any]:
        processed = await self.records.list_processed_source_ids()
        logger.info("Coordinator: already processed", documents=len(processed))

        limit = self.fetch_limit
        while True:
            documents = await self._fetch_all(limit)
            fresh = [doc for doc in documents if self._post_id(doc) not in processed]

            job_ids: list[str] = []
            for doc in fresh:
                if not await self.queue.claim_document(self._post_id(doc)):
                    continue
                job_ids.append(
                    await self.queue.enqueue_post_processor(
                        doc.model_dump(mode="json"), claim_id=self._post_id(doc)
                    )
                )

            logger.info(
                "Coordinator: fetch round done",
                limit=limit,
                fetched=len(documents),
                new=len(fresh),
                enqueued=len(job_ids),
            )
            if job_ids:
                return {"postsEnqueued": len(job_ids), "jobIds": job_ids}

            if limit >= self.max_fetch_limit:
                raise NoNewInput(
                    f"No new documents found (all already processed, limit {limit})"
                )
            limit = min(limit * 2, self.max_fetch_limit)


class PostProcessorHandler(JobHandler):
    def __init__(
        self,
        records: RecordStore,
        orchestrator_factory: Callable[[], PipelineOrchestrator],
    ) -> None:
        self.records = records
        self.orchestrator_factory = orchestrator_factory

    async def handle(self, job: Job) -> dict[str, Any]:
        raw = (job.payload or {}).get("document")
        if not raw:
            raise PainRadarError(f"Job {job.id} has no document payload")
        document = Document.model_validate(raw)
        logger.info("PostProcessor: document", post_id=document.id, title=document.title[:50])

        result = await self.orchestrator_factory().run([document], workflow_id=f"job-{job.id}")
        state = result.state
        if state.current_step == PipelineStep.error:
            raise PainRadarError("; ".join(state.errors) or "Pipeline failed")

        idea_ids: list[str] = []
        if state.ideas:
            best = max(state.ideas, key=lambda idea: idea.score)
            idea_ids = [str(i) for i in await self.records.insert([best])]
            logger.info("PostProcessor: idea stored", idea=best.name, score=best.score)
        else:
            logger.warning("PostProcessor: no ideas produced", errors=state.errors)

        return {
            "ideasGenerated": len(idea_ids),
            "ideaIds": idea_ids,
            "errors": state.errors,
        }


async def process_next(
    queue: QueueManager, handlers: dict[JobType, JobHandler]
) -> ProcessResponse:
    """One worker tick: at most one job is run."""
    job_id = await queue.dequeue()
    if job_id is None:
        return ProcessResponse(success=True, message="No jobs in queue")

    job = await queue.status(job_id)
    if job is None:
        await queue.fail(job_id, f"Job {job_id} not found")
        return ProcessResponse(
            success=False, job_id=job_id, message="Job vanished", error="not found"
        )

    handler = handlers.get(job.type)
    if handler is None:
        error = f"Unknown job type: {job.type.value}"
        await queue.fail(job_id, error)
        return ProcessResponse(
            success=False, job_id=job_id, job_type=job.type, message=error, error=error
        )

    try:
        result = await handler.handle(job)
    except Exception as e:
        logger.error("Worker: job failed", job_id=job_id, type=job.type.value, exc_info=True)
        await queue.fail(job_id, str(e))
        return ProcessResponse(
            success=False,
            job_id=job_id,
            job_type=job.type,
            message=f"{job.type.value} job failed",
            error=str(e),
        )

    await queue.complete(job_id, result)
    return ProcessResponse(
        success=True,
        job_id=job_id,
        job_type=job.type,
        message=f"{job.type.value} job completed",
        result=result,
    )
