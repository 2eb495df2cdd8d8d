"""Unit tests for the post-processor job and the one-tick worker."""

from __future__ import annotations

import pytest

from painradar.core.errors import NoNewInput, PainRadarError
from painradar.modules.pipeline.schemas import (
    Idea,
    PipelineResult,
    PipelineState,
    PipelineStep,
    ProcessingStats,
)
from painradar.modules.queue.handlers import JobHandler, PostProcessorHandler, process_next
from painradar.modules.queue.schemas import JobStatus, JobType


def _idea(name: str, score: float) -> Idea:
    return Idea(
        name=name,
        pitch=f"{name} solves a real problem for founders every single week.",
        pain_point="Founders cannot hire engineers",
        target_audience="Seed-stage founders",
        category="hiring",
        score=score,
    )


class StubOrchestrator:
    """Returns a fixed final state and remembers what it was asked to run."""

    def __init__(self, ideas=None, errors=None, step=PipelineStep.complete) -> None:
        self.ideas = ideas or []
        self.errors = errors or []
        self.step = step
        self.runs: list[tuple[list, str | None]] = []

    async def run(self, documents, workflow_id=None) -> PipelineResult:
        self.runs.append((documents, workflow_id))
        state = PipelineState(
            workflow_id=workflow_id or "wf",
            current_step=self.step,
            source_documents=documents,
            ideas=self.ideas,
            errors=self.errors,
        )
        return PipelineResult(success=not self.errors, state=state, stats=ProcessingStats())


class RecordingHandler(JobHandler):
    def __init__(self, result=None, error: Exception | None = None) -> None:
        self.result = result or {}
        self.error = error
        self.jobs = []

    async def handle(self, job):
        self.jobs.append(job)
        if self.error is not None:
            raise self.error
        return self.result


# ---------------------------------------------------------------------------
# PostProcessorHandler
# ---------------------------------------------------------------------------


async def test_post_processor_persists_best_idea(queue, record_store, hiring_document) -> None:
    orchestrator = StubOrchestrator(ideas=[_idea("Low", 41.0), _idea("Best", 72.5), _idea("Mid", 60.0)])
    handler = PostProcessorHandler(record_store, lambda: orchestrator)
    job_id = await queue.enqueue_post_processor(hiring_document.model_dump(mode="json"))

    result = await handler.handle(await queue.status(job_id))

    assert [idea.name for idea in record_store.ideas] == ["Best"]
    assert result == {"ideasGenerated": 1, "ideaIds": ["1"], "errors": []}
    documents, workflow_id = orchestrator.runs[0]
    assert documents[0].id == "h1r3ng"
    assert workflow_id == f"job-{job_id}"


async def test_post_processor_with_no_ideas_completes_empty(queue, record_store, hiring_document) -> None:
    """Zero ideas is not a failure; the stage errors travel in the result."""
    orchestrator = StubOrchestrator(errors=["generating failed: boom"])
    handler = PostProcessorHandler(record_store, lambda: orchestrator)
    job_id = await queue.enqueue_post_processor(hiring_document.model_dump(mode="json"))

    result = await handler.handle(await queue.status(job_id))

    assert result == {"ideasGenerated": 0, "ideaIds": [], "errors": ["generating failed: boom"]}
    assert record_store.ideas == []


async def test_post_processor_error_step_raises(queue, record_store, hiring_document) -> None:
    orchestrator = StubOrchestrator(
        errors=["No valid source documents to process"], step=PipelineStep.error
    )
    handler = PostProcessorHandler(record_store, lambda: orchestrator)
    job_id = await queue.enqueue_post_processor(hiring_document.model_dump(mode="json"))

    with pytest.raises(PainRadarError, match="No valid source documents"):
        await handler.handle(await queue.status(job_id))


async def test_post_processor_requires_document(queue, record_store) -> None:
    handler = PostProcessorHandler(record_store, StubOrchestrator)
    job_id = await queue.enqueue_post_processor({})

    with pytest.raises(PainRadarError, match="no document payload"):
        await handler.handle(await queue.status(job_id))


# ---------------------------------------------------------------------------
# process_next
# ---------------------------------------------------------------------------


async def test_tick_on_empty_queue(queue) -> None:
    response = await process_next(queue, {})
    assert response.success
    assert response.message == "No jobs in queue"
    assert response.job_id is None


async def test_tick_completes_job(queue) -> None:
    handler = RecordingHandler(result={"postsEnqueued": 0, "jobIds": []})
    job_id = await queue.enqueue_coordinator()

    response = await process_next(queue, {JobType.coordinator: handler})

    assert response.success
    assert response.job_id == job_id
    assert response.job_type == JobType.coordinator
    assert response.result == {"postsEnqueued": 0, "jobIds": []}
    job = await queue.status(job_id)
    assert job.status == JobStatus.completed
    assert handler.jobs[0].status == JobStatus.processing


async def test_tick_fails_job_when_handler_raises(queue) -> None:
    handler = RecordingHandler(error=NoNewInput("No new documents found"))
    job_id = await queue.enqueue_coordinator()

    response = await process_next(queue, {JobType.coordinator: handler})

    assert not response.success
    assert response.error == "No new documents found"
    job = await queue.status(job_id)
    assert job.status == JobStatus.failed
    assert job.error == "No new documents found"


async def test_tick_fails_job_without_handler(queue) -> None:
    job_id = await queue.enqueue_post_processor({"id": "x"})

    response = await process_next(queue, {})

    assert not response.success
    assert (await queue.status(job_id)).error == "Unknown job type: post_processor"


async def test_failed_job_frees_the_slot(queue) -> None:
    """After a failure the next tick picks up the next job."""
    failing = RecordingHandler(error=RuntimeError("crash"))
    await queue.enqueue_coordinator()
    second = await queue.enqueue_coordinator()

    await process_next(queue, {JobType.coordinator: failing})
    response = await process_next(queue, {JobType.coordinator: RecordingHandler()})

    assert response.success
    assert response.job_id == second
