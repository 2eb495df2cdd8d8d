"""Unit tests for the coordinator job: fetch, dedupe, enqueue."""

from __future__ import annotations

import pytest

from painradar.core.errors import NoNewInput, SourceUnavailable
from painradar.modules.pipeline.schemas import Idea
from painradar.modules.queue.handlers import CoordinatorHandler
from painradar.modules.queue.schemas import Job, JobStatus, JobType
from painradar.modules.sources.retry import RetryPolicy


def _coordinator_job() -> Job:
    return Job(type=JobType.coordinator, created_at=0)


def _handler(queue, source, records, sleeper, topics=("startups",), attempts=1):
    return CoordinatorHandler(
        queue,
        source,
        records,
        topics=list(topics),
        fetch_limit=5,
        max_fetch_limit=25,
        topic_delay=1.0,
        retry=RetryPolicy(max_attempts=attempts, sleep=sleeper),
        sleep=sleeper,
    )


async def test_enqueues_one_job_per_new_document(
    queue, fake_source, record_store, sleeper, document_factory
) -> None:
    fake_source.documents["startups"] = [document_factory(f"p{i}") for i in range(3)]
    handler = _handler(queue, fake_source, record_store, sleeper)

    result = await handler.handle(_coordinator_job())

    assert result["postsEnqueued"] == 3
    assert len(result["jobIds"]) == 3
    job = await queue.status(result["jobIds"][0])
    assert job.type == JobType.post_processor
    assert job.status == JobStatus.pending
    assert job.payload["document"]["id"] == "p0"
    assert fake_source.calls == [("startups", 5)]


async def test_skips_documents_that_already_have_ideas(
    queue, fake_source, record_store, sleeper, document_factory
) -> None:
    """Posts whose permalink is already an idea source are not enqueued again."""
    done, fresh = document_factory("done01"), document_factory("new001")
    fake_source.documents["startups"] = [done, fresh]
    await record_store.insert(
        [
            Idea(
                name="Existing",
                pitch="Already generated from this post before today.",
                pain_point="Something",
                target_audience="Founders",
                sources=[done.url],
            )
        ]
    )

    result = await _handler(queue, fake_source, record_store, sleeper).handle(_coordinator_job())

    assert result["postsEnqueued"] == 1
    job = await queue.status(result["jobIds"][0])
    assert job.payload["document"]["id"] == "new001"


async def test_second_run_finds_nothing_new(
    queue, fake_source, record_store, sleeper, document_factory
) -> None:
    """Claims make the coordinator idempotent; the limit widens before giving up."""
    fake_source.documents["startups"] = [document_factory(f"p{i}") for i in range(3)]
    handler = _handler(queue, fake_source, record_store, sleeper)
    await handler.handle(_coordinator_job())
    pending = await queue.pending_count()
    fake_source.calls.clear()

    with pytest.raises(NoNewInput):
        await handler.handle(_coordinator_job())

    assert [limit for _, limit in fake_source.calls] == [5, 10, 20, 25]
    assert await queue.pending_count() == pending


async def test_wider_limit_reaches_older_documents(
    queue, fake_source, record_store, sleeper, document_factory
) -> None:
    docs = [document_factory(f"p{i}") for i in range(8)]
    fake_source.documents["startups"] = docs
    for doc in docs[:5]:
        await queue.claim_document(doc.id)

    result = await _handler(queue, fake_source, record_store, sleeper).handle(_coordinator_job())

    assert result["postsEnqueued"] == 3
    assert [limit for _, limit in fake_source.calls] == [5, 10]


async def test_failed_post_job_can_be_enqueued_again(
    queue, fake_source, record_store, sleeper, clock, document_factory
) -> None:
    """A document whose pipeline job failed is picked up by the next run."""
    fake_source.documents["startups"] = [document_factory("p0")]
    handler = _handler(queue, fake_source, record_store, sleeper)
    first = await handler.handle(_coordinator_job())
    post_job = await queue.dequeue()
    assert post_job == first["jobIds"][0]

    await queue.fail(post_job, "Pipeline exceeded 180s budget")
    clock.advance(2 * 86400)
    second = await handler.handle(_coordinator_job())

    assert second["postsEnqueued"] == 1
    job = await queue.status(second["jobIds"][0])
    assert job.payload["document"]["id"] == "p0"
    assert job.payload["claimId"] == "p0"


async def test_failed_topic_is_skipped(
    queue, fake_source, record_store, sleeper, document_factory
) -> None:
    fake_source.documents["startups"] = [document_factory("s1")]
    fake_source.errors["SaaS"] = [SourceUnavailable("Reddit returned 503")]
    fake_source.documents["webdev"] = [document_factory("w1", subreddit="webdev")]
    handler = _handler(
        queue, fake_source, record_store, sleeper, topics=("startups", "SaaS", "webdev")
    )

    result = await handler.handle(_coordinator_job())

    assert result["postsEnqueued"] == 2
    assert [topic for topic, _ in fake_source.calls] == ["startups", "SaaS", "webdev"]
    assert sleeper.delays == [1.0, 1.0]


async def test_transient_topic_error_is_retried(
    queue, fake_source, record_store, sleeper, document_factory
) -> None:
    fake_source.documents["startups"] = [document_factory("s1")]
    fake_source.errors["startups"] = [SourceUnavailable("timeout")]

    result = await _handler(queue, fake_source, record_store, sleeper, attempts=2).handle(
        _coordinator_job()
    )

    assert result["postsEnqueued"] == 1
    assert len(fake_source.calls) == 2


async def test_all_topics_failing_raises(queue, fake_source, record_store, sleeper) -> None:
    fake_source.errors["startups"] = [SourceUnavailable("down")]
    fake_source.errors["SaaS"] = [SourceUnavailable("down")]
    handler = _handler(queue, fake_source, record_store, sleeper, topics=("startups", "SaaS"))

    with pytest.raises(SourceUnavailable, match="All 2 topics failed"):
        await handler.handle(_coordinator_job())

    assert await queue.pending_count() == 0
