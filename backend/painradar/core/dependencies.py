"""FastAPI dependency providers.

Each collaborator is built here so routers stay thin and tests can swap any
of them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from fastapi import Depends

from painradar.modules.ideas.store import RecordStore, SqlRecordStore
from painradar.modules.notifications.base import Notifier
from painradar.modules.notifications.resend import ResendNotifier
from painradar.modules.pipeline.orchestrator import PipelineOrchestrator
from painradar.modules.queue.handlers import (
    CoordinatorHandler,
    JobHandler,
    PostProcessorHandler,
)
from painradar.modules.queue.manager import QueueManager
from painradar.modules.queue.schemas import JobType
from painradar.modules.queue.store import get_store
from painradar.modules.sources.base import DocumentSource
from painradar.modules.sources.reddit import RedditSource

# The Reddit adapter caches listings in-process, so keep one instance
_source: RedditSource | None = None


def get_queue_manager() -> QueueManager:
    return QueueManager(get_store())


def get_record_store() -> RecordStore:
    return SqlRecordStore()


def get_document_source() -> DocumentSource:
    global _source
    if _source is None:
        _source = RedditSource()
    return _source


def get_notifier() -> Notifier:
    return ResendNotifier()


def new_orchestrator() -> PipelineOrchestrator:
    return PipelineOrchestrator(store=get_store())


def build_handlers(
    queue: QueueManager, source: DocumentSource, records: RecordStore
) -> dict[JobType, JobHandler]:
    return {
        JobType.coordinator: CoordinatorHandler(queue, source, records),
        JobType.post_processor: PostProcessorHandler(records, new_orchestrator),
    }


def get_handlers(
    queue: QueueManager = Depends(get_queue_manager),
    source: DocumentSource = Depends(get_document_source),
    records: RecordStore = Depends(get_record_store),
) -> dict[JobType, JobHandler]:
    return build_handlers(queue, source, records)
