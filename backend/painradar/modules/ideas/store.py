"""Record store: where finished ideas are persisted.

The queue handlers and the digest service only see the RecordStore
interface. SqlRecordStore backs it with the ``ideas`` and ``subscriptions``
tables; tests substitute an in-memory fake.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from painradar.core.database import async_session
from painradar.modules.ideas import service
from painradar.modules.ideas.schemas import IdeaOut, SubscriberOut
from painradar.modules.pipeline.schemas import Idea
from painradar.modules.sources.schemas import post_id_from_url

logger = structlog.get_logger()


class RecordStore(ABC):
    @abstractmethod
    async def insert(self, ideas: list[Idea]) -> list[int]:
        """Persist ideas and return their record IDs, in order."""

    @abstractmethod
    async def list_processed_source_ids(self) -> set[str]:
        """Post IDs of every document that already produced a record."""

    @abstractmethod
    async def list_new_ideas(self, limit: int) -> list[IdeaOut]:
        """Highest-scoring ideas not yet included in a digest."""

    @abstractmethod
    async def mark_ideas_sent(self) -> int: ...

    @abstractmethod
    async def list_subscribers(self) -> list[SubscriberOut]: ...

    @abstractmethod
    async def mark_subscriber_emailed(self, subscriber_id: int) -> None: ...


class SqlRecordStore(RecordStore):
    """RecordStore over SQLAlchemy async sessions, one transaction per call."""

    def __init__(self, session_factory: Callable[[], AsyncSession] | None = None) -> None:
        self.session_factory = session_factory or async_session

    async def insert(self, ideas: list[Idea]) -> list[int]:
        async with self.session_factory() as db:
            async with db.begin():
                rows = [await service.create_idea(db, idea) for idea in ideas]
                ids = [row.id for row in rows]
        logger.info("Ideas persisted", count=len(ids), ids=ids)
        return ids

    async def list_processed_source_ids(self) -> set[str]:
        async with self.session_factory() as db:
            urls = await service.list_source_urls(db)
        return {post_id for post_id in map(post_id_from_url, urls) if post_id}

    async def list_new_ideas(self, limit: int) -> list[IdeaOut]:
        async with self.session_factory() as db:
            rows = await service.list_new_ideas(db, limit)
            return [IdeaOut.model_validate(row) for row in rows]

    async def mark_ideas_sent(self) -> int:
        async with self.session_factory() as db:
            async with db.begin():
                return await service.mark_ideas_sent(db)

    async def list_subscribers(self) -> list[SubscriberOut]:
        async with self.session_factory() as db:
            rows = await service.list_active_subscriptions(db)
            return [SubscriberOut.model_validate(row) for row in rows]

    async def mark_subscriber_emailed(self, subscriber_id: int) -> None:
        async with self.session_factory() as db:
            async with db.begin():
                await service.touch_subscription(db, subscriber_id)
