from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from painradar.modules.ideas.models import IdeaRecord, Subscription
from painradar.modules.pipeline.schemas import Idea


async def create_idea(db: AsyncSession, idea: Idea) -> IdeaRecord:
    """Persist one scored idea."""
    row = IdeaRecord(
        title=idea.name,
        pitch=idea.pitch,
        pain_point=idea.pain_point,
        target_audience=idea.target_audience,
        category=idea.category,
        score=idea.score,
        score_breakdown=idea.score_breakdown.model_dump() if idea.score_breakdown else None,
        sources=idea.sources,
        confidence=idea.confidence,
        is_new=True,
    )
    db.add(row)
    await db.flush()
    await db.refresh(row)
    return row


async def list_source_urls(db: AsyncSession) -> list[str]:
    """Every source URL referenced by a stored idea."""
    result = await db.execute(select(IdeaRecord.sources))
    urls: list[str] = []
    for sources in result.scalars().all():
        urls.extend(sources or [])
    return urls


async def list_ideas(
    db: AsyncSession,
    category: str | None = None,
    min_score: float | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[IdeaRecord], int]:
    """List ideas, best first, with optional filters and pagination."""
    base = select(IdeaRecord)

    if category:
        base = base.where(IdeaRecord.category == category)
    if min_score is not None:
        base = base.where(IdeaRecord.score >= min_score)

    count_query = select(func.count()).select_from(base.subquery())
    total = (await db.execute(count_query)).scalar_one()

    query = (
        base.order_by(IdeaRecord.score.desc(), IdeaRecord.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(query)
    return list(result.scalars().all()), total


async def list_new_ideas(db: AsyncSession, limit: int) -> list[IdeaRecord]:
    result = await db.execute(
        select(IdeaRecord)
        .where(IdeaRecord.is_new.is_(True))
        .order_by(IdeaRecord.score.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def mark_ideas_sent(db: AsyncSession) -> int:
    """Clear the is_new flag on every new idea. Returns the row count."""
    result = await db.execute(
        update(IdeaRecord).where(IdeaRecord.is_new.is_(True)).values(is_new=False)
    )
    return result.rowcount or 0


async def list_active_subscriptions(db: AsyncSession) -> list[Subscription]:
    result = await db.execute(select(Subscription).where(Subscription.is_active.is_(True)))
    return list(result.scalars().all())


async def touch_subscription(db: AsyncSession, subscription_id: int) -> None:
    """Record that a digest was just sent to this subscriber."""
    await db.execute(
        update(Subscription)
        .where(Subscription.id == subscription_id)
        .values(last_email_sent=datetime.now(timezone.utc))
    )
