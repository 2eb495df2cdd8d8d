"""Digest dispatch: new ideas -> one email per active subscriber."""

from __future__ import annotations

import asyncio

import structlog

from painradar.core.config import settings
from painradar.core.errors import DeliveryFailed
from painradar.modules.ideas.schemas import IdeaOut, SubscriberOut
from painradar.modules.ideas.store import RecordStore
from painradar.modules.notifications.base import Notifier
from painradar.modules.notifications.schemas import DigestIdea, DigestResponse

logger = structlog.get_logger()


def _to_digest(idea: IdeaOut) -> DigestIdea:
    return DigestIdea(
        id=str(idea.id),
        name=idea.title,
        pitch=idea.pitch,
        score=idea.score,
        category=idea.category,
    )


async def _send_one(
    notifier: Notifier,
    records: RecordStore,
    subscriber: SubscriberOut,
    ideas: list[IdeaOut],
    max_ideas: int,
) -> bool:
    picked = [idea for idea in ideas if idea.category in subscriber.topics][:max_ideas]
    if not picked:
        return False
    await notifier.send_digest(
        subscriber.email, [_to_digest(i) for i in picked], subscriber.unsubscribe_token
    )
    await records.mark_subscriber_emailed(subscriber.id)
    return True


async def send_digests(
    records: RecordStore,
    notifier: Notifier,
    max_ideas: int | None = None,
) -> DigestResponse:
    """Send the top new ideas to every subscriber whose topics match.

    A delivery failure for one subscriber is logged and does not stop the
    others. Every new idea is marked sent afterwards.
    """
    max_ideas = max_ideas or settings.digest_max_ideas
    ideas = await records.list_new_ideas(max_ideas)
    if not ideas:
        return DigestResponse(message="No new ideas to send")

    subscribers = await records.list_subscribers()
    if not subscribers:
        return DigestResponse(message="No active subscriptions", ideas_included=len(ideas))

    logger.info("Digest run started", ideas=len(ideas), subscribers=len(subscribers))
    outcomes = await asyncio.gather(
        *(_send_one(notifier, records, sub, ideas, max_ideas) for sub in subscribers),
        return_exceptions=True,
    )

    sent = 0
    for subscriber, outcome in zip(subscribers, outcomes):
        if isinstance(outcome, DeliveryFailed):
            logger.warning("digest_failed", recipient=subscriber.email, error=str(outcome))
        elif isinstance(outcome, BaseException):
            raise outcome
        elif outcome:
            sent += 1

    marked = await records.mark_ideas_sent()
    logger.info("Digest run finished", emails_sent=sent, ideas_marked=marked)
    return DigestResponse(
        message=f"Sent {sent} digests", emails_sent=sent, ideas_included=len(ideas)
    )
