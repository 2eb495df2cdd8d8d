from __future__ import annotations

from html import escape

import httpx
import structlog

from painradar.core.config import settings
from painradar.core.errors import DeliveryFailed
from painradar.modules.notifications.base import Notifier
from painradar.modules.notifications.schemas import DigestIdea

logger = structlog.get_logger()

RESEND_API_URL = "https://api.resend.com/emails"


def unsubscribe_url(token: str) -> str:
    return f"{settings.app_url.rstrip('/')}/api/subscriptions?token={token}"


def render_digest(ideas: list[DigestIdea], unsubscribe_link: str) -> str:
    cards = "\n".join(
        f"""<div style="border:1px solid #e5e7eb;border-radius:8px;padding:16px;margin-bottom:12px">
  <h2 style="margin:0 0 4px">{escape(idea.name)}</h2>
  <p style="margin:0 0 8px;color:#6b7280">{escape(idea.category)} &middot; score {idea.score:.0f}/100</p>
  <p style="margin:0">{escape(idea.pitch)}</p>
</div>"""
        for idea in ideas
    )
    return f"""<html><body style="font-family:sans-serif;max-width:600px;margin:auto">
<h1>New product ideas from Reddit</h1>
{cards}
<p><a href="{escape(settings.app_url)}">See all ideas</a></p>
<p style="font-size:12px;color:#9ca3af"><a href="{escape(unsubscribe_link)}">Unsubscribe</a></p>
</body></html>"""


class ResendNotifier(Notifier):
    """Sends digests through the Resend HTTP API."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport
        self.headers = {
            "Authorization": f"Bearer {settings.resend_api_key}",
            "Content-Type": "application/json",
        }

    async def send_digest(
        self, recipient: str, ideas: list[DigestIdea], unsubscribe_token: str
    ) -> str | None:
        if not settings.resend_api_key:
            raise DeliveryFailed("RESEND_API_KEY not configured")

        body = {
            "from": settings.resend_from_email,
            "to": recipient,
            "subject": f"{len(ideas)} New Product Ideas from Reddit",
            "html": render_digest(ideas, unsubscribe_url(unsubscribe_token)),
        }
        async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
            try:
                resp = await client.post(RESEND_API_URL, headers=self.headers, json=body)
                resp.raise_for_status()
            except httpx.HTTPError as e:
                raise DeliveryFailed(f"Resend rejected digest for {recipient}: {e}") from e

        message_id = resp.json().get("id")
        logger.info("digest_sent", recipient=recipient, ideas=len(ideas), message_id=message_id)
        return message_id
