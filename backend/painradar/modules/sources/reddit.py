from __future__ import annotations

import base64
import time
from typing import Any

import httpx
import structlog

from painradar.core.config import settings
from painradar.core.errors import RateLimited, SourceUnavailable
from painradar.modules.sources.base import DocumentSource
from painradar.modules.sources.schemas import Document

logger = structlog.get_logger()

TOKEN_URL = "https://www.reddit.com/api/v1/access_token"
API_BASE = "https://oauth.reddit.com"

MIN_TITLE_LENGTH = 10
MIN_CONTENT_LENGTH = 50
MIN_COMMENTS = 5


def _is_substantive(doc: Document) -> bool:
    """Meaningful title, and either some body text or some discussion."""
    return len(doc.title) > MIN_TITLE_LENGTH and (
        len(doc.content) > MIN_CONTENT_LENGTH or doc.num_comments > MIN_COMMENTS
    )


def _to_document(post: dict[str, Any]) -> Document:
    return Document(
        id=post["id"],
        subreddit=post.get("subreddit", ""),
        title=post.get("title", ""),
        content=post.get("selftext") or "",
        url=f"https://reddit.com{post.get('permalink', '')}",
        score=post.get("score", 0) or 0,
        num_comments=post.get("num_comments", 0) or 0,
        created=post.get("created_utc", 0.0) or 0.0,
    )


class RedditSource(DocumentSource):
    """Fetches subreddit listings through the Reddit OAuth API.

    Uses the script-app password grant. Listings are cached in-process for
    ``cache_ttl`` seconds, keyed by subreddit, sort and limit.
    """

    def __init__(
        self,
        sort: str = "hot",
        cache_ttl: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.sort = sort
        self.cache_ttl = cache_ttl if cache_ttl is not None else settings.reddit_cache_ttl_seconds
        self._transport = transport
        self._token: str | None = None
        self._token_expiry = 0.0
        self._cache: dict[str, tuple[float, list[Document]]] = {}

    def _client(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=10.0,
            headers={"User-Agent": settings.reddit_user_agent},
            transport=self._transport,
            **kwargs,
        )

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            raise RateLimited(
                "Reddit rate limit hit",
                retry_after=float(retry_after) if retry_after else None,
            )
        if response.status_code >= 400:
            raise SourceUnavailable(f"Reddit API error: HTTP {response.status_code}")

    async def _authenticate(self) -> str:
        if self._token and time.time() < self._token_expiry:
            return self._token

        credentials = f"{settings.reddit_client_id}:{settings.reddit_client_secret}"
        basic = base64.b64encode(credentials.encode()).decode()
        try:
            async with self._client() as client:
                response = await client.post(
                    TOKEN_URL,
                    data={
                        "grant_type": "password",
                        "username": settings.reddit_username,
                        "password": settings.reddit_password,
                    },
                    headers={"Authorization": f"Basic {basic}"},
                )
        except httpx.HTTPError as e:
            raise SourceUnavailable(f"Reddit authentication failed: {e}") from e

        self._raise_for_status(response)
        data = response.json()
        token = data.get("access_token")
        if not token:
            raise SourceUnavailable("Reddit authentication returned no access token")

        self._token = token
        # Refresh a minute early
        self._token_expiry = time.time() + float(data.get("expires_in", 3600)) - 60
        logger.info("Reddit authenticated")
        return token

    async def fetch_documents(self, topic: str, limit: int) -> list[Document]:
        cache_key = f"{topic}:{self.sort}:{limit}"
        cached = self._cache.get(cache_key)
        if cached and time.time() < cached[0]:
            logger.debug("reddit_cache_hit", key=cache_key)
            return cached[1]

        token = await self._authenticate()
        try:
            async with self._client(base_url=API_BASE) as client:
                response = await client.get(
                    f"/r/{topic}/{self.sort}",
                    params={"limit": limit},
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as e:
            raise SourceUnavailable(f"Reddit request failed for r/{topic}: {e}") from e

        self._raise_for_status(response)
        try:
            children = response.json()["data"]["children"]
            documents = [_to_document(child["data"]) for child in children]
        except (KeyError, TypeError, ValueError) as e:
            raise SourceUnavailable(f"Unexpected Reddit listing shape for r/{topic}") from e

        kept = [doc for doc in documents if _is_substantive(doc)]
        self._cache[cache_key] = (time.time() + self.cache_ttl, kept)

        logger.info(
            "reddit_collected",
            subreddit=topic,
            fetched=len(documents),
            kept=len(kept),
        )
        return kept
