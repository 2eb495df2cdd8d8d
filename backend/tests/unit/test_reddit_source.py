"""Unit tests for the Reddit document source against a mocked API."""

from __future__ import annotations

import httpx
import pytest

from painradar.core.errors import RateLimited, SourceUnavailable
from painradar.modules.sources.reddit import RedditSource
from painradar.modules.sources.schemas import post_id_from_url

LONG_BODY = "We have tried every job board and still have no qualified applicants at all."


def _post(post_id: str, title: str, selftext: str = "", num_comments: int = 0) -> dict:
    return {
        "kind": "t3",
        "data": {
            "id": post_id,
            "subreddit": "startups",
            "title": title,
            "selftext": selftext,
            "permalink": f"/r/startups/comments/{post_id}/slug/",
            "score": 25,
            "num_comments": num_comments,
            "created_utc": 1_700_000_000.0,
        },
    }


class FakeReddit:
    """Token endpoint plus one listing endpoint, with canned responses."""

    def __init__(self, listing: list[dict] | None = None, listing_status: int = 200, headers=None):
        self.listing = listing or []
        self.listing_status = listing_status
        self.headers = headers or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/api/v1/access_token":
            return httpx.Response(200, json={"access_token": "tkn", "expires_in": 3600})
        if self.listing_status != 200:
            return httpx.Response(self.listing_status, headers=self.headers)
        return httpx.Response(200, json={"data": {"children": self.listing}})


def _source(api: FakeReddit, **kwargs) -> RedditSource:
    return RedditSource(transport=httpx.MockTransport(api), **kwargs)


async def test_fetch_keeps_substantive_posts() -> None:
    api = FakeReddit(
        [
            _post("aaa111", "How do you hire your first engineer?", LONG_BODY),
            _post("bbb222", "Short", LONG_BODY),
            _post("ccc333", "A title with no body but a busy thread", num_comments=12),
            _post("ddd444", "A title with no body and no discussion"),
        ]
    )

    docs = await _source(api).fetch_documents("startups", 10)

    assert [d.id for d in docs] == ["aaa111", "ccc333"]
    assert docs[0].url == "https://reddit.com/r/startups/comments/aaa111/slug/"
    assert post_id_from_url(docs[0].url) == "aaa111"
    listing = api.requests[-1]
    assert listing.url.path == "/r/startups/hot"
    assert listing.url.params["limit"] == "10"
    assert listing.headers["authorization"] == "Bearer tkn"


async def test_listing_is_cached_and_token_reused() -> None:
    api = FakeReddit([_post("aaa111", "How do you hire your first engineer?", LONG_BODY)])
    source = _source(api)

    await source.fetch_documents("startups", 5)
    await source.fetch_documents("startups", 5)
    await source.fetch_documents("startups", 10)

    paths = [r.url.path for r in api.requests]
    assert paths.count("/api/v1/access_token") == 1
    assert paths.count("/r/startups/hot") == 2


async def test_rate_limit_carries_retry_after() -> None:
    api = FakeReddit(listing_status=429, headers={"retry-after": "42"})

    with pytest.raises(RateLimited) as exc_info:
        await _source(api).fetch_documents("startups", 5)

    assert exc_info.value.retry_after == 42.0


async def test_server_error_is_source_unavailable() -> None:
    api = FakeReddit(listing_status=503)

    with pytest.raises(SourceUnavailable, match="HTTP 503"):
        await _source(api).fetch_documents("startups", 5)
