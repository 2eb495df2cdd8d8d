"""Shared test fixtures for the Pain Radar backend test suite.

Everything external is faked: the key-value store runs in memory on a
controllable clock, chat models replay scripted turns, and the document
source, record store and notifier keep their state in plain lists.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from painradar.core.errors import DeliveryFailed
from painradar.main import app
from painradar.modules.ideas.schemas import IdeaOut, SubscriberOut
from painradar.modules.ideas.store import RecordStore
from painradar.modules.notifications.base import Notifier
from painradar.modules.notifications.schemas import DigestIdea
from painradar.modules.pipeline.llm import AgentMessage, ChatModel, ToolCall
from painradar.modules.pipeline.schemas import Idea
from painradar.modules.queue.manager import QueueManager
from painradar.modules.queue.store import MemoryStore
from painradar.modules.sources.base import DocumentSource
from painradar.modules.sources.schemas import Document, post_id_from_url


# ---------------------------------------------------------------------------
# Clock and queue
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced wall clock, readable in seconds or milliseconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def seconds(self) -> float:
        return self.now

    def millis(self) -> int:
        return int(self.now * 1000)

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store(clock: FakeClock) -> MemoryStore:
    return MemoryStore(clock=clock.seconds)


@pytest.fixture
def queue(memory_store: MemoryStore, clock: FakeClock) -> QueueManager:
    return QueueManager(
        memory_store,
        job_timeout_seconds=600,
        retention_seconds=86400,
        claim_ttl_seconds=7 * 86400,
        clock=clock.millis,
    )


# ---------------------------------------------------------------------------
# Scripted chat model
# ---------------------------------------------------------------------------


def tool_call(call_id: str, name: str, **arguments: Any) -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=json.dumps(arguments))


def assistant(content: str = "", calls: list[ToolCall] | None = None) -> AgentMessage:
    return AgentMessage(role="assistant", content=content, tool_calls=calls or [])


class ScriptedChatModel(ChatModel):
    """Replays a fixed list of assistant turns; empty replies once exhausted."""

    def __init__(self, turns: list[AgentMessage]) -> None:
        self.turns = list(turns)
        self.requests: list[list[AgentMessage]] = []

    async def complete(self, messages, tools):
        self.requests.append(list(messages))
        if not self.turns:
            return assistant("")
        return self.turns.pop(0)


class Scripts:
    """Namespace handed to tests so they can build scripted transcripts."""

    tool_call = staticmethod(tool_call)
    assistant = staticmethod(assistant)
    ChatModel = ScriptedChatModel


@pytest.fixture
def scripts() -> type[Scripts]:
    return Scripts


# ---------------------------------------------------------------------------
# Documents and collaborators
# ---------------------------------------------------------------------------


def make_document(post_id: str, subreddit: str = "startups", **overrides: Any) -> Document:
    data: dict[str, Any] = {
        "id": post_id,
        "subreddit": subreddit,
        "title": f"Post {post_id} about a real problem",
        "content": "We keep running into the same problem every single week and nothing fixes it.",
        "url": f"https://reddit.com/r/{subreddit}/comments/{post_id}/post_{post_id}/",
        "score": 12,
        "num_comments": 4,
    }
    data.update(overrides)
    return Document(**data)


@pytest.fixture
def document_factory():
    return make_document


@pytest.fixture
def hiring_document() -> Document:
    return make_document(
        "h1r3ng",
        subreddit="startups",
        title="How do you find engineers when nobody applies?",
        content=(
            "We are an 8-person SaaS startup and have been trying to hire a senior backend "
            "engineer for 3 months. We posted on every job board we know and got zero "
            "applications. Recruiters want 25% of first-year salary which we cannot justify."
        ),
        score=25,
        num_comments=15,
    )


class FakeSource(DocumentSource):
    def __init__(
        self,
        documents: dict[str, list[Document]] | None = None,
        errors: dict[str, list[Exception]] | None = None,
    ) -> None:
        self.documents = documents or {}
        self.errors = errors or {}
        self.calls: list[tuple[str, int]] = []

    async def fetch_documents(self, topic: str, limit: int) -> list[Document]:
        self.calls.append((topic, limit))
        pending = self.errors.get(topic)
        if pending:
            raise pending.pop(0)
        return self.documents.get(topic, [])[:limit]


class FakeRecordStore(RecordStore):
    def __init__(self) -> None:
        self.ideas: list[Idea] = []
        self.records: list[IdeaOut] = []
        self.subscribers: list[SubscriberOut] = []
        self.emailed: list[int] = []
        self.marked_sent = 0

    async def insert(self, ideas: list[Idea]) -> list[int]:
        ids = []
        for idea in ideas:
            self.ideas.append(idea)
            ids.append(len(self.ideas))
        return ids

    async def list_processed_source_ids(self) -> set[str]:
        return {
            post_id
            for idea in self.ideas
            for post_id in map(post_id_from_url, idea.sources)
            if post_id
        }

    async def list_new_ideas(self, limit: int) -> list[IdeaOut]:
        fresh = [r for r in self.records if r.is_new]
        return sorted(fresh, key=lambda r: r.score, reverse=True)[:limit]

    async def mark_ideas_sent(self) -> int:
        count = 0
        for i, record in enumerate(self.records):
            if record.is_new:
                self.records[i] = record.model_copy(update={"is_new": False})
                count += 1
        self.marked_sent += count
        return count

    async def list_subscribers(self) -> list[SubscriberOut]:
        return list(self.subscribers)

    async def mark_subscriber_emailed(self, subscriber_id: int) -> None:
        self.emailed.append(subscriber_id)


class FakeNotifier(Notifier):
    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.sent: list[tuple[str, list[DigestIdea], str]] = []

    async def send_digest(self, recipient, ideas, unsubscribe_token):
        if recipient in self.failing:
            raise DeliveryFailed(f"bounced: {recipient}")
        self.sent.append((recipient, ideas, unsubscribe_token))
        return f"msg-{len(self.sent)}"


@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def record_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


class Sleeper:
    """Stands in for asyncio.sleep and remembers every requested delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleeper() -> Sleeper:
    return Sleeper()


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client that talks directly to the FastAPI ASGI app."""
    transport = ASGITransport(app=app)  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
