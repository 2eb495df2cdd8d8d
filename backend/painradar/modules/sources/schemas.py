from __future__ import annotations

import re

from pydantic import BaseModel, Field

_POST_ID_RE = re.compile(r"/comments/([a-z0-9]+)/", re.IGNORECASE)


class Comment(BaseModel):
    id: str
    author: str = ""
    body: str
    score: int = 0


class Document(BaseModel):
    """A single source post fed into the pipeline."""

    id: str = Field(..., description="Source-native post ID")
    subreddit: str
    title: str
    content: str = ""
    url: str
    score: int = Field(0, description="Upvotes")
    num_comments: int = 0
    created: float = Field(0.0, description="Epoch seconds")
    comments: list[Comment] = Field(default_factory=list)


def post_id_from_url(url: str) -> str | None:
    """Pull the Reddit post ID out of a permalink, if it has one."""
    match = _POST_ID_RE.search(url)
    return match.group(1) if match else None
