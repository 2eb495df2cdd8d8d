from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class IdeaOut(BaseModel):
    id: int
    title: str
    pitch: str
    pain_point: str
    target_audience: str | None = None
    category: str
    score: float
    score_breakdown: dict | None = None
    sources: list[str] = []
    confidence: float | None = None
    is_new: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class IdeaListQuery(BaseModel):
    category: str | None = None
    min_score: float | None = Field(default=None, ge=0, le=100)
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class PaginatedIdeasResponse(BaseModel):
    items: list[IdeaOut]
    total: int
    page: int
    page_size: int
    pages: int


class SubscriberOut(BaseModel):
    id: int
    email: str
    topics: list[str] = []
    unsubscribe_token: str

    model_config = {"from_attributes": True}
