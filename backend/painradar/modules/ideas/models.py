from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from painradar.core.database import Base


class IdeaRecord(Base):
    __tablename__ = "ideas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Idea
    title: Mapped[str] = mapped_column(Text, nullable=False)
    pitch: Mapped[str] = mapped_column(Text, nullable=False)
    pain_point: Mapped[str] = mapped_column(Text, nullable=False)
    target_audience: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="other")

    # Scoring
    score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    score_breakdown: Mapped[Optional[dict]] = mapped_column(JSONB)
    confidence: Mapped[Optional[float]] = mapped_column(Float)

    # Provenance
    sources: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)

    # Digest status
    is_new: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_ideas_score", "score"),
        Index("ix_ideas_is_new", "is_new"),
        Index("ix_ideas_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<IdeaRecord(id={self.id}, title='{self.title}', score={self.score})>"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    topics: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    unsubscribe_token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_email_sent: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, email='{self.email}', active={self.is_active})>"
