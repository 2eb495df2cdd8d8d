"""Pipeline data contracts.

Stage outputs (PainPoint, Idea, ScoreBreakdown) plus the collection shapes
each agent must emit as its synthesis JSON, and the PipelineState carried
between stages.
"""

from __future__ import annotations

import secrets
import time
from enum import Enum

from pydantic import BaseModel, Field

from painradar.modules.sources.schemas import Document


class Severity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class PipelineStep(str, Enum):
    initializing = "initializing"
    extracting = "extracting"
    generating = "generating"
    scoring = "scoring"
    complete = "complete"
    error = "error"


class ExtractionSource(str, Enum):
    """Which cascade strategy produced a stage's data."""

    agent_synthesis = "agent_synthesis"
    tool_results = "tool_results"
    fallback = "fallback"


# ---------------------------------------------------------------------------
# Stage artifacts
# ---------------------------------------------------------------------------


class PainPoint(BaseModel):
    description: str = Field(..., description="The underlying problem, not the post title")
    severity: Severity
    category: str = Field("other", description="hiring, marketing, technical, ...")
    source: str = Field("", description="URL of the document the evidence came from")
    examples: list[str] = Field(default_factory=list, description="Verbatim evidence quotes")
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    frequency: int = Field(1, ge=0)


class ScoreBreakdown(BaseModel):
    pain_severity: float = Field(..., description="0-30")
    market_size: float = Field(..., description="0-25")
    competition: float = Field(..., description="0-20, higher means less competition")
    feasibility: float = Field(..., description="0-15")
    engagement: float = Field(..., description="0-10")
    total: float = Field(..., description="Sum of the five components, 0-100")
    reasoning: str = ""

    def component_sum(self) -> float:
        return (
            self.pain_severity
            + self.market_size
            + self.competition
            + self.feasibility
            + self.engagement
        )


def new_idea_id() -> str:
    return f"idea_{secrets.token_hex(4)}"


class Idea(BaseModel):
    id: str = Field(default_factory=new_idea_id)
    name: str
    pitch: str
    pain_point: str = Field(..., description="Description of the pain point it solves")
    target_audience: str
    category: str = "other"
    sources: list[str] = Field(default_factory=list)
    score: float = 0.0
    score_breakdown: ScoreBreakdown | None = None
    confidence: float = Field(0.5, ge=0.0, le=1.0)


# ---------------------------------------------------------------------------
# Agent synthesis shapes
# ---------------------------------------------------------------------------


class PainPointBatch(BaseModel):
    pain_points: list[PainPoint]


class IdeaDraft(BaseModel):
    name: str
    pitch: str
    pain_point: str
    target_audience: str
    category: str = "other"
    sources: list[str] = Field(default_factory=list)
    confidence: float = Field(0.5, ge=0.0, le=1.0)


class IdeaBatch(BaseModel):
    ideas: list[IdeaDraft]


class ScoredIdea(BaseModel):
    idea_id: str = ""
    idea_name: str = ""
    breakdown: ScoreBreakdown


class ScoringBatch(BaseModel):
    scored_ideas: list[ScoredIdea]


# ---------------------------------------------------------------------------
# Pipeline state
# ---------------------------------------------------------------------------


class PipelineState(BaseModel):
    workflow_id: str
    current_step: PipelineStep = PipelineStep.initializing
    source_documents: list[Document] = Field(default_factory=list)
    pain_points: list[PainPoint] = Field(default_factory=list)
    ideas: list[Idea] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    start_time: float = Field(default_factory=time.time)


class ProcessingStats(BaseModel):
    documents_processed: int = 0
    pain_points_extracted: int = 0
    ideas_generated: int = 0
    average_score: float = 0.0
    processing_time_ms: int = 0


class PipelineResult(BaseModel):
    success: bool
    state: PipelineState
    stats: ProcessingStats
