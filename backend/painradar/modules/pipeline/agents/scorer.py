"""Scorer agent: ideas -> ideas with a validated ScoreBreakdown."""

from __future__ import annotations

import json

import structlog

from painradar.modules.pipeline.agents.base import StageOutput, ToolAgent
from painradar.modules.pipeline.extraction import extract_structured
from painradar.modules.pipeline.fallback import (
    ToolEvidence,
    by_tool,
    collect_evidence,
    match_evidence,
    fallback_breakdown,
)
from painradar.modules.pipeline.llm import AgentMessage
from painradar.modules.pipeline.schemas import (
    Idea,
    PainPoint,
    ScoreBreakdown,
    ScoredIdea,
    ScoringBatch,
)
from painradar.modules.pipeline.tools import COMPETITION, MARKET_SIZE, PAIN_SEVERITY, SCORER_TOOLS
from painradar.modules.pipeline.validation import (
    TOTAL_TOLERANCE,
    log_result,
    validate_score_breakdown,
)
from painradar.modules.sources.schemas import Document

logger = structlog.get_logger()


def render_ideas(
    ideas: list[Idea], pain_points: list[PainPoint], documents: list[Document]
) -> str:
    pains = {p.description: p for p in pain_points}
    items = []
    for idea in ideas:
        pain = pains.get(idea.pain_point)
        doc = _document_for(idea, documents)
        items.append(
            {
                "idea_id": idea.id,
                "idea_name": idea.name,
                "pitch": idea.pitch,
                "category": idea.category,
                "target_audience": idea.target_audience,
                "pain_point": idea.pain_point,
                "severity": pain.severity.value if pain else "medium",
                "evidence": pain.examples if pain else [],
                "source_url": idea.sources[0] if idea.sources else "",
                "upvotes": doc.score if doc else 0,
                "comments": doc.num_comments if doc else 0,
            }
        )
    return f"Score these {len(items)} product ideas:\n\n{json.dumps(items, indent=2)}"


def _document_for(idea: Idea, documents: list[Document]) -> Document | None:
    for doc in documents:
        if doc.url in idea.sources:
            return doc
    return documents[0] if documents else None


class ScorerAgent(ToolAgent):
    agent_name = "Scorer"
    prompt_file = "scorer_system.txt"
    tool_names = SCORER_TOOLS

    def _fallback_for(
        self,
        idea: Idea,
        index: int,
        evidence: list[ToolEvidence],
        pain_points: list[PainPoint],
        documents: list[Document],
    ) -> ScoreBreakdown:
        pain = next((p for p in pain_points if p.description == idea.pain_point), None)
        doc = _document_for(idea, documents)

        severity_call = match_evidence(
            by_tool(evidence, PAIN_SEVERITY), index, "pain_description", idea.pain_point
        )
        market_call = match_evidence(
            by_tool(evidence, MARKET_SIZE), index, "category", idea.category
        )
        competition_call = match_evidence(
            by_tool(evidence, COMPETITION), index, "product_name", idea.name
        )
        return fallback_breakdown(
            idea,
            severity=pain.severity.value if pain else "medium",
            upvotes=doc.score if doc else 0,
            comments=doc.num_comments if doc else 0,
            severity_result=severity_call.result if severity_call else None,
            market_result=market_call.result if market_call else None,
            competition_result=competition_call.result if competition_call else None,
            heuristics=self.heuristics,
        )

    def _fallback_batch(
        self,
        transcript: list[AgentMessage],
        ideas: list[Idea],
        pain_points: list[PainPoint],
        documents: list[Document],
    ) -> ScoringBatch:
        evidence = collect_evidence(transcript)
        return ScoringBatch(
            scored_ideas=[
                ScoredIdea(
                    idea_id=idea.id,
                    idea_name=idea.name,
                    breakdown=self._fallback_for(idea, i, evidence, pain_points, documents),
                )
                for i, idea in enumerate(ideas)
            ]
        )

    @staticmethod
    def _synthesized_for(idea: Idea, scored: list[ScoredIdea]) -> ScoreBreakdown | None:
        for item in scored:
            if item.idea_id and item.idea_id == idea.id:
                return item.breakdown
        wanted = idea.name.strip().lower()
        for item in scored:
            if item.idea_name.strip().lower() == wanted:
                return item.breakdown
        return None

    async def score(
        self,
        ideas: list[Idea],
        pain_points: list[PainPoint],
        documents: list[Document],
    ) -> StageOutput:
        if not ideas:
            logger.info("Scorer: no ideas, skipping")
            return StageOutput()

        transcript = await self.run(
            render_ideas(ideas, pain_points, documents), mandatory_calls=3 * len(ideas)
        )
        result = extract_structured(
            transcript,
            ScoringBatch,
            "scored_ideas",
            stage="scorer",
            fallback=lambda t: self._fallback_batch(t, ideas, pain_points, documents),
        )
        evidence = collect_evidence(transcript)

        scored: list[Idea] = []
        replaced = 0
        for index, idea in enumerate(ideas):
            breakdown = self._synthesized_for(idea, result.data.scored_ideas)
            if breakdown is not None:
                validation = validate_score_breakdown(breakdown)
                if log_result("Score", idea.name, validation) is not None:
                    breakdown = None
            if breakdown is None:
                replaced += 1
                breakdown = self._fallback_for(idea, index, evidence, pain_points, documents)

            component_sum = breakdown.component_sum()
            if abs(breakdown.total - component_sum) > TOTAL_TOLERANCE:
                logger.warning(
                    "Score total drifts from components",
                    idea=idea.name,
                    total=breakdown.total,
                    component_sum=round(component_sum, 1),
                )
            scored.append(
                idea.model_copy(update={"score": breakdown.total, "score_breakdown": breakdown})
            )

        logger.info(
            "Scorer: ideas scored",
            source=result.source.value,
            scored=len(scored),
            fallback_breakdowns=replaced,
        )
        return StageOutput(items=scored, source=result.source)
