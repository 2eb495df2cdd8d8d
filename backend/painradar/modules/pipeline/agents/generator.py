"""Generator agent: pain points -> validated product ideas."""

from __future__ import annotations

import json

import structlog

from painradar.core.errors import ValidationRejected
from painradar.modules.pipeline.agents.base import StageOutput, ToolAgent
from painradar.modules.pipeline.categories import is_generic_category
from painradar.modules.pipeline.extraction import extract_structured
from painradar.modules.pipeline.fallback import fallback_ideas
from painradar.modules.pipeline.schemas import Idea, IdeaBatch, IdeaDraft, PainPoint
from painradar.modules.pipeline.tools import GENERATOR_TOOLS
from painradar.modules.pipeline.validation import log_result, validate_idea

logger = structlog.get_logger()


def render_pain_points(pain_points: list[PainPoint]) -> str:
    items = [
        {
            "description": p.description,
            "severity": p.severity.value,
            "category": p.category,
            "source": p.source,
            "examples": p.examples,
            "confidence": p.confidence,
        }
        for p in pain_points
    ]
    return f"Generate product ideas for these {len(items)} pain points:\n\n{json.dumps(items, indent=2)}"


class GeneratorAgent(ToolAgent):
    agent_name = "Generator"
    prompt_file = "generator_system.txt"
    tool_names = GENERATOR_TOOLS

    @staticmethod
    def _pain_for(draft: IdeaDraft, index: int, pain_points: list[PainPoint]) -> PainPoint:
        wanted = draft.pain_point.strip().lower()
        for pain in pain_points:
            if pain.description.strip().lower() == wanted:
                return pain
        return pain_points[min(index, len(pain_points) - 1)]

    def _to_idea(self, draft: IdeaDraft, index: int, pain_points: list[PainPoint]) -> Idea:
        pain = self._pain_for(draft, index, pain_points)
        category = draft.category
        if is_generic_category(category) and not is_generic_category(pain.category):
            category = pain.category
        return Idea(
            name=draft.name.strip(),
            pitch=draft.pitch.strip(),
            pain_point=pain.description,
            target_audience=draft.target_audience.strip(),
            category=category,
            sources=draft.sources or ([pain.source] if pain.source else []),
            confidence=draft.confidence,
        )

    async def generate(self, pain_points: list[PainPoint]) -> StageOutput:
        if not pain_points:
            logger.info("Generator: no pain points, skipping")
            return StageOutput()

        transcript = await self.run(
            render_pain_points(pain_points), mandatory_calls=2 * len(pain_points)
        )
        result = extract_structured(
            transcript,
            IdeaBatch,
            "ideas",
            stage="generator",
            fallback=lambda t: fallback_ideas(t, pain_points, self.heuristics),
        )

        kept: list[Idea] = []
        rejections: list[ValidationRejected] = []
        for index, draft in enumerate(result.data.ideas):
            idea = self._to_idea(draft, index, pain_points)
            validation = validate_idea(idea)
            rejection = log_result("Idea", idea.name, validation)
            if rejection is not None:
                rejections.append(rejection)
                continue
            kept.append(idea)

        logger.info(
            "Generator: ideas ready",
            source=result.source.value,
            kept=len(kept),
            rejected=len(rejections),
        )
        return StageOutput(items=kept, source=result.source, rejections=rejections)
