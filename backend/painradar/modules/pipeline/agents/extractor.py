"""Extractor agent: source documents -> validated pain points."""

from __future__ import annotations

import json
import structlog

from painradar.core.errors import ValidationRejected
from painradar.modules.pipeline.agents.base import StageOutput, ToolAgent
from painradar.modules.pipeline.categories import infer_category, is_generic_category
from painradar.modules.pipeline.extraction import extract_structured
from painradar.modules.pipeline.fallback import fallback_pain_points
from painradar.modules.pipeline.schemas import PainPoint, PainPointBatch
from painradar.modules.pipeline.tools import EXTRACTOR_TOOLS, PAIN_SEVERITY
from painradar.modules.pipeline.validation import log_result, validate_pain_point
from painradar.modules.sources.schemas import Document

logger = structlog.get_logger()

MAX_CONTENT_CHARS = 3000
MAX_COMMENTS = 5


def render_documents(documents: list[Document]) -> str:
    posts = [
        {
            "id": doc.id,
            "subreddit": doc.subreddit,
            "title": doc.title,
            "content": doc.content[:MAX_CONTENT_CHARS],
            "url": doc.url,
            "upvotes": doc.score,
            "comments": doc.num_comments,
            "top_comments": [c.body for c in doc.comments[:MAX_COMMENTS]],
        }
        for doc in documents
    ]
    return f"Analyze these {len(posts)} Reddit posts:\n\n{json.dumps(posts, indent=2)}"


class ExtractorAgent(ToolAgent):
    agent_name = "Extractor"
    prompt_file = "extractor_system.txt"
    tool_names = EXTRACTOR_TOOLS

    def _resolve_source(self, pain: PainPoint, documents: list[Document]) -> str:
        urls = {doc.url for doc in documents}
        if pain.source in urls:
            return pain.source
        if len(documents) == 1:
            return documents[0].url
        # Match the evidence back to the post it was quoted from
        for doc in documents:
            text = f"{doc.title}\n{doc.content}".lower()
            if any(example.lower()[:60] in text for example in pain.examples if example):
                return doc.url
        return pain.source

    def _finalize(self, pain: PainPoint, documents: list[Document]) -> PainPoint:
        updates: dict = {"source": self._resolve_source(pain, documents)}
        if is_generic_category(pain.category):
            updates["category"] = infer_category(
                " ".join([pain.description, *pain.examples]), self.heuristics
            )
        return pain.model_copy(update=updates)

    async def extract(self, documents: list[Document]) -> StageOutput:
        if not documents:
            return StageOutput()

        transcript = await self.run(render_documents(documents), mandatory_calls=len(documents))
        result = extract_structured(
            transcript,
            PainPointBatch,
            "pain_points",
            stage="extractor",
            allow_tool_results=True,
            tool_names={PAIN_SEVERITY},
            fallback=lambda t: fallback_pain_points(t, documents, self.heuristics),
        )

        kept: list[PainPoint] = []
        seen: set[str] = set()
        rejections: list[ValidationRejected] = []
        for pain in result.data.pain_points:
            pain = self._finalize(pain, documents)
            key = pain.description.strip().lower()
            if key in seen:
                continue
            seen.add(key)

            validation = validate_pain_point(pain)
            rejection = log_result("Pain point", pain.description, validation)
            if rejection is not None:
                rejections.append(rejection)
                continue
            kept.append(pain)

        logger.info(
            "Extractor: pain points ready",
            source=result.source.value,
            kept=len(kept),
            rejected=len(rejections),
        )
        return StageOutput(items=kept, source=result.source, rejections=rejections)
