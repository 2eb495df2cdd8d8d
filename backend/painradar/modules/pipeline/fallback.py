"""Deterministic fallbacks used when an agent's synthesis is unrecoverable.

Builders work only from what is already on hand: the tool calls the agent
made, their results, and the pipeline state. No model calls.

  fallback_pain_points   PainPointBatch from analyze_pain_severity calls
                         (or from the documents themselves)
  fallback_ideas         IdeaBatch from market/competition calls
  fallback_breakdown     a complete, range-valid ScoreBreakdown for one idea
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

import structlog

from painradar.modules.pipeline.categories import infer_category, is_generic_category
from painradar.modules.pipeline.heuristics import ScoringHeuristics, get_heuristics
from painradar.modules.pipeline.llm import AgentMessage, ToolCall
from painradar.modules.pipeline.sanitizer import normalize_keys
from painradar.modules.pipeline.schemas import (
    Idea,
    IdeaBatch,
    IdeaDraft,
    PainPoint,
    PainPointBatch,
    ScoreBreakdown,
)
from painradar.modules.pipeline.tools import (
    COMPETITION,
    MARKET_SIZE,
    PAIN_SEVERITY,
    PainSeverityArgs,
    analyze_pain_severity,
)
from painradar.modules.pipeline.validation import GENERIC_AUDIENCE
from painradar.modules.sources.schemas import Document

logger = structlog.get_logger()

_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


# ---------------------------------------------------------------------------
# Transcript helpers
# ---------------------------------------------------------------------------


@dataclass
class ToolEvidence:
    """One tool call paired with its (parsed) result, if any."""

    name: str
    args: dict[str, Any]
    result: dict[str, Any] | None


def collect_evidence(transcript: list[AgentMessage]) -> list[ToolEvidence]:
    """Pair every tool call with its result, in call order."""
    results: dict[str, dict[str, Any]] = {}
    for message in transcript:
        if message.role == "tool" and message.tool_call_id:
            try:
                payload = json.loads(message.content)
            except json.JSONDecodeError:
                continue
            if isinstance(payload, dict) and "error" not in payload:
                results[message.tool_call_id] = payload

    evidence: list[ToolEvidence] = []
    for message in transcript:
        if message.role != "assistant":
            continue
        for call in message.tool_calls:
            evidence.append(
                ToolEvidence(name=call.name, args=_parse_args(call), result=results.get(call.id))
            )
    return evidence


def _parse_args(call: ToolCall) -> dict[str, Any]:
    try:
        args = json.loads(call.arguments or "{}")
    except json.JSONDecodeError:
        return {}
    return normalize_keys(args) if isinstance(args, dict) else {}


def by_tool(evidence: list[ToolEvidence], name: str) -> list[ToolEvidence]:
    return [e for e in evidence if e.name == name]


def _contains_word(text: str, keyword: str) -> bool:
    return re.search(rf"\b{re.escape(keyword)}\b", text, re.IGNORECASE) is not None


def _lower_first(text: str) -> str:
    return text[:1].lower() + text[1:] if text else text


# ---------------------------------------------------------------------------
# Pain points
# ---------------------------------------------------------------------------


def _problem_statement(document: Document) -> str | None:
    """First body sentence long enough to describe a problem."""
    for sentence in _SENTENCE_RE.split(document.content.strip()):
        sentence = sentence.strip()
        if len(sentence) >= 20:
            return sentence[:300]
    return None


def fallback_pain_points(
    transcript: list[AgentMessage],
    documents: list[Document],
    heuristics: ScoringHeuristics | None = None,
) -> PainPointBatch:
    h = heuristics or get_heuristics()
    pain_points: list[PainPoint] = []

    for item in by_tool(collect_evidence(transcript), PAIN_SEVERITY):
        description = item.args.get("pain_description", "")
        if not description:
            continue
        result = item.result
        if result is None:
            # Call was made but the result is missing; recompute it
            try:
                result = analyze_pain_severity(PainSeverityArgs.model_validate(item.args), h)
            except ValueError:
                continue
        pain_points.append(
            PainPoint(
                description=description,
                severity=result["recommendation"],
                category=infer_category(description, h),
                source=item.args.get("source_url", ""),
                examples=list(item.args.get("examples") or []),
                confidence=min(result["severity_score"] / 100, 1.0),
            )
        )

    if not pain_points:
        # No usable tool calls at all: score each document directly
        for document in documents:
            statement = _problem_statement(document)
            if statement is None:
                continue
            args = PainSeverityArgs(
                pain_description=statement,
                examples=[statement],
                context={
                    "upvotes": document.score,
                    "comments": document.num_comments,
                    "subreddit": document.subreddit,
                },
                source_url=document.url,
            )
            result = analyze_pain_severity(args, h)
            pain_points.append(
                PainPoint(
                    description=statement,
                    severity=result["recommendation"],
                    category=infer_category(f"{document.title} {statement}", h),
                    source=document.url,
                    examples=[statement],
                    confidence=0.5,
                )
            )

    if not pain_points:
        raise ValueError("no tool calls and no document text to build pain points from")

    logger.info("Fallback pain points built", count=len(pain_points))
    return PainPointBatch(pain_points=pain_points)


# ---------------------------------------------------------------------------
# Ideas
# ---------------------------------------------------------------------------


def _audience_for(category: str, proposed: str, h: ScoringHeuristics) -> str:
    if proposed and GENERIC_AUDIENCE not in proposed.lower():
        return proposed
    return h.category_audiences.get(category.lower(), h.default_audience)


def match_evidence(candidates: list[ToolEvidence], index: int, key: str, value: str) -> ToolEvidence | None:
    """Prefer a call whose argument ``key`` equals ``value``; else the index-th call."""
    wanted = value.strip().lower()
    for item in candidates:
        if str(item.args.get(key, "")).strip().lower() == wanted and wanted:
            return item
    return candidates[index] if index < len(candidates) else None


def _reasoning_of(item: ToolEvidence | None) -> str | None:
    if item is None or not item.result:
        return None
    return item.result.get("reasoning")


def fallback_ideas(
    transcript: list[AgentMessage],
    pain_points: list[PainPoint],
    heuristics: ScoringHeuristics | None = None,
) -> IdeaBatch:
    h = heuristics or get_heuristics()
    if not pain_points:
        raise ValueError("no pain points to build ideas from")

    evidence = collect_evidence(transcript)
    market_calls = by_tool(evidence, MARKET_SIZE)
    competition_calls = by_tool(evidence, COMPETITION)

    drafts: list[IdeaDraft] = []
    for index, pain in enumerate(pain_points):
        category = pain.category if not is_generic_category(pain.category) else "other"
        market = match_evidence(market_calls, index, "category", category)
        competition = competition_calls[index] if index < len(competition_calls) else None

        audience = _audience_for(
            category, str(market.args.get("target_audience", "")) if market else "", h
        )
        sources = [pain.source] if pain.source else []

        product_name = str(competition.args.get("product_name", "")).strip() if competition else ""
        if product_name:
            reasoning = (
                _reasoning_of(market)
                or _reasoning_of(competition)
                or "Built for teams facing this challenge."
            )
            drafts.append(
                IdeaDraft(
                    name=product_name,
                    pitch=f"{product_name} helps {_lower_first(audience)} overcome "
                    f"{pain.description.rstrip('.').lower()}. {reasoning}",
                    pain_point=pain.description,
                    target_audience=audience,
                    category=str(competition.args.get("category") or category),
                    sources=sources,
                    confidence=0.5,
                )
            )
            continue

        label = category.capitalize()
        short_audience = audience.split(",")[0].strip()
        drafts.append(
            IdeaDraft(
                name=f"{label} Solution for {short_audience}",
                pitch=f"Helps {_lower_first(audience)} solve {pain.description.rstrip('.').lower()}. "
                f"A {category} tool built to tackle this specific challenge.",
                pain_point=pain.description,
                target_audience=audience,
                category=category,
                sources=sources,
                confidence=0.4,
            )
        )

    logger.info("Fallback ideas built", count=len(drafts))
    return IdeaBatch(ideas=drafts)


# ---------------------------------------------------------------------------
# Score breakdown
# ---------------------------------------------------------------------------


def _scaled(result: dict[str, Any] | None, key: str, maximum: float) -> float | None:
    if not result or result.get(key) is None:
        return None
    return min(float(result[key]) * maximum / 100, maximum)


def _size_label(points: float) -> str:
    return "large" if points > 18 else "medium" if points > 12 else "small"


def _competition_label(points: float) -> str:
    return "low" if points > 14 else "moderate" if points > 10 else "high"


def fallback_breakdown(
    idea: Idea,
    *,
    severity: str = "medium",
    upvotes: int = 0,
    comments: int = 0,
    severity_result: dict[str, Any] | None = None,
    market_result: dict[str, Any] | None = None,
    competition_result: dict[str, Any] | None = None,
    heuristics: ScoringHeuristics | None = None,
) -> ScoreBreakdown:
    """Compute a range-valid breakdown from tool results and context alone."""
    h = heuristics or get_heuristics()
    category = idea.category.lower()

    pain_severity = _scaled(severity_result, "severity_score", 30)
    if pain_severity is None:
        pain_severity = h.severity_defaults.get(severity, h.severity_defaults["medium"])

    market_size = _scaled(market_result, "market_size_score", 25)
    if market_size is None:
        large = any(kw in category for kw in h.fallback_large_market_keywords)
        market_size = h.fallback_large_market_points if large else h.fallback_small_market_points

    competition = _scaled(competition_result, "competition_score", 20)
    if competition is None:
        crowded = any(kw in category for kw in h.fallback_crowded_keywords)
        competition = h.fallback_crowded_points if crowded else h.fallback_open_points

    build_text = f"{idea.category} {idea.name}"
    if any(_contains_word(build_text, kw) for kw in h.simple_build_keywords):
        feasibility = h.simple_build_points
    elif any(_contains_word(build_text, kw) for kw in h.complex_build_keywords):
        feasibility = h.complex_build_points
    else:
        feasibility = h.default_build_points

    engagement = h.engagement_floor
    for upvotes_above, comments_above, points in h.engagement_tiers:
        if upvotes > upvotes_above or comments > comments_above:
            engagement = points
            break

    components = {
        "pain_severity": round(pain_severity, 1),
        "market_size": round(market_size, 1),
        "competition": round(competition, 1),
        "feasibility": round(feasibility, 1),
        "engagement": round(engagement, 1),
    }
    total = round(sum(components.values()), 1)

    reasoning = (
        f"Pain severity is {severity} ({components['pain_severity']:.1f}/30). "
        f"Market size estimated at {_size_label(components['market_size'])} "
        f"({components['market_size']:.1f}/25). "
        f"Competition is {_competition_label(components['competition'])} "
        f"({components['competition']:.1f}/20)."
    )
    return ScoreBreakdown(**components, total=total, reasoning=reasoning)
