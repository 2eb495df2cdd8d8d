"""Evidence tools the stage agents call during phase 1.

Each tool is a pure function over pydantic-validated arguments. The Toolbox
exposes them to a chat model as JSON-schema function definitions and
dispatches the model's calls back to them. A malformed call never raises;
the agent gets an ``{"error": ...}`` payload and can retry.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError

from painradar.modules.pipeline.categories import infer_category
from painradar.modules.pipeline.heuristics import ScoringHeuristics, get_heuristics
from painradar.modules.pipeline.sanitizer import normalize_keys

logger = structlog.get_logger()

PAIN_SEVERITY = "analyze_pain_severity"
MARKET_SIZE = "estimate_market_size"
COMPETITION = "analyze_competition"


# ---------------------------------------------------------------------------
# Argument models
# ---------------------------------------------------------------------------


class EngagementContext(BaseModel):
    upvotes: int = Field(0, description="Number of upvotes on the source post")
    comments: int = Field(0, description="Number of comments on the source post")
    subreddit: str = Field("", description="Subreddit where the pain was expressed")


class PainSeverityArgs(BaseModel):
    pain_description: str = Field(..., description="Clear description of the underlying problem")
    examples: list[str] = Field(
        default_factory=list, description="Verbatim quotes from the post expressing the pain"
    )
    context: EngagementContext = Field(default_factory=EngagementContext)
    source_url: str = Field("", description="URL of the source post")


class ProblemScope(str, Enum):
    niche = "niche"
    vertical = "vertical"
    horizontal = "horizontal"


class MarketSizeArgs(BaseModel):
    target_audience: str = Field(..., description="Who would use this product")
    category: str = Field(..., description="Product category or industry")
    problem_scope: ProblemScope = Field(
        ...,
        description=(
            "niche: one specific industry, vertical: one industry broadly, "
            "horizontal: multiple industries"
        ),
    )


class CompetitionArgs(BaseModel):
    product_name: str = Field(..., description="Name of the product idea")
    category: str = Field(..., description="Product category")
    key_features: list[str] = Field(
        default_factory=list, description="Unique features or differentiators"
    )


# ---------------------------------------------------------------------------
# Tool functions
# ---------------------------------------------------------------------------


def _tier(value: int, tiers: list[tuple[int, int]], floor: int) -> int:
    for threshold, points in tiers:
        if value > threshold:
            return points
    return floor


def analyze_pain_severity(
    args: PainSeverityArgs, heuristics: ScoringHeuristics | None = None
) -> dict[str, Any]:
    """Score a pain point 0-100 from engagement and urgency language.

    The result echoes the pain point itself (description, severity, examples,
    source) so a transcript of these results can stand in for a synthesis.
    """
    h = heuristics or get_heuristics()
    ctx = args.context

    score = _tier(ctx.upvotes, h.upvote_tiers, h.upvote_floor)
    score += _tier(ctx.comments, h.comment_tiers, h.comment_floor)

    lowered = [example.lower() for example in args.examples]
    matched = [kw for kw in h.urgency_keywords if any(kw in ex for ex in lowered)]
    if matched:
        score += h.urgency_bonus
    score = min(score, 100)

    if score > h.severity_high_above:
        recommendation = "high"
    elif score > h.severity_medium_above:
        recommendation = "medium"
    else:
        recommendation = "low"

    language = "with urgent language indicators" if matched else "with moderate language"
    return {
        "severity_score": score,
        "recommendation": recommendation,
        "breakdown": {
            "engagement_score": min(ctx.upvotes + ctx.comments, 60),
            "has_urgent_language": bool(matched),
            "keywords": matched,
        },
        "reasoning": (
            f"Based on {ctx.upvotes} upvotes and {ctx.comments} comments, {language}, "
            f"this pain point is rated as {recommendation} severity."
        ),
        "description": args.pain_description,
        "severity": recommendation,
        "category": infer_category(args.pain_description, h),
        "examples": args.examples,
        "source": args.source_url,
        "confidence": 0.7 if matched else 0.6,
    }


def estimate_market_size(
    args: MarketSizeArgs, heuristics: ScoringHeuristics | None = None
) -> dict[str, Any]:
    """Score market size 0-100: scope first, then category and audience bonuses."""
    h = heuristics or get_heuristics()
    scope = args.problem_scope.value
    category = args.category.lower()
    audience = args.target_audience.lower()

    is_large_market = any(cat in category for cat in h.large_market_categories)
    is_broad_audience = any(term in audience for term in h.broad_audience_terms)

    score = h.scope_points.get(scope, 0)
    score += h.large_market_bonus if is_large_market else h.other_market_bonus
    score += h.broad_audience_bonus if is_broad_audience else h.narrow_audience_bonus
    score = min(score, 100)

    if scope == "horizontal" and is_large_market:
        estimate = "Large ($1B+ TAM)"
    elif scope == "vertical" or is_large_market:
        estimate = "Medium ($100M-$1B TAM)"
    else:
        estimate = "Small-Medium ($10M-$100M TAM)"

    return {
        "market_size_score": score,
        "estimate": estimate,
        "confidence": 0.8 if scope == "horizontal" else 0.6,
        "factors": {
            "scope": scope,
            "is_large_market_category": is_large_market,
            "is_broad_audience": is_broad_audience,
        },
        "reasoning": (
            f"{scope} problem scope in {args.category} category targeting "
            f"{args.target_audience} suggests {estimate.lower()} market opportunity."
        ),
        "category": args.category,
        "target_audience": args.target_audience,
    }


def analyze_competition(
    args: CompetitionArgs, heuristics: ScoringHeuristics | None = None
) -> dict[str, Any]:
    """Score 0-100 where higher means a less crowded market."""
    h = heuristics or get_heuristics()
    category = args.category.lower()
    is_oversaturated = any(cat in category for cat in h.oversaturated_categories)

    base = h.saturated_base if is_oversaturated else h.open_base
    bonus = min(len(args.key_features) * h.feature_bonus, h.feature_bonus_cap)
    score = min(base + bonus, 100)

    landscape = "crowded" if is_oversaturated else "moderate"
    if is_oversaturated:
        recommendation = (
            "High competition - strong differentiation required. Focus on unique features."
        )
    else:
        recommendation = "Moderate competition - good opportunity with clear positioning."

    positioning = "good" if score > 60 else "challenging"
    return {
        "competition_score": score,
        "landscape": landscape,
        "recommendation": recommendation,
        "analysis": {
            "is_oversaturated_category": is_oversaturated,
            "unique_feature_count": len(args.key_features),
            "uniqueness_bonus": bonus,
        },
        "reasoning": (
            f"{args.category} is a {landscape} market. With {len(args.key_features)} unique "
            f"features, this idea has {positioning} competitive positioning."
        ),
        "product_name": args.product_name,
        "category": args.category,
    }


# ---------------------------------------------------------------------------
# Tool registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    args_model: type[BaseModel]
    func: Callable[..., dict[str, Any]]

    def definition(self) -> dict[str, Any]:
        """Provider-neutral function definition (name, description, JSON schema)."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.args_model.model_json_schema(),
        }


TOOL_SPECS: dict[str, ToolSpec] = {
    PAIN_SEVERITY: ToolSpec(
        name=PAIN_SEVERITY,
        description=(
            "Analyze the severity of a pain point from engagement (upvotes, comments) "
            "and urgency language in the evidence. Returns a 0-100 severity score, "
            "a low/medium/high recommendation and reasoning."
        ),
        args_model=PainSeverityArgs,
        func=analyze_pain_severity,
    ),
    MARKET_SIZE: ToolSpec(
        name=MARKET_SIZE,
        description=(
            "Estimate the market size for a product idea from its target audience, "
            "category and problem scope. Returns a 0-100 score, a TAM range and confidence."
        ),
        args_model=MarketSizeArgs,
        func=estimate_market_size,
    ),
    COMPETITION: ToolSpec(
        name=COMPETITION,
        description=(
            "Analyze the competitive landscape for a product idea. Returns a 0-100 score "
            "where higher means less competition, plus landscape and recommendation."
        ),
        args_model=CompetitionArgs,
        func=analyze_competition,
    ),
}

EXTRACTOR_TOOLS = [PAIN_SEVERITY]
GENERATOR_TOOLS = [MARKET_SIZE, COMPETITION]
SCORER_TOOLS = [PAIN_SEVERITY, MARKET_SIZE, COMPETITION]


class Toolbox:
    """A named subset of evidence tools bound to one set of heuristics."""

    def __init__(self, names: list[str], heuristics: ScoringHeuristics | None = None) -> None:
        unknown = [name for name in names if name not in TOOL_SPECS]
        if unknown:
            raise ValueError(f"Unknown tools: {unknown}")
        self.specs = {name: TOOL_SPECS[name] for name in names}
        self.heuristics = heuristics or get_heuristics()

    def definitions(self) -> list[dict[str, Any]]:
        return [spec.definition() for spec in self.specs.values()]

    def parse_arguments(self, name: str, raw: str | dict[str, Any]) -> BaseModel:
        """Validate raw model-supplied arguments (JSON text or dict)."""
        spec = self.specs[name]
        data = json.loads(raw) if isinstance(raw, str) else raw
        return spec.args_model.model_validate(normalize_keys(data))

    def invoke(self, name: str, raw: str | dict[str, Any]) -> dict[str, Any]:
        if name not in self.specs:
            logger.warning("Tool call for unavailable tool", tool=name)
            return {"error": f"Unknown tool '{name}'. Available: {sorted(self.specs)}"}
        try:
            args = self.parse_arguments(name, raw)
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning("Tool call with invalid arguments", tool=name, error=str(e))
            return {"error": f"Invalid arguments for {name}: {e}"}
        return self.specs[name].func(args, self.heuristics)

