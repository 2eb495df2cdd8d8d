"""Hand-tuned scoring constants.

Every keyword list and threshold used by the evidence tools, the category
inference and the deterministic fallback lives here, so product can review
and override them without touching code. Overrides are read from the JSON
file named by ``SCORING_HEURISTICS_PATH`` (any subset of fields).
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import BaseModel

from painradar.core.config import settings

logger = structlog.get_logger()


class ScoringHeuristics(BaseModel):
    # --- analyze_pain_severity ---
    urgency_keywords: list[str] = [
        "urgent", "critical", "losing money", "can't afford", "desperate",
        "costing", "expensive", "frustrated", "impossible", "wasting time",
    ]
    # (threshold, points) checked top-down; first match wins
    upvote_tiers: list[tuple[int, int]] = [(50, 30), (20, 20)]
    upvote_floor: int = 10
    comment_tiers: list[tuple[int, int]] = [(30, 30), (10, 20)]
    comment_floor: int = 10
    urgency_bonus: int = 40
    severity_high_above: int = 60
    severity_medium_above: int = 30

    # --- estimate_market_size ---
    scope_points: dict[str, int] = {"horizontal": 40, "vertical": 25, "niche": 15}
    large_market_categories: list[str] = [
        "hr", "recruiting", "hiring", "marketing", "finance",
        "accounting", "productivity", "sales", "crm", "analytics",
    ]
    large_market_bonus: int = 30
    other_market_bonus: int = 15
    broad_audience_terms: list[str] = [
        "businesses", "companies", "startups", "entrepreneurs", "teams",
    ]
    broad_audience_bonus: int = 30
    narrow_audience_bonus: int = 10

    # --- analyze_competition ---
    oversaturated_categories: list[str] = [
        "task manager", "note taking", "calendar", "todo list",
        "project management", "password manager",
    ]
    saturated_base: int = 30
    open_base: int = 70
    feature_bonus: int = 5
    feature_bonus_cap: int = 20

    # --- fallback score breakdown ---
    severity_defaults: dict[str, float] = {"high": 25, "medium": 15, "low": 8}
    fallback_large_market_keywords: list[str] = ["marketing", "sales", "productivity", "financial"]
    fallback_large_market_points: float = 18
    fallback_small_market_points: float = 10
    fallback_crowded_keywords: list[str] = ["task manager", "note taking", "calendar", "todo"]
    fallback_crowded_points: float = 6
    fallback_open_points: float = 14
    simple_build_keywords: list[str] = ["tool", "dashboard", "tracker", "calculator"]
    complex_build_keywords: list[str] = ["ai", "ml", "platform", "marketplace"]
    simple_build_points: float = 14
    complex_build_points: float = 7
    default_build_points: float = 10
    # (upvotes_above, comments_above, points) checked top-down
    engagement_tiers: list[tuple[int, int, float]] = [(50, 30, 9), (20, 10, 7), (5, 3, 5)]
    engagement_floor: float = 3

    # --- category inference (checked in order) ---
    category_keywords: dict[str, list[str]] = {
        "hiring": ["hire", "recruit", "talent", "co-founder"],
        "marketing": ["market", "visibility", "promote", "showcase", "channel", "feedback"],
        "technical": ["technical", "bug", "code"],
        "productivity": ["productivity", "time", "efficient"],
        "financial": ["money", "cost", "afford", "expensive"],
    }

    # --- fallback idea audiences ---
    category_audiences: dict[str, str] = {
        "hiring": "Founders of early-stage startups hiring their first employees",
        "marketing": "Bootstrapped founders trying to reach their first customers",
        "technical": "Solo developers and small engineering teams",
        "productivity": "Remote knowledge workers juggling multiple projects",
        "financial": "Freelancers and small business owners managing cash flow",
    }
    default_audience: str = "Independent founders and small teams"


_heuristics: ScoringHeuristics | None = None


def load_heuristics(path: str | None = None) -> ScoringHeuristics:
    """Build heuristics from defaults plus an optional JSON override file."""
    path = path if path is not None else settings.scoring_heuristics_path
    if not path:
        return ScoringHeuristics()

    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Scoring heuristics file not found: {file_path}")

    overrides = json.loads(file_path.read_text(encoding="utf-8"))
    logger.info("Loaded scoring heuristics overrides", path=str(file_path), keys=sorted(overrides))
    return ScoringHeuristics.model_validate(overrides)


def get_heuristics() -> ScoringHeuristics:
    global _heuristics
    if _heuristics is None:
        _heuristics = load_heuristics()
    return _heuristics
