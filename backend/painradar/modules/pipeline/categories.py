from __future__ import annotations

from painradar.modules.pipeline.heuristics import ScoringHeuristics, get_heuristics

GENERIC_CATEGORIES = {"general", "other", ""}


def infer_category(text: str, heuristics: ScoringHeuristics | None = None) -> str:
    """Map free text onto a category bucket by keyword, first bucket wins."""
    h = heuristics or get_heuristics()
    lowered = text.lower()
    for category, keywords in h.category_keywords.items():
        if any(keyword in lowered for keyword in keywords):
            return category
    return "other"


def is_generic_category(category: str) -> bool:
    return category.strip().lower() in GENERIC_CATEGORIES
