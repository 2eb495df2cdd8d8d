"""Artifact validators.

Errors drop the artifact from its stage's output and are reported as a
ValidationRejected in StageOutput.rejections; warnings keep it but are
logged. Validators never raise.
"""

from __future__ import annotations

import re

import structlog
from pydantic import BaseModel, Field

from painradar.core.errors import ValidationRejected
from painradar.modules.pipeline.categories import is_generic_category
from painradar.modules.pipeline.schemas import Idea, PainPoint, ScoreBreakdown

logger = structlog.get_logger()

MIN_DESCRIPTION_LENGTH = 20
MIN_PITCH_LENGTH = 30
MIN_CONFIDENCE = 0.6
TOTAL_TOLERANCE = 0.1

# Titles of recurring community threads, never real problem statements
TITLE_PATTERNS = [
    re.compile(r"^share your startup", re.IGNORECASE),
    re.compile(r"^hiring.*thread", re.IGNORECASE),
    re.compile(r"^\[.*\].*thread", re.IGNORECASE),
    re.compile(r"quarterly post$", re.IGNORECASE),
    re.compile(r"weekly thread$", re.IGNORECASE),
]

GENERIC_NAMES = {"general solution", "product", "app", "platform"}
GENERIC_AUDIENCE = "startups and small businesses"

COMPONENT_MAXIMA: dict[str, float] = {
    "pain_severity": 30,
    "market_size": 25,
    "competition": 20,
    "feasibility": 15,
    "engagement": 10,
}


class ValidationResult(BaseModel):
    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


def validate_pain_point(pain_point: PainPoint) -> ValidationResult:
    result = ValidationResult()
    description = pain_point.description.strip()

    if len(description) < MIN_DESCRIPTION_LENGTH:
        result.errors.append(
            f"Description too short ({len(description)} chars, need {MIN_DESCRIPTION_LENGTH})"
        )
    if any(pattern.search(description) for pattern in TITLE_PATTERNS):
        result.errors.append("Description looks like a post title, not a problem statement")

    if is_generic_category(pain_point.category):
        result.warnings.append(f"Generic category '{pain_point.category}'")
    if pain_point.confidence < MIN_CONFIDENCE:
        result.warnings.append(f"Low confidence ({pain_point.confidence:.2f})")
    if not pain_point.examples:
        result.warnings.append("No evidence quotes")

    result.is_valid = not result.errors
    return result


def validate_idea(idea: Idea) -> ValidationResult:
    result = ValidationResult()

    if idea.name.strip().lower() in GENERIC_NAMES:
        result.errors.append(f"Generic product name '{idea.name}'")

    if len(idea.pitch.strip()) < MIN_PITCH_LENGTH:
        result.warnings.append(f"Pitch too short ({len(idea.pitch.strip())} chars)")
    if GENERIC_AUDIENCE in idea.target_audience.lower():
        result.warnings.append("Target audience is too broad")

    result.is_valid = not result.errors
    return result


def validate_score_breakdown(breakdown: ScoreBreakdown) -> ValidationResult:
    result = ValidationResult()

    for component, maximum in COMPONENT_MAXIMA.items():
        value = getattr(breakdown, component)
        if not 0 <= value <= maximum:
            result.errors.append(f"{component}={value} outside [0, {maximum:g}]")

    if not 0 <= breakdown.total <= 100:
        result.errors.append(f"total={breakdown.total} outside [0, 100]")

    drift = abs(breakdown.total - breakdown.component_sum())
    if drift > TOTAL_TOLERANCE:
        result.warnings.append(
            f"total {breakdown.total} differs from component sum "
            f"{breakdown.component_sum():.1f} by {drift:.1f}"
        )

    result.is_valid = not result.errors
    return result


def log_result(kind: str, label: str, result: ValidationResult) -> ValidationRejected | None:
    """Log a validation outcome; a failed one comes back as the rejection to report."""
    if result.errors:
        logger.warning(f"{kind} rejected", item=label[:80], errors=result.errors)
        return ValidationRejected(kind, result.errors)
    if result.warnings:
        logger.info(f"{kind} validation warnings", item=label[:80], warnings=result.warnings)
    return None
