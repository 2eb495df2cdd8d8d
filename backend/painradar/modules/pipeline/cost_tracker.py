"""Token and spend accounting for one pipeline run.

Each chat-model turn reports its usage here, keyed by pipeline stage
(extractor, generator, scorer). The orchestrator logs ``summary()`` once the
run ends, so a single log line shows where the money went for a document.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import structlog

logger = structlog.get_logger()

# USD per 1M tokens as (input, output); model names match by prefix.
MODEL_PRICES: dict[str, tuple[float, float]] = {
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o": (2.50, 10.00),
    "gpt-4.1-nano": (0.10, 0.40),
    "gpt-4.1-mini": (0.40, 1.60),
    "gpt-4.1": (2.00, 8.00),
    "claude-haiku": (1.00, 5.00),
    "claude-sonnet": (3.00, 15.00),
    "claude-opus": (15.00, 75.00),
}

# Unknown models are billed at the most expensive mid-tier rate.
DEFAULT_PRICE = (3.00, 15.00)


def price_for(model: str) -> tuple[float, float]:
    prefix = max((p for p in MODEL_PRICES if model.startswith(p)), key=len, default=None)
    if prefix is None:
        logger.warning("No price for model", model=model)
        return DEFAULT_PRICE
    return MODEL_PRICES[prefix]


def turn_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    input_price, output_price = price_for(model)
    return (input_tokens * input_price + output_tokens * output_price) / 1_000_000


@dataclass
class StageUsage:
    """Running totals for one pipeline stage."""

    provider: str
    model: str
    turns: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    model_ms: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "model": self.model,
            "turns": self.turns,
            "tokens": self.input_tokens + self.output_tokens,
            "cost_usd": round(self.cost_usd, 4),
            "model_ms": self.model_ms,
        }


class CostTracker:
    def __init__(self) -> None:
        self.stages: dict[str, StageUsage] = {}
        self._started = time.monotonic()

    def record(
        self,
        provider: str,
        model: str,
        *,
        input_tokens: int = 0,
        output_tokens: int = 0,
        stage: str = "",
        duration_ms: int = 0,
    ) -> float:
        """Add one model turn to its stage and return the turn's cost."""
        usage = self.stages.setdefault(stage or "unknown", StageUsage(provider=provider, model=model))
        cost = turn_cost(model, input_tokens, output_tokens)
        usage.turns += 1
        usage.input_tokens += input_tokens
        usage.output_tokens += output_tokens
        usage.cost_usd += cost
        usage.model_ms += duration_ms

        logger.debug(
            "Model turn billed",
            stage=stage,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=round(cost, 6),
        )
        return cost

    @property
    def total_cost(self) -> float:
        return sum(u.cost_usd for u in self.stages.values())

    def summary(self) -> dict[str, Any]:
        costliest = max(self.stages, key=lambda s: self.stages[s].cost_usd, default=None)
        return {
            "turns": sum(u.turns for u in self.stages.values()),
            "tokens": sum(u.input_tokens + u.output_tokens for u in self.stages.values()),
            "cost_usd": round(self.total_cost, 4),
            "costliest_stage": costliest,
            "elapsed_seconds": round(time.monotonic() - self._started, 1),
            "stages": {name: u.as_dict() for name, u in self.stages.items()},
        }
