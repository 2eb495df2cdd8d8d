"""Unit tests for per-stage token and cost accounting."""

from __future__ import annotations

import pytest

from painradar.modules.pipeline.cost_tracker import DEFAULT_PRICE, CostTracker, price_for


def test_longest_prefix_wins() -> None:
    assert price_for("gpt-4o-mini-2024-07-18") == (0.15, 0.60)
    assert price_for("gpt-4o-2024-08-06") == (2.50, 10.00)
    assert price_for("claude-sonnet-4-5-20250929") == (3.00, 15.00)


def test_unknown_model_uses_default_price() -> None:
    assert price_for("mystery-model") == DEFAULT_PRICE


def test_usage_accumulates_per_stage() -> None:
    tracker = CostTracker()

    first = tracker.record("openai", "gpt-4o-mini", input_tokens=1_000_000, stage="extractor", duration_ms=300)
    tracker.record("openai", "gpt-4o-mini", output_tokens=1_000_000, stage="extractor", duration_ms=200)
    tracker.record("anthropic", "claude-sonnet-4", input_tokens=1_000_000, stage="scorer")

    assert first == pytest.approx(0.15)
    summary = tracker.summary()
    assert summary["turns"] == 3
    assert summary["tokens"] == 3_000_000
    assert summary["cost_usd"] == pytest.approx(3.75)
    assert summary["costliest_stage"] == "scorer"
    assert summary["stages"]["extractor"] == {
        "provider": "openai",
        "model": "gpt-4o-mini",
        "turns": 2,
        "tokens": 2_000_000,
        "cost_usd": 0.75,
        "model_ms": 500,
    }


def test_empty_summary() -> None:
    summary = CostTracker().summary()
    assert summary["turns"] == 0
    assert summary["costliest_stage"] is None
    assert summary["stages"] == {}
