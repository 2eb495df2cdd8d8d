"""Unit tests for the sanitizer and the ordered extraction cascade."""

from __future__ import annotations

import json

import pytest

from painradar.core.errors import StageSynthesisUnrecoverable
from painradar.modules.pipeline.extraction import extract_structured
from painradar.modules.pipeline.fallback import fallback_pain_points
from painradar.modules.pipeline.llm import AgentMessage, ToolCall
from painradar.modules.pipeline.sanitizer import parse_json, sanitize_stage_output
from painradar.modules.pipeline.schemas import ExtractionSource, PainPointBatch, Severity
from painradar.modules.pipeline.tools import PAIN_SEVERITY, Toolbox

PAIN = {
    "description": "Small SaaS teams cannot hire engineers willing to join early",
    "severity": "medium",
    "category": "hiring",
    "source": "https://reddit.com/r/startups/comments/abc123/x/",
    "examples": ["zero applications in 3 months"],
    "confidence": 0.8,
}


def _transcript(*messages: AgentMessage) -> list[AgentMessage]:
    return [AgentMessage(role="system", content="sys"), AgentMessage(role="user", content="go"), *messages]


def _severity_exchange(call_id: str = "c1") -> list[AgentMessage]:
    args = {
        "pain_description": PAIN["description"],
        "examples": PAIN["examples"],
        "context": {"upvotes": 25, "comments": 15, "subreddit": "startups"},
        "source_url": PAIN["source"],
    }
    result = Toolbox([PAIN_SEVERITY]).invoke(PAIN_SEVERITY, args)
    return [
        AgentMessage(
            role="assistant",
            tool_calls=[ToolCall(id=call_id, name=PAIN_SEVERITY, arguments=json.dumps(args))],
        ),
        AgentMessage(role="tool", tool_call_id=call_id, name=PAIN_SEVERITY, content=json.dumps(result)),
    ]


# ---------------------------------------------------------------------------
# parse_json / sanitize_stage_output
# ---------------------------------------------------------------------------


def test_parse_json_plain_fenced_and_embedded() -> None:
    assert parse_json('{"a": 1}') == {"a": 1}
    assert parse_json('```json\n{"a": 2}\n```') == {"a": 2}
    assert parse_json('Here you go:\n```\n{"a": 3}\n```\nThanks') == {"a": 3}
    assert parse_json('Result: {"a": {"b": 4}} done') == {"a": {"b": 4}}


def test_parse_json_rejects_prose() -> None:
    with pytest.raises(ValueError):
        parse_json("I could not finish the analysis.")


def test_sanitizer_fixes_common_model_quirks() -> None:
    raw = [
        {
            "description": PAIN["description"],
            "severity": "HIGH",
            "category": "hiring",
            "examples": "only one quote",
            "confidence": 85,
            "sourceUrl": "ignored",
        }
    ]
    fixed = sanitize_stage_output(raw, "pain_points")

    item = fixed["pain_points"][0]
    assert item["severity"] == "high"
    assert item["confidence"] == pytest.approx(0.85)
    assert item["examples"] == ["only one quote"]
    assert "source_url" in item


def test_sanitizer_wraps_single_item_and_near_miss_key() -> None:
    assert sanitize_stage_output(PAIN, "pain_points") == {"pain_points": [PAIN]}
    assert sanitize_stage_output({"painPoints": [PAIN]}, "pain_points")["pain_points"][0][
        "description"
    ] == PAIN["description"]


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------


def test_clean_synthesis_wins() -> None:
    transcript = _transcript(
        *_severity_exchange(),
        AgentMessage(role="assistant", content=json.dumps({"pain_points": [PAIN]})),
    )
    result = extract_structured(transcript, PainPointBatch, "pain_points", stage="extractor")

    assert result.source == ExtractionSource.agent_synthesis
    assert result.strategy == "clean_synthesis"
    assert result.data.pain_points[0].severity == Severity.medium


def test_embedded_synthesis_recovers_json_next_to_tool_calls() -> None:
    """JSON that arrived in the same turn as a tool call is still found."""
    exchange = _severity_exchange()
    exchange[0] = exchange[0].model_copy(
        update={"content": f"Preliminary result:\n```json\n{json.dumps([PAIN])}\n```"}
    )
    transcript = _transcript(*exchange, AgentMessage(role="assistant", content="Done."))

    result = extract_structured(transcript, PainPointBatch, "pain_points", stage="extractor")

    assert result.source == ExtractionSource.agent_synthesis
    assert result.strategy == "embedded_synthesis"
    assert result.attempts and result.attempts[0].startswith("clean_synthesis")


def test_tool_results_reconstruct_pain_points() -> None:
    """With no usable synthesis, severity tool results stand in for it."""
    transcript = _transcript(
        *_severity_exchange(), AgentMessage(role="assistant", content="All done!")
    )
    result = extract_structured(
        transcript,
        PainPointBatch,
        "pain_points",
        stage="extractor",
        allow_tool_results=True,
        tool_names={PAIN_SEVERITY},
    )

    assert result.source == ExtractionSource.tool_results
    pain = result.data.pain_points[0]
    assert pain.description == PAIN["description"]
    assert pain.severity == Severity.medium
    assert pain.examples == PAIN["examples"]
    assert pain.source == PAIN["source"]


def test_tool_results_disabled_falls_through_to_fallback() -> None:
    transcript = _transcript(
        *_severity_exchange(), AgentMessage(role="assistant", content="All done!")
    )
    result = extract_structured(
        transcript,
        PainPointBatch,
        "pain_points",
        stage="extractor",
        fallback=lambda t: fallback_pain_points(t, []),
    )

    assert result.source == ExtractionSource.fallback
    assert result.data.pain_points[0].description == PAIN["description"]
    assert result.data.pain_points[0].category == "hiring"


def test_exhausted_cascade_raises() -> None:
    transcript = _transcript(AgentMessage(role="assistant", content="nothing useful"))

    with pytest.raises(StageSynthesisUnrecoverable) as exc_info:
        extract_structured(
            transcript,
            PainPointBatch,
            "pain_points",
            stage="extractor",
            allow_tool_results=True,
            fallback=lambda t: fallback_pain_points(t, []),
        )

    assert exc_info.value.stage == "extractor"
    assert len(exc_info.value.attempts) == 4
