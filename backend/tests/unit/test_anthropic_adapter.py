"""Unit tests for the Anthropic chat adapter's message conversion."""

from __future__ import annotations

from types import SimpleNamespace

from painradar.modules.pipeline.cost_tracker import CostTracker
from painradar.modules.pipeline.llm import AgentMessage, AnthropicChatModel, StageConfig, ToolCall

REMINDER = "You have made 0 of 1 required tool calls. Call the tools before answering."


class FakeMessages:
    def __init__(self, response) -> None:
        self.response = response
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        return self.response


def _response(*blocks) -> SimpleNamespace:
    return SimpleNamespace(
        content=list(blocks),
        usage=SimpleNamespace(input_tokens=1200, output_tokens=300),
    )


def test_empty_reply_is_dropped_before_reminder() -> None:
    messages = [
        AgentMessage(role="system", content="You extract pain points."),
        AgentMessage(role="user", content="Analyze this post."),
        AgentMessage(role="assistant", content=""),
        AgentMessage(role="user", content=REMINDER),
    ]

    system, wire = AnthropicChatModel._to_wire(messages)

    assert system == "You extract pain points."
    assert wire == [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": "Analyze this post."},
                {"type": "text", "text": REMINDER},
            ],
        }
    ]


def test_reminder_after_tool_results_joins_the_user_turn() -> None:
    messages = [
        AgentMessage(role="user", content="Analyze this post."),
        AgentMessage(
            role="assistant",
            tool_calls=[ToolCall(id="t1", name="analyze_pain_severity", arguments='{"examples": []}')],
        ),
        AgentMessage(role="tool", tool_call_id="t1", content='{"severity_score": 40}'),
        AgentMessage(role="assistant", content="   "),
        AgentMessage(role="user", content=REMINDER),
    ]

    _, wire = AnthropicChatModel._to_wire(messages)

    assert [turn["role"] for turn in wire] == ["user", "assistant", "user"]
    assert wire[1]["content"] == [
        {"type": "tool_use", "id": "t1", "name": "analyze_pain_severity", "input": {"examples": []}}
    ]
    assert wire[2]["content"] == [
        {"type": "tool_result", "tool_use_id": "t1", "content": '{"severity_score": 40}'},
        {"type": "text", "text": REMINDER},
    ]


async def test_complete_parses_blocks_and_bills_the_stage() -> None:
    messages_api = FakeMessages(
        _response(
            SimpleNamespace(type="text", text="Checking severity."),
            SimpleNamespace(type="tool_use", id="t2", name="analyze_pain_severity", input={"examples": ["x"]}),
        )
    )
    tracker = CostTracker()
    model = AnthropicChatModel(
        StageConfig(stage="extractor", max_tokens=800, provider="anthropic", model="claude-haiku-4-5"),
        cost_tracker=tracker,
        client=SimpleNamespace(messages=messages_api),
    )

    reply = await model.complete(
        [AgentMessage(role="system", content="sys"), AgentMessage(role="user", content="go")],
        [{"name": "analyze_pain_severity", "description": "Scores severity", "parameters": {"type": "object"}}],
    )

    assert reply.content == "Checking severity."
    assert reply.tool_calls == [
        ToolCall(id="t2", name="analyze_pain_severity", arguments='{"examples": ["x"]}')
    ]
    sent = messages_api.calls[0]
    assert sent["system"] == "sys"
    assert sent["messages"] == [{"role": "user", "content": "go"}]
    assert sent["tools"][0]["input_schema"] == {"type": "object"}
    assert tracker.summary()["stages"]["extractor"]["tokens"] == 1500
