"""Chat-model abstraction with tool calling.

One ChatModel interface, one adapter per provider, and one factory that
builds adapters from explicit per-stage configuration (token budget, step
budget, temperature). Nothing in the agents reads provider settings directly.

Providers supported:
  - openai (Chat Completions function calling)
  - anthropic (Messages API tool use)
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field

from painradar.core.config import settings
from painradar.modules.pipeline.cost_tracker import CostTracker

logger = structlog.get_logger()

# Default models per provider
DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-haiku-4-5-20251001",
}


# ---------------------------------------------------------------------------
# Transcript types
# ---------------------------------------------------------------------------


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: str = Field("{}", description="Raw JSON argument text as sent by the model")


class AgentMessage(BaseModel):
    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = None


# ---------------------------------------------------------------------------
# Stage configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StageConfig:
    """Explicit per-stage model configuration."""

    stage: str
    max_tokens: int
    step_multiplier: int = 3
    step_slack: int = 2
    temperature: float = 0.2
    provider: str = "openai"
    model: str = ""

    def max_steps(self, mandatory_calls: int) -> int:
        """Model turns allowed for an invocation with this many required tool calls."""
        return self.step_multiplier * max(mandatory_calls, 1) + self.step_slack

    @classmethod
    def from_settings(cls, stage: str) -> StageConfig:
        budgets = {
            "extractor": settings.extractor_max_tokens,
            "generator": settings.generator_max_tokens,
            "scorer": settings.scorer_max_tokens,
        }
        provider = settings.llm_provider.lower()
        return cls(
            stage=stage,
            max_tokens=budgets[stage],
            step_multiplier=settings.agent_step_multiplier,
            step_slack=settings.agent_step_slack,
            temperature=settings.llm_temperature,
            provider=provider,
            model=settings.llm_model or DEFAULT_MODELS.get(provider, ""),
        )


# ---------------------------------------------------------------------------
# Chat model interface
# ---------------------------------------------------------------------------


class ChatModel(ABC):
    """One assistant turn over a transcript, with tools available."""

    @abstractmethod
    async def complete(
        self,
        messages: list[AgentMessage],
        tools: list[dict[str, Any]],
    ) -> AgentMessage:
        ...


class OpenAIChatModel(ChatModel):
    def __init__(
        self,
        config: StageConfig,
        cost_tracker: CostTracker | None = None,
        client: Any = None,
    ) -> None:
        self.config = config
        self.cost_tracker = cost_tracker
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=settings.openai_api_key)
        return self._client

    @staticmethod
    def _to_wire(message: AgentMessage) -> dict[str, Any]:
        if message.role == "tool":
            return {
                "role": "tool",
                "tool_call_id": message.tool_call_id,
                "content": message.content,
            }
        wire: dict[str, Any] = {"role": message.role, "content": message.content}
        if message.tool_calls:
            wire["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in message.tool_calls
            ]
        return wire

    async def complete(
        self,
        messages: list[AgentMessage],
        tools: list[dict[str, Any]],
    ) -> AgentMessage:
        client = self._get_client()
        start = time.time()

        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": [self._to_wire(m) for m in messages],
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
        }
        if tools:
            kwargs["tools"] = [{"type": "function", "function": tool} for tool in tools]

        response = await client.chat.completions.create(**kwargs)

        duration_ms = int((time.time() - start) * 1000)
        usage = response.usage
        input_tokens = getattr(usage, "prompt_tokens", 0) or 0
        output_tokens = getattr(usage, "completion_tokens", 0) or 0
        if self.cost_tracker:
            self.cost_tracker.record(
                provider="openai",
                model=self.config.model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                stage=self.config.stage,
                duration_ms=duration_ms,
            )

        choice = response.choices[0].message
        return AgentMessage(
            role="assistant",
            content=choice.content or "",
            tool_calls=[
                ToolCall(id=tc.id, name=tc.function.name, arguments=tc.function.arguments or "{}")
                for tc in (choice.tool_calls or [])
            ],
        )


class AnthropicChatModel(ChatModel):
    def __init__(
        self,
        config: StageConfig,
        cost_tracker: CostTracker | None = None,
        client: Any = None,
    ) -> None:
        self.config = config
        self.cost_tracker = cost_tracker
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            from anthropic import AsyncAnthropic

            self._client = AsyncAnthropic(api_key=settings.anthropic_api_key)
        return self._client

    @staticmethod
    def _to_wire(messages: list[AgentMessage]) -> tuple[str, list[dict[str, Any]]]:
        """Split out the system prompt and fold tool results into user turns."""
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        wire: list[dict[str, Any]] = []

        for message in messages:
            if message.role == "system":
                continue
            if message.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message.content,
                }
                # Consecutive tool results share one user turn
                if wire and wire[-1]["role"] == "user" and isinstance(wire[-1]["content"], list):
                    wire[-1]["content"].append(block)
                else:
                    wire.append({"role": "user", "content": [block]})
                continue
            if message.role == "assistant" and message.tool_calls:
                blocks: list[dict[str, Any]] = []
                if message.content:
                    blocks.append({"type": "text", "text": message.content})
                for call in message.tool_calls:
                    blocks.append({
                        "type": "tool_use",
                        "id": call.id,
                        "name": call.name,
                        "input": json.loads(call.arguments or "{}"),
                    })
                wire.append({"role": "assistant", "content": blocks})
                continue
            if not message.content.strip():
                # The Messages API rejects empty turns; drop the silent reply
                continue
            if wire and wire[-1]["role"] == message.role:
                # Same-role neighbours left by a dropped turn share one turn
                previous = wire[-1]["content"]
                if isinstance(previous, str):
                    previous = [{"type": "text", "text": previous}]
                previous.append({"type": "text", "text": message.content})
                wire[-1]["content"] = previous
                continue
            wire.append({"role": message.role, "content": message.content})

        return system, wire

    async def complete(
        self,
        messages: list[AgentMessage],
        tools: list[dict[str, Any]],
    ) -> AgentMessage:
        client = self._get_client()
        start = time.time()
        system, wire = self._to_wire(messages)

        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "system": system,
            "messages": wire,
            "temperature": self.config.temperature,
        }
        if tools:
            kwargs["tools"] = [
                {
                    "name": tool["name"],
                    "description": tool["description"],
                    "input_schema": tool["parameters"],
                }
                for tool in tools
            ]

        response = await client.messages.create(**kwargs)

        duration_ms = int((time.time() - start) * 1000)
        usage = response.usage
        input_tokens = getattr(usage, "input_tokens", 0) or 0
        output_tokens = getattr(usage, "output_tokens", 0) or 0
        if self.cost_tracker:
            self.cost_tracker.record(
                provider="anthropic",
                model=self.config.model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                stage=self.config.stage,
                duration_ms=duration_ms,
            )

        text_parts: list[str] = []
        calls: list[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                calls.append(ToolCall(id=block.id, name=block.name, arguments=json.dumps(block.input)))

        return AgentMessage(role="assistant", content="".join(text_parts), tool_calls=calls)


class ChatModelFactory:
    """Builds provider adapters from a StageConfig."""

    def __init__(self, cost_tracker: CostTracker | None = None) -> None:
        self.cost_tracker = cost_tracker

    def create(self, config: StageConfig) -> ChatModel:
        provider = config.provider.lower()
        logger.info(
            "Chat model created",
            stage=config.stage,
            provider=provider,
            model=config.model,
            max_tokens=config.max_tokens,
        )
        if provider == "anthropic":
            return AnthropicChatModel(config, cost_tracker=self.cost_tracker)
        if provider == "openai":
            return OpenAIChatModel(config, cost_tracker=self.cost_tracker)
        raise ValueError(f"Unsupported provider: {config.provider}")
