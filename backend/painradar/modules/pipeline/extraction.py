"""Extraction cascade: structured data out of an agent transcript.

Strategies run in order until one yields data that validates against the
stage's schema:

  1. Clean synthesis      newest assistant message without tool calls
  2. Embedded synthesis   any assistant message, newest first, even if it
                          also carries tool calls
  3. Tool results         (opt-in) the tool-result messages wrapped as the
                          schema's collection
  4. Fallback             stage-specific deterministic builder

Strategies 1 and 2 are tagged ``agent_synthesis``, 3 ``tool_results`` and
4 ``fallback``. If every strategy fails the cascade raises
StageSynthesisUnrecoverable.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from painradar.core.errors import StageSynthesisUnrecoverable
from painradar.modules.pipeline.llm import AgentMessage
from painradar.modules.pipeline.sanitizer import parse_json, sanitize_stage_output
from painradar.modules.pipeline.schemas import ExtractionSource

logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)


class StrategyFailed(Exception):
    """A single strategy could not produce valid data."""


@dataclass
class ExtractionResult(Generic[T]):
    data: T
    source: ExtractionSource
    strategy: str
    attempts: list[str] = field(default_factory=list)


def _validate_content(content: str, schema: type[T], collection_key: str) -> T:
    try:
        parsed = parse_json(content)
        return schema.model_validate(sanitize_stage_output(parsed, collection_key))
    except (ValueError, ValidationError) as e:
        raise StrategyFailed(str(e).splitlines()[0]) from e


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class ExtractionStrategy(ABC, Generic[T]):
    name: str = "base"
    source: ExtractionSource = ExtractionSource.agent_synthesis

    @abstractmethod
    def extract(
        self,
        transcript: list[AgentMessage],
        schema: type[T],
        collection_key: str,
    ) -> T:
        """Return validated data or raise StrategyFailed."""
        ...


class CleanSynthesis(ExtractionStrategy[T]):
    name = "clean_synthesis"

    def extract(self, transcript, schema, collection_key):
        for message in reversed(transcript):
            if message.role == "assistant" and not message.tool_calls:
                return _validate_content(message.content, schema, collection_key)
        raise StrategyFailed("no assistant message without tool calls")


class EmbeddedSynthesis(ExtractionStrategy[T]):
    name = "embedded_synthesis"

    def extract(self, transcript, schema, collection_key):
        candidates = [
            m for m in reversed(transcript) if m.role == "assistant" and m.content.strip()
        ]
        if not candidates:
            raise StrategyFailed("no assistant content")
        for message in candidates:
            try:
                return _validate_content(message.content, schema, collection_key)
            except StrategyFailed:
                continue
        raise StrategyFailed(f"none of {len(candidates)} assistant messages validated")


class ToolResultReconstruction(ExtractionStrategy[T]):
    name = "tool_results"
    source = ExtractionSource.tool_results

    def __init__(self, tool_names: set[str] | None = None) -> None:
        self.tool_names = tool_names

    def extract(self, transcript, schema, collection_key):
        items: list[dict] = []
        for message in transcript:
            if message.role != "tool":
                continue
            if self.tool_names is not None and message.name not in self.tool_names:
                continue
            try:
                payload = json.loads(message.content)
            except json.JSONDecodeError:
                continue
            if isinstance(payload, dict) and "error" not in payload:
                items.append(payload)

        if not items:
            raise StrategyFailed("no usable tool results")
        try:
            return schema.model_validate(sanitize_stage_output({collection_key: items}, collection_key))
        except (ValueError, ValidationError) as e:
            raise StrategyFailed(str(e).splitlines()[0]) from e


class DeterministicFallback(ExtractionStrategy[T]):
    name = "fallback"
    source = ExtractionSource.fallback

    def __init__(self, builder: Callable[[list[AgentMessage]], T]) -> None:
        self.builder = builder

    def extract(self, transcript, schema, collection_key):
        try:
            data = self.builder(transcript)
        except (ValueError, ValidationError, KeyError) as e:
            raise StrategyFailed(f"fallback builder failed: {e}") from e
        if data is None:
            raise StrategyFailed("fallback builder produced nothing")
        return data


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------


def build_strategies(
    *,
    allow_tool_results: bool = False,
    tool_names: set[str] | None = None,
    fallback: Callable[[list[AgentMessage]], BaseModel] | None = None,
) -> list[ExtractionStrategy]:
    strategies: list[ExtractionStrategy] = [CleanSynthesis(), EmbeddedSynthesis()]
    if allow_tool_results:
        strategies.append(ToolResultReconstruction(tool_names))
    if fallback is not None:
        strategies.append(DeterministicFallback(fallback))
    return strategies


def extract_structured(
    transcript: list[AgentMessage],
    schema: type[T],
    collection_key: str,
    *,
    stage: str,
    allow_tool_results: bool = False,
    tool_names: set[str] | None = None,
    fallback: Callable[[list[AgentMessage]], T] | None = None,
) -> ExtractionResult[T]:
    """Run the cascade over one stage's transcript."""
    strategies = build_strategies(
        allow_tool_results=allow_tool_results,
        tool_names=tool_names,
        fallback=fallback,
    )
    attempts: list[str] = []

    for strategy in strategies:
        try:
            data = strategy.extract(transcript, schema, collection_key)
        except StrategyFailed as e:
            attempts.append(f"{strategy.name}: {e}")
            logger.debug("Extraction strategy failed", stage=stage, strategy=strategy.name, error=str(e))
            continue

        log = logger.info if strategy.source == ExtractionSource.agent_synthesis else logger.warning
        log(
            "Extraction succeeded",
            stage=stage,
            strategy=strategy.name,
            source=strategy.source.value,
            skipped=len(attempts),
        )
        return ExtractionResult(
            data=data,
            source=strategy.source,
            strategy=strategy.name,
            attempts=attempts,
        )

    logger.error("Extraction cascade exhausted", stage=stage, attempts=attempts)
    raise StageSynthesisUnrecoverable(stage, attempts)
