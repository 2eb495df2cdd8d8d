"""Pipeline Orchestrator.

Plain Python controller, no LLM calls of its own. Runs one batch of
documents through the stage agents:

    initializing -> extracting -> generating -> scoring -> complete
         |
         +-> error   (empty document set)

Each stage is a function of the current PipelineState that returns a
partial update. Updates are merged with one rule: ``errors`` accumulate,
every other field is replaced. A stage that raises contributes an error and
empty output; the run continues. After every stage the state is
checkpointed to the key-value store.
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from typing import Any, Awaitable, Callable

import structlog

from painradar.core.config import settings
from painradar.core.errors import JobTimeout
from painradar.modules.pipeline.agents.base import StageOutput
from painradar.modules.pipeline.agents.extractor import ExtractorAgent
from painradar.modules.pipeline.agents.generator import GeneratorAgent
from painradar.modules.pipeline.agents.scorer import ScorerAgent
from painradar.modules.pipeline.cost_tracker import CostTracker
from painradar.modules.pipeline.heuristics import ScoringHeuristics, get_heuristics
from painradar.modules.pipeline.llm import ChatModel, ChatModelFactory, StageConfig
from painradar.modules.pipeline.schemas import (
    PipelineResult,
    PipelineState,
    PipelineStep,
    ProcessingStats,
)
from painradar.modules.queue.store import KeyValueStore
from painradar.modules.sources.schemas import Document

logger = structlog.get_logger()

LARGE_BATCH_WARNING = 50

Stage = Callable[[PipelineState], Awaitable[dict[str, Any]]]


def new_workflow_id() -> str:
    return f"workflow-{int(time.time() * 1000)}"


def checkpoint_key(workflow_id: str) -> str:
    return f"pipeline:{workflow_id}"


def merge_state(state: PipelineState, update: dict[str, Any]) -> PipelineState:
    """Apply a stage update: errors append, everything else replaces."""
    update = dict(update)
    errors = update.pop("errors", [])
    return state.model_copy(update={**update, "errors": [*state.errors, *errors]})


class PipelineOrchestrator:
    """Sequences Supervisor, Extractor, Generator and Scorer over one batch."""

    agent_name = "Orchestrator"

    def __init__(
        self,
        chat_factory: ChatModelFactory | None = None,
        *,
        chat_models: dict[str, ChatModel] | None = None,
        store: KeyValueStore | None = None,
        heuristics: ScoringHeuristics | None = None,
        cost_tracker: CostTracker | None = None,
        timeout_seconds: float | None = None,
        checkpoint_ttl_seconds: int | None = None,
    ) -> None:
        self.cost_tracker = cost_tracker or CostTracker()
        self.chat_factory = chat_factory or ChatModelFactory(self.cost_tracker)
        self.chat_models = chat_models or {}
        self.store = store
        self.heuristics = heuristics or get_heuristics()
        self.timeout_seconds = timeout_seconds or settings.pipeline_timeout_seconds
        self.checkpoint_ttl_seconds = checkpoint_ttl_seconds or settings.checkpoint_ttl_seconds

        # Agents (lazy-initialized)
        self._extractor: ExtractorAgent | None = None
        self._generator: GeneratorAgent | None = None
        self._scorer: ScorerAgent | None = None

    # ------------------------------------------------------------------
    # Lazy agent initialization
    # ------------------------------------------------------------------

    def _model_for(self, config: StageConfig) -> ChatModel:
        if config.stage in self.chat_models:
            return self.chat_models[config.stage]
        return self.chat_factory.create(config)

    def _agent(self, cls, stage: str):
        config = StageConfig.from_settings(stage)
        return cls(self._model_for(config), config, self.heuristics)

    def _get_extractor(self) -> ExtractorAgent:
        if self._extractor is None:
            self._extractor = self._agent(ExtractorAgent, "extractor")
        return self._extractor

    def _get_generator(self) -> GeneratorAgent:
        if self._generator is None:
            self._generator = self._agent(GeneratorAgent, "generator")
        return self._generator

    def _get_scorer(self) -> ScorerAgent:
        if self._scorer is None:
            self._scorer = self._agent(ScorerAgent, "scorer")
        return self._scorer

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def supervise(self, state: PipelineState) -> dict[str, Any]:
        """Validate the input batch and log what is about to be processed."""
        documents = state.source_documents
        if not documents:
            return {"current_step": PipelineStep.error, "errors": ["No source documents to process"]}

        errors: list[str] = []
        valid: list[Document] = []
        for doc in documents:
            problems = []
            if not doc.id:
                problems.append("missing id")
            if not doc.title.strip():
                problems.append("empty title")
            if not doc.subreddit:
                problems.append("missing subreddit")
            if problems:
                errors.append(f"Invalid document {doc.id or '?'}: {', '.join(problems)}")
            else:
                valid.append(doc)

        if len(documents) > LARGE_BATCH_WARNING:
            logger.warning("Supervisor: large batch", documents=len(documents))

        logger.info(
            "Supervisor: batch accepted",
            documents=len(valid),
            rejected=len(documents) - len(valid),
            subreddits=dict(Counter(doc.subreddit for doc in valid)),
            with_content=sum(1 for doc in valid if doc.content.strip()),
            with_comments=sum(1 for doc in valid if doc.comments or doc.num_comments),
            avg_content_chars=(
                int(sum(len(doc.content) for doc in valid) / len(valid)) if valid else 0
            ),
        )

        if not valid:
            errors.append("No valid source documents to process")
            return {"current_step": PipelineStep.error, "source_documents": [], "errors": errors}
        return {"source_documents": valid, "errors": errors}

    @staticmethod
    def _report_rejections(stage: str, output: StageOutput) -> None:
        if output.rejections:
            logger.info(
                "Orchestrator: artifacts rejected",
                stage=stage,
                rejections=[str(r) for r in output.rejections],
            )

    async def extract(self, state: PipelineState) -> dict[str, Any]:
        output = await self._get_extractor().extract(state.source_documents)
        self._report_rejections("extracting", output)
        return {"pain_points": output.items}

    async def generate(self, state: PipelineState) -> dict[str, Any]:
        output = await self._get_generator().generate(state.pain_points)
        self._report_rejections("generating", output)
        return {"ideas": output.items}

    async def score(self, state: PipelineState) -> dict[str, Any]:
        output = await self._get_scorer().score(
            state.ideas, state.pain_points, state.source_documents
        )
        return {"ideas": output.items}

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    async def _checkpoint(self, state: PipelineState) -> None:
        if self.store is None:
            return
        await self.store.set(
            checkpoint_key(state.workflow_id),
            state.model_dump_json(),
            ex=self.checkpoint_ttl_seconds,
        )

    async def _run_stage(
        self,
        state: PipelineState,
        step: PipelineStep,
        stage: Stage,
        empty: dict[str, Any],
    ) -> PipelineState:
        state = state.model_copy(update={"current_step": step})
        start = time.time()
        try:
            update = await stage(state)
        except Exception as e:
            logger.error(
                "Orchestrator: stage failed", stage=step.value, error=str(e), exc_info=True
            )
            update = {**empty, "errors": [f"{step.value} failed: {e}"]}

        state = merge_state(state, update)
        logger.info(
            "Orchestrator: stage complete",
            stage=step.value,
            pain_points=len(state.pain_points),
            ideas=len(state.ideas),
            errors=len(state.errors),
            duration_ms=int((time.time() - start) * 1000),
        )
        await self._checkpoint(state)
        return state

    async def _run_stages(self, state: PipelineState) -> PipelineState:
        state = merge_state(state, await self.supervise(state))
        await self._checkpoint(state)
        if state.current_step == PipelineStep.error:
            logger.error("Orchestrator: nothing to process", errors=state.errors)
            return state

        stages: list[tuple[PipelineStep, Stage, dict[str, Any]]] = [
            (PipelineStep.extracting, self.extract, {"pain_points": []}),
            (PipelineStep.generating, self.generate, {"ideas": []}),
            (PipelineStep.scoring, self.score, {"ideas": []}),
        ]
        for step, stage, empty in stages:
            state = await self._run_stage(state, step, stage, empty)

        state = state.model_copy(update={"current_step": PipelineStep.complete})
        await self._checkpoint(state)
        return state

    async def run(
        self, documents: list[Document], workflow_id: str | None = None
    ) -> PipelineResult:
        """Process one batch of documents end to end.

        Raises JobTimeout when the whole run exceeds the wall-clock budget.
        """
        state = PipelineState(
            workflow_id=workflow_id or new_workflow_id(),
            source_documents=documents,
        )
        logger.info(
            "Orchestrator: run started",
            workflow_id=state.workflow_id,
            documents=len(documents),
        )

        try:
            state = await asyncio.wait_for(self._run_stages(state), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(
                "Orchestrator: run timed out",
                workflow_id=state.workflow_id,
                timeout_seconds=self.timeout_seconds,
            )
            raise JobTimeout(
                f"Pipeline exceeded {self.timeout_seconds:.0f}s budget"
            ) from None

        scores = [idea.score for idea in state.ideas if idea.score_breakdown is not None]
        stats = ProcessingStats(
            documents_processed=len(state.source_documents),
            pain_points_extracted=len(state.pain_points),
            ideas_generated=len(state.ideas),
            average_score=round(sum(scores) / len(scores), 1) if scores else 0.0,
            processing_time_ms=int((time.time() - state.start_time) * 1000),
        )
        logger.info(
            "Orchestrator: run finished",
            workflow_id=state.workflow_id,
            step=state.current_step.value,
            errors=len(state.errors),
            **stats.model_dump(),
        )
        logger.info("Pipeline cost", **self.cost_tracker.summary())

        return PipelineResult(success=not state.errors, state=state, stats=stats)
