"""ToolAgent: shared tool-calling loop for the stage agents.

Provides:
  - Prompt loading from the prompts/ directory
  - A bounded tool-calling loop (step budget from StageConfig)
  - Tool dispatch through a Toolbox
  - One reminder turn when the model tries to synthesize before its
    mandatory tool calls are done
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from painradar.core.errors import ValidationRejected
from painradar.modules.pipeline.heuristics import ScoringHeuristics, get_heuristics
from painradar.modules.pipeline.llm import AgentMessage, ChatModel, StageConfig
from painradar.modules.pipeline.schemas import ExtractionSource
from painradar.modules.pipeline.tools import Toolbox

logger = structlog.get_logger()

# Directory where prompt templates live
_PROMPTS_DIR = Path(__file__).parent / "prompts"


@dataclass
class StageOutput:
    """Items a stage produced, and where the data came from."""

    items: list = field(default_factory=list)
    source: ExtractionSource | None = None
    rejections: list[ValidationRejected] = field(default_factory=list)


class ToolAgent:
    """Base class for all stage agents."""

    agent_name: str = "base"
    prompt_file: str = ""
    tool_names: list[str] = []

    def __init__(
        self,
        chat_model: ChatModel,
        config: StageConfig,
        heuristics: ScoringHeuristics | None = None,
    ) -> None:
        self.chat_model = chat_model
        self.config = config
        self.heuristics = heuristics or get_heuristics()
        self.toolbox = Toolbox(self.tool_names, self.heuristics)
        self.system_prompt = self.load_prompt(self.prompt_file) if self.prompt_file else ""

    # ------------------------------------------------------------------
    # Prompt loading
    # ------------------------------------------------------------------

    @staticmethod
    def load_prompt(filename: str) -> str:
        """Load a prompt template from the prompts/ directory."""
        path = _PROMPTS_DIR / filename
        if not path.exists():
            raise FileNotFoundError(f"Prompt file not found: {path}")
        return path.read_text(encoding="utf-8").strip()

    # ------------------------------------------------------------------
    # Tool loop
    # ------------------------------------------------------------------

    async def run(self, user_content: str, mandatory_calls: int) -> list[AgentMessage]:
        """Drive the model until it stops calling tools or the budget runs out.

        Returns the full transcript, including system and user messages.
        """
        transcript = [
            AgentMessage(role="system", content=self.system_prompt),
            AgentMessage(
                role="user",
                content=f"{user_content}\n\nRequired tool calls before synthesis: {mandatory_calls}",
            ),
        ]
        max_steps = self.config.max_steps(mandatory_calls)
        tools = self.toolbox.definitions()
        calls_made = 0
        reminded = False
        start = time.time()

        for step in range(1, max_steps + 1):
            reply = await self.chat_model.complete(transcript, tools)
            transcript.append(reply)

            if not reply.tool_calls:
                if calls_made < mandatory_calls and not reminded and step < max_steps:
                    reminded = True
                    logger.warning(
                        f"{self.agent_name}: synthesis before evidence complete",
                        calls_made=calls_made,
                        required=mandatory_calls,
                    )
                    transcript.append(
                        AgentMessage(
                            role="user",
                            content=(
                                f"You have made {calls_made} of {mandatory_calls} required tool "
                                "calls. Finish the remaining calls, then reply with the JSON only."
                            ),
                        )
                    )
                    continue
                break

            for call in reply.tool_calls:
                result = self.toolbox.invoke(call.name, call.arguments)
                if "error" not in result:
                    calls_made += 1
                transcript.append(
                    AgentMessage(
                        role="tool",
                        tool_call_id=call.id,
                        name=call.name,
                        content=json.dumps(result),
                    )
                )
        else:
            logger.warning(
                f"{self.agent_name}: step budget exhausted",
                max_steps=max_steps,
                calls_made=calls_made,
            )

        logger.info(
            f"{self.agent_name} finished",
            tool_calls=calls_made,
            required=mandatory_calls,
            messages=len(transcript),
            duration_ms=int((time.time() - start) * 1000),
        )
        return transcript
