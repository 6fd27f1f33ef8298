"""
Agent Loop - The turn-based runtime.

The loop is engine-agnostic: the engine decides how tools are presented
to the model and how its reply is parsed, the loop only moves messages:

1. Ask the engine for the system prompt and the request
2. Run the model turn through the engine
3. If the turn has tool calls: execute them, add the engine's result
   messages, goto 1 unless the engine marked the turn as finished
4. Otherwise the turn's content is the final response

The loop has a hard max_steps limit to prevent runaway execution.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from agentcalls.action_parser import ScreenContext
from agentcalls.config import AgentConfig, LoopConfig
from agentcalls.engine import PrepareRequestContext, ToolCallEngine
from agentcalls.factory import create_engine
from agentcalls.llm import LLMClient, LLMError
from agentcalls.tools import ToolRegistry
from agentcalls.types import FinishReason, Role, StreamChunkResult, StreamProcessingState

logger = logging.getLogger(__name__)


@dataclass
class LoopState:
    """Progress of one run."""
    max_steps: int
    step: int = 0
    finished: bool = False
    final_response: str | None = None
    error: str | None = None


@dataclass
class StepResult:
    """Result of a single step in the agent loop."""
    step_number: int
    action: str
    content: str | None = None
    reasoning: str = ""
    tool_calls_made: int = 0


@dataclass
class LoopResult:
    """Final result of running the agent loop."""
    success: bool
    response: str | None
    steps_taken: int
    step_results: list[StepResult] = field(default_factory=list)
    error: str | None = None
    stopped_reason: str = "completed"


class AgentLoop:
    """
    The turn-based agent execution loop.

    `screen` is only used with the GUI engine: it is called once per step
    and its result is handed to the engine's per-turn state.
    """

    def __init__(
        self,
        engine: ToolCallEngine,
        llm: LLMClient,
        tools: ToolRegistry,
        config: LoopConfig | None = None,
        on_chunk: Callable[[StreamChunkResult], None] | None = None,
        screen: Callable[[], ScreenContext | None] | None = None,
    ) -> None:
        """Initialize the agent loop."""
        self.engine = engine
        self.llm = llm
        self.tools = tools
        self.config = config or LoopConfig.from_env()
        self.on_chunk = on_chunk
        self.screen = screen
        self.messages: list[dict[str, Any]] = []
        self.state = LoopState(max_steps=self.config.max_steps)

    def run(self, user_input: str) -> LoopResult:
        """
        Run the agent loop for a single user request.

        Args:
            user_input: The user's message

        Returns:
            LoopResult with the agent's response
        """
        self.messages = []
        system_prompt = self.engine.prepare_prompt(self.config.system_prompt, self.tools.tools)
        if system_prompt:
            self.messages.append({"role": Role.SYSTEM.value, "content": system_prompt})
        self.messages.append({"role": Role.USER.value, "content": user_input})

        self.state = LoopState(max_steps=self.config.max_steps)
        step_results: list[StepResult] = []

        while not self.state.finished and self.state.step < self.state.max_steps:
            self.state.step += 1
            logger.info(f"Agent loop step {self.state.step}/{self.state.max_steps}")

            try:
                step_result = self._execute_step()
            except LLMError as e:
                logger.error(f"LLM error at step {self.state.step}: {e}")
                self.state.finished = True
                self.state.error = str(e)
                return LoopResult(
                    success=False,
                    response=None,
                    steps_taken=self.state.step,
                    step_results=step_results,
                    error=str(e),
                    stopped_reason="llm_error",
                )

            step_results.append(step_result)
            if step_result.action == "final_response":
                self.state.finished = True
                self.state.final_response = step_result.content

        if not self.state.finished:
            logger.warning(f"Agent loop hit max_steps limit ({self.state.max_steps})")
            return LoopResult(
                success=False,
                response=self.state.final_response,
                steps_taken=self.state.step,
                step_results=step_results,
                error="Max steps exceeded",
                stopped_reason="max_steps_exceeded",
            )

        return LoopResult(
            success=True,
            response=self.state.final_response,
            steps_taken=self.state.step,
            step_results=step_results,
            stopped_reason="completed",
        )

    def _init_state(self) -> StreamProcessingState:
        if self.screen is None:
            return self.engine.init_state()
        return self.engine.init_state(screen=self.screen())

    def _execute_step(self) -> StepResult:
        """Execute a single step of the agent loop."""
        context = PrepareRequestContext(
            model=self.llm.config.model,
            messages=list(self.messages),
            tools=self.tools.tools,
            temperature=self.llm.config.temperature,
        )
        request = self.engine.prepare_request(context)
        response = self.llm.run_turn(
            self.engine,
            request,
            on_chunk=self.on_chunk,
            state=self._init_state(),
        )
        self.messages.append(self.engine.build_historical_assistant_message(response))

        if not response.has_tool_calls:
            return StepResult(
                step_number=self.state.step,
                action="final_response",
                content=response.content,
                reasoning=response.reasoning_content,
            )

        results = [self.tools.execute(tool_call) for tool_call in response.tool_calls]
        self.messages.extend(self.engine.build_historical_tool_call_result_messages(results))

        # A GUI turn can act and finish at once; its content is then the answer.
        if response.finish_reason != FinishReason.TOOL_CALLS:
            return StepResult(
                step_number=self.state.step,
                action="final_response",
                content=response.content,
                reasoning=response.reasoning_content,
                tool_calls_made=len(results),
            )

        return StepResult(
            step_number=self.state.step,
            action="tool_calls",
            content=response.content,
            reasoning=response.reasoning_content,
            tool_calls_made=len(results),
        )

    @classmethod
    def create(
        cls,
        config: AgentConfig | None = None,
        tools: ToolRegistry | None = None,
    ) -> "AgentLoop":
        """
        Factory method to create an AgentLoop with all dependencies.

        The engine is chosen by `config.engine.kind`.
        """
        config = config or AgentConfig.from_env()

        kwargs: dict[str, Any] = {}
        if config.engine.kind == "gui":
            kwargs["factors"] = config.engine.gui_factors

        return cls(
            engine=create_engine(config.engine.kind, **kwargs),
            llm=LLMClient(config.llm),
            tools=tools or ToolRegistry(),
            config=config.loop,
        )
