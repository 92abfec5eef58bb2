from __future__ import annotations

import inspect
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from ghostwriter.policy.policy import SafetyGate
from ghostwriter.protocol import EventType, create_event
from ghostwriter.runtime.capabilities.registry import ToolRegistry
from ghostwriter.runtime.llm.client import LLMClient
from ghostwriter.runtime.prompts.system_prompt import build_project_context, build_system_prompt
from ghostwriter.runtime.tools.registry import ConfirmAction, ToolContext
from ghostwriter.runtime.types import Message, ToolOutcome

logger = logging.getLogger(__name__)

DEFAULT_MAX_LOOPS = 8

EventSink = Callable[[dict], Any]


class LoopPhase(str, Enum):
    IDLE = "idle"
    CALLING_MODEL = "calling_model"
    DISPATCHING_TOOLS = "dispatching_tools"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class AgentConfig:
    """
    Policy for an agent, shared by any number of Agent instances.

    allow_delegated lets the agent call capability-server tools that are not
    named in available_tools.
    """

    type: str
    name: str
    system_prompt: str
    available_tools: Tuple[str, ...]
    max_loops: Optional[int] = None
    allow_delegated: bool = False


@dataclass
class AgentState:
    id: str
    config: AgentConfig
    messages: List[Message] = field(default_factory=list)
    is_running: bool = False


@dataclass(frozen=True)
class LoopLimitExceeded:
    """
    Non-fatal signal: the run stopped because it used all of its model calls.
    """

    max_loops: int

    def __str__(self) -> str:
        return f"Reached the tool loop limit ({self.max_loops}); the task may be incomplete."


@dataclass(frozen=True)
class AgentRunResult:
    text: str
    iterations: int
    limit: Optional[LoopLimitExceeded] = None

    @property
    def loop_limit_reached(self) -> bool:
        return self.limit is not None


class Agent:
    def __init__(
        self,
        config: AgentConfig,
        *,
        llm: LLMClient,
        registry: ToolRegistry,
        gate: SafetyGate,
        working_directory: str,
        confirm_action: Optional[ConfirmAction] = None,
        default_max_loops: int = DEFAULT_MAX_LOOPS,
        project_context: Optional[str] = None,
        emit: Optional[EventSink] = None,
    ):
        self._state = AgentState(id=f"{config.type}_{uuid.uuid4().hex[:8]}", config=config)
        self.llm = llm
        self.registry = registry
        self.gate = gate
        self.working_directory = working_directory
        self.confirm_action = confirm_action
        self.default_max_loops = default_max_loops
        self._project_context = project_context
        self._emit_cb = emit
        self.phase = LoopPhase.IDLE

    @property
    def id(self) -> str:
        return self._state.id

    @property
    def name(self) -> str:
        return self._state.config.name

    @property
    def config(self) -> AgentConfig:
        return self._state.config

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    @property
    def messages(self) -> List[Message]:
        return list(self._state.messages)

    @property
    def max_loops(self) -> int:
        return max(1, self._state.config.max_loops or self.default_max_loops)

    def add_message(self, message: Message) -> None:
        self._state.messages.append(message)

    def clear_messages(self) -> None:
        self._state.messages.clear()

    def set_project_context(self, text: Optional[str]) -> None:
        self._project_context = text

    def _tool_context(self) -> ToolContext:
        cfg = self._state.config
        return ToolContext(
            working_directory=self.working_directory,
            gate=self.gate,
            confirm_action=self.confirm_action,
            allowed_tools=frozenset(cfg.available_tools),
            allow_delegated=cfg.allow_delegated,
            agent_name=cfg.name,
        )

    def _outbound(self) -> List[Message]:
        system = build_system_prompt(
            agent_prompt=self._state.config.system_prompt,
            capability_instructions=self.registry.system_instructions(),
            working_directory=self.working_directory,
        )
        out = [Message.system(system)]
        if self._project_context:
            out.append(Message.system(build_project_context(self._project_context)))
        return out + self._state.messages

    async def _emit(self, event: str, payload: dict) -> None:
        if self._emit_cb is None:
            return
        res = self._emit_cb(create_event(event, {"agentId": self.id, "agentName": self.name, **payload}))
        if inspect.isawaitable(res):
            await res

    async def run(self, user_input: str) -> AgentRunResult:
        """
        Drive model calls and tool rounds until a turn has no tool calls or the loop cap is hit.

        Provider errors propagate; history keeps everything appended before the failure.
        """
        if self._state.is_running:
            raise RuntimeError(f"Agent {self.name} is already running")
        self._state.is_running = True
        self.add_message(Message.user(user_input))

        cfg = self._state.config
        ctx = self._tool_context()
        max_loops = self.max_loops
        iterations = 0
        last_text = ""
        try:
            while iterations < max_loops:
                iterations += 1
                self.phase = LoopPhase.CALLING_MODEL
                # delegated membership can change between calls
                await self.registry.refresh()
                tools = self.registry.for_agent(cfg.available_tools, allow_delegated=cfg.allow_delegated)
                await self._emit(EventType.AGENT_STATUS, {"status": "thinking", "iteration": iterations})
                response = await self.llm.call(self._outbound(), tools)
                self.add_message(Message.assistant(response.text, response.tool_calls))
                last_text = response.text

                if not response.tool_calls:
                    await self._emit(EventType.AGENT_MESSAGE, {"content": response.text})
                    return AgentRunResult(text=response.text, iterations=iterations)

                if response.text:
                    await self._emit(EventType.AGENT_MESSAGE, {"content": response.text, "partial": True})

                self.phase = LoopPhase.DISPATCHING_TOOLS
                outcomes: List[ToolOutcome] = []
                # strictly sequential, in model order
                for call in response.tool_calls:
                    await self._emit(EventType.AGENT_TOOL_CALL, {"toolName": call.name, "arguments": call.arguments})
                    result = await self.registry.dispatch(call, ctx)
                    await self._emit(
                        EventType.AGENT_TOOL_RESULT,
                        {"toolName": call.name, "ok": result.success, "data": result.data, "error": result.error},
                    )
                    outcomes.append(ToolOutcome(tool_call_id=call.id, name=call.name, result=result))
                self.add_message(Message.tool_turn(outcomes))

            limit = LoopLimitExceeded(max_loops=max_loops)
            logger.warning("%s: %s", self.name, limit)
            await self._emit(EventType.AGENT_LOOP_LIMIT, {"maxLoops": max_loops, "message": str(limit)})
            return AgentRunResult(text=last_text, iterations=iterations, limit=limit)
        finally:
            self.phase = LoopPhase.TERMINATED
            self._state.is_running = False
