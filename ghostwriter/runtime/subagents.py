from __future__ import annotations

import inspect
import logging
import re
from dataclasses import dataclass, replace
from typing import Dict, List, NamedTuple, Optional, Sequence

from ghostwriter.policy.policy import SafetyGate
from ghostwriter.protocol import EventType, create_event
from ghostwriter.runtime.agent import DEFAULT_MAX_LOOPS, Agent, AgentConfig, AgentRunResult, EventSink
from ghostwriter.runtime.capabilities.registry import ToolRegistry
from ghostwriter.runtime.llm.client import LLMClient
from ghostwriter.runtime.providers.builtin_provider import BUILTIN_TOOL_NAMES
from ghostwriter.runtime.tools.registry import ConfirmAction

logger = logging.getLogger(__name__)

DEFAULT_SUBAGENT_MESSAGE = "Please start working."

_DIRECTIVE = re.compile(r"^@(\w+)\s*(.*)$", re.DOTALL)

_CUSTOM_TOOLS = ("list_files", "read_file", "write_file", "run_command", "search_codebase")

AGENT_PRESETS: Dict[str, AgentConfig] = {
    "main": AgentConfig(
        type="main",
        name="Main agent",
        system_prompt="You are the main agent and handle every request from the user.",
        available_tools=BUILTIN_TOOL_NAMES,
        allow_delegated=True,
    ),
    "test": AgentConfig(
        type="test",
        name="Test agent",
        system_prompt=(
            "You are a testing specialist. You:\n"
            "1. Write unit and integration tests\n"
            "2. Run the test commands and analyze the results\n"
            "3. Improve coverage\n"
            "4. Fix failing tests\n\n"
            "Prefer the project's existing test framework and naming conventions, "
            "cover edge cases, and finish with a clear test report."
        ),
        available_tools=("list_files", "read_file", "write_file", "run_command", "search_codebase"),
        max_loops=5,
    ),
    "review": AgentConfig(
        type="review",
        name="Review agent",
        system_prompt=(
            "You are a code review specialist. You:\n"
            "1. Review code quality and practices\n"
            "2. Find likely bugs and security problems\n"
            "3. Suggest improvements\n"
            "4. Check style consistency\n\n"
            "Focus on readability, error handling and input validation, and give concrete "
            "suggestions with example code."
        ),
        available_tools=("list_files", "read_file", "search_codebase"),
        max_loops=3,
    ),
    "refactor": AgentConfig(
        type="refactor",
        name="Refactor agent",
        system_prompt=(
            "You are a refactoring specialist. You:\n"
            "1. Identify code smells and technical debt\n"
            "2. Extract shared code into reusable modules\n"
            "3. Improve structure and performance\n"
            "4. Keep behavior unchanged\n\n"
            "Refactor in small verifiable steps, keep backwards compatibility, and show "
            "before/after comparisons."
        ),
        available_tools=("list_files", "read_file", "write_file", "search_codebase"),
        max_loops=6,
    ),
    "custom": AgentConfig(
        type="custom",
        name="Custom agent",
        system_prompt="You are a custom agent. Follow the user's instructions.",
        available_tools=_CUSTOM_TOOLS,
    ),
}

_DESCRIPTIONS = {
    "test": "Write and run tests",
    "review": "Code review and quality checks",
    "refactor": "Refactoring and cleanup",
}


class AgentCommand(NamedTuple):
    type: str
    message: str


class AgentTypeInfo(NamedTuple):
    type: str
    name: str
    description: str


def get_agent_config(agent_type: str) -> AgentConfig:
    return AGENT_PRESETS[agent_type]


def create_custom_agent_config(
    name: str,
    system_prompt: str,
    available_tools: Optional[Sequence[str]] = None,
) -> AgentConfig:
    return replace(
        AGENT_PRESETS["custom"],
        name=name,
        system_prompt=system_prompt,
        available_tools=tuple(available_tools) if available_tools is not None else _CUSTOM_TOOLS,
    )


def available_agent_types() -> List[AgentTypeInfo]:
    return [AgentTypeInfo(t, AGENT_PRESETS[t].name, d) for t, d in _DESCRIPTIONS.items()]


def parse_agent_command(text: str) -> Optional[AgentCommand]:
    """
    "@test write a unit test" -> AgentCommand("test", "write a unit test").
    Unknown agent types return None so the input is handled normally.
    """
    m = _DIRECTIVE.match(text.strip())
    if not m:
        return None
    agent_type = m.group(1).lower()
    if agent_type not in AGENT_PRESETS:
        return None
    return AgentCommand(agent_type, (m.group(2) or "").strip())


@dataclass
class AgentManager:
    """
    Owns the main agent and runs ephemeral sub-agents for @type directives.

    Sub-agents share the LLM client, registry and safety gate, start with an empty
    history, and are dropped as soon as their run ends. Only their final text is
    returned to the caller.
    """

    llm: LLMClient
    registry: ToolRegistry
    gate: SafetyGate
    working_directory: str
    confirm_action: Optional[ConfirmAction] = None
    default_max_loops: int = DEFAULT_MAX_LOOPS
    emit: Optional[EventSink] = None
    project_context: Optional[str] = None

    def __post_init__(self):
        self.main_agent = self._create(AGENT_PRESETS["main"])
        self.sub_agents: Dict[str, Agent] = {}

    def _create(self, config: AgentConfig) -> Agent:
        return Agent(
            config,
            llm=self.llm,
            registry=self.registry,
            gate=self.gate,
            working_directory=self.working_directory,
            confirm_action=self.confirm_action,
            default_max_loops=self.default_max_loops,
            project_context=self.project_context,
            emit=self.emit,
        )

    def set_project_context(self, text: Optional[str]) -> None:
        self.project_context = text
        self.main_agent.set_project_context(text)

    def create_sub_agent(self, agent_type: str) -> Agent:
        agent = self._create(get_agent_config(agent_type))
        self.sub_agents[agent.id] = agent
        return agent

    def clear_all_history(self) -> None:
        self.main_agent.clear_messages()

    async def run_sub_agent(self, agent_type: str, message: str) -> AgentRunResult:
        agent = self.create_sub_agent(agent_type)
        await self._notify(EventType.SUBAGENT_START, {"agentId": agent.id, "agentName": agent.name, "type": agent_type})
        try:
            result = await agent.run(message or DEFAULT_SUBAGENT_MESSAGE)
        finally:
            self.sub_agents.pop(agent.id, None)
            await self._notify(EventType.SUBAGENT_END, {"agentId": agent.id, "agentName": agent.name, "type": agent_type})
        logger.debug("Sub-agent %s finished after %d iteration(s)", agent.id, result.iterations)
        return result

    async def handle_input(self, text: str) -> AgentRunResult:
        command = parse_agent_command(text)
        if command is not None:
            return await self.run_sub_agent(command.type, command.message)
        return await self.main_agent.run(text)

    async def _notify(self, event: str, payload: dict) -> None:
        if self.emit is None:
            return
        res = self.emit(create_event(event, payload))
        if inspect.isawaitable(res):
            await res
