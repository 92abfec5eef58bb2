import pytest

from ghostwriter.errors import ProviderHTTPError
from ghostwriter.protocol import EventType
from ghostwriter.runtime.agent import Agent, AgentConfig, LoopPhase
from ghostwriter.runtime.capabilities.registry import ToolRegistry
from ghostwriter.runtime.providers.builtin_provider import BUILTIN_TOOL_NAMES, BuiltinProvider
from ghostwriter.runtime.tools.registry import ToolDefinition
from ghostwriter.runtime.types import LLMResponse, StopReason, ToolResult

from tests.helpers import Confirmer, ScriptedLLM, tool_call

CONFIG = AgentConfig(type="main", name="Main agent", system_prompt="Be brief.", available_tools=BUILTIN_TOOL_NAMES)


def _agent(llm, registry, gate, workspace, **kwargs):
    return Agent(CONFIG, llm=llm, registry=registry, gate=gate, working_directory=str(workspace), **kwargs)


@pytest.mark.asyncio
async def test_plain_answer_ends_after_one_call(registry, gate, workspace):
    llm = ScriptedLLM([LLMResponse(text="Hi there")])
    agent = _agent(llm, registry, gate, workspace)

    result = await agent.run("hello")

    assert result.text == "Hi there"
    assert result.iterations == 1
    assert not result.loop_limit_reached
    assert [m.role for m in agent.messages] == ["user", "assistant"]
    assert agent.phase is LoopPhase.TERMINATED
    assert not agent.is_running


@pytest.mark.asyncio
async def test_declined_write_is_observed_by_next_model_call(registry, gate, workspace):
    llm = ScriptedLLM(
        [
            LLMResponse(
                text="",
                tool_calls=[tool_call("write_file", path="notes.txt", content="x")],
                stop_reason=StopReason.TOOL_USE,
            ),
            LLMResponse(text="Okay, I will not write it."),
        ]
    )
    confirm = Confirmer(False)
    agent = _agent(llm, registry, gate, workspace, confirm_action=confirm)

    result = await agent.run("create notes.txt")

    assert result.text == "Okay, I will not write it."
    assert result.iterations == 2
    assert not (workspace / "notes.txt").exists()
    assert confirm.asked[0]["tool_name"] == "write_file"

    tool_msg = agent.messages[2]
    assert tool_msg.role == "tool"
    outcome = tool_msg.outcomes()[0]
    assert outcome.tool_call_id == "call_1"
    assert outcome.result.success is False
    assert outcome.result.error == "cancelled"

    second_request = llm.requests[1]
    assert any(m.role == "tool" and m.tool_results[0].result.error == "cancelled" for m in second_request)


@pytest.mark.asyncio
async def test_loop_cap_stops_after_tool_round(registry, gate, workspace):
    (workspace / "a.txt").write_text("a")
    llm = ScriptedLLM(
        [
            LLMResponse(text="Let me look.", tool_calls=[tool_call("list_files")], stop_reason=StopReason.TOOL_USE),
            LLMResponse(text="never requested"),
        ]
    )
    events = []
    agent = Agent(
        AgentConfig(type="t", name="Capped", system_prompt="", available_tools=BUILTIN_TOOL_NAMES, max_loops=1),
        llm=llm,
        registry=registry,
        gate=gate,
        working_directory=str(workspace),
        emit=events.append,
    )

    result = await agent.run("what is here?")

    assert len(llm.requests) == 1
    assert result.iterations == 1
    assert result.text == "Let me look."
    assert result.loop_limit_reached
    assert result.limit.max_loops == 1
    assert [m.role for m in agent.messages] == ["user", "assistant", "tool"]
    assert agent.messages[2].outcomes()[0].result.data["files"] == ["a.txt"]
    assert EventType.AGENT_LOOP_LIMIT in [e["event"] for e in events]


@pytest.mark.asyncio
async def test_tool_calls_run_sequentially_in_model_order(registry, gate, workspace):
    (workspace / "one.txt").write_text("1")
    (workspace / "two.txt").write_text("2")
    llm = ScriptedLLM(
        [
            LLMResponse(
                text="",
                tool_calls=[
                    tool_call("read_file", "c1", path="one.txt"),
                    tool_call("read_file", "c2", path="two.txt"),
                ],
            ),
            LLMResponse(text="Both read."),
        ]
    )
    events = []
    agent = _agent(llm, registry, gate, workspace, emit=events.append)

    await agent.run("read both")

    outcomes = agent.messages[2].outcomes()
    assert [o.tool_call_id for o in outcomes] == ["c1", "c2"]
    assert [o.result.data["content"] for o in outcomes] == ["1", "2"]
    calls = [e["payload"]["arguments"]["path"] for e in events if e["event"] == EventType.AGENT_TOOL_CALL]
    assert calls == ["one.txt", "two.txt"]


@pytest.mark.asyncio
async def test_provider_error_propagates_and_keeps_history(registry, gate, workspace):
    llm = ScriptedLLM([ProviderHTTPError(503, "overloaded", provider="openai")])
    agent = _agent(llm, registry, gate, workspace)

    with pytest.raises(ProviderHTTPError):
        await agent.run("hello")

    assert [m.role for m in agent.messages] == ["user"]
    assert not agent.is_running


@pytest.mark.asyncio
async def test_outbound_prompt_includes_project_context(registry, gate, workspace):
    llm = ScriptedLLM([LLMResponse(text="ok")])
    agent = _agent(llm, registry, gate, workspace, project_context="Uses FastAPI.")

    await agent.run("hi")

    system = [m for m in llm.requests[0] if m.role == "system"]
    assert "Be brief." in system[0].content
    assert str(workspace) in system[0].content
    assert "Uses FastAPI." in system[1].content
    assert llm.tool_names[0] == list(BUILTIN_TOOL_NAMES)


@pytest.mark.asyncio
async def test_clear_messages_resets_history(registry, gate, workspace):
    agent = _agent(ScriptedLLM([LLMResponse(text="ok")]), registry, gate, workspace)
    await agent.run("hi")
    agent.clear_messages()
    assert agent.messages == []


@pytest.mark.asyncio
async def test_tool_turn_recorded_when_path_cannot_be_resolved(registry, gate, workspace):
    llm = ScriptedLLM(
        [
            LLMResponse(
                text="",
                tool_calls=[tool_call("delete_file", path="~ghostwriter_no_such_user")],
                stop_reason=StopReason.TOOL_USE,
            ),
            LLMResponse(text="That path does not exist."),
        ]
    )
    agent = _agent(llm, registry, gate, workspace, confirm_action=Confirmer(True))

    result = await agent.run("delete it")

    assert result.text == "That path does not exist."
    assert [m.role for m in agent.messages] == ["user", "assistant", "tool", "assistant"]
    outcome = agent.messages[2].outcomes()[0]
    assert outcome.tool_call_id == "call_1"
    assert outcome.result.success is False


class GrowingProvider:
    name = "remote"

    def __init__(self):
        self.tools = []
        self.discovered = 0

    async def discover(self):
        self.discovered += 1
        return list(self.tools)

    def system_instructions(self):
        return None


@pytest.mark.asyncio
async def test_delegated_tools_are_requeried_before_each_model_call(gate, workspace):
    async def weather(args, ctx):
        return ToolResult.ok("sunny")

    remote = GrowingProvider()
    registry = ToolRegistry(BuiltinProvider().tools(), [remote])
    await registry.refresh()

    remote.tools.append(
        ToolDefinition(
            name="weather",
            capability="mcp.call",
            description="remote weather",
            parameters={"type": "object", "properties": {}},
            executor=weather,
            source="delegated",
        )
    )
    llm = ScriptedLLM([LLMResponse(text="ok")])
    agent = Agent(
        AgentConfig(type="main", name="Main agent", system_prompt="", available_tools=BUILTIN_TOOL_NAMES, allow_delegated=True),
        llm=llm,
        registry=registry,
        gate=gate,
        working_directory=str(workspace),
    )

    await agent.run("what's the weather")

    assert remote.discovered == 2
    assert "weather" in llm.tool_names[0]

    remote.tools.clear()
    await agent.run("again")
    assert "weather" not in llm.tool_names[1]
