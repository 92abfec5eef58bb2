import json
from contextlib import AsyncExitStack
from types import SimpleNamespace

import pytest

from ghostwriter.errors import ConfigError
from ghostwriter.runtime.capabilities.registry import ToolRegistry
from ghostwriter.runtime.mcp.client_manager import MCPClientManager, _Connection
from ghostwriter.runtime.mcp.config import MCPRegistry, expand_env, load_mcp_registry, write_example
from ghostwriter.runtime.providers.builtin_provider import BuiltinProvider
from ghostwriter.runtime.providers.mcp_provider import MCPProvider
from ghostwriter.runtime.types import ToolResult

from tests.helpers import Confirmer, tool_call


def _write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


def test_expand_env(monkeypatch):
    monkeypatch.setenv("GH_TOKEN", "abc")
    monkeypatch.delenv("MISSING_VAR", raising=False)
    assert expand_env({"TOKEN": "${GH_TOKEN}", "URL": "https://${MISSING_VAR}x", "PLAIN": "v"}) == {
        "TOKEN": "abc",
        "URL": "https://x",
        "PLAIN": "v",
    }


def test_project_config_wins_over_home(workspace, tmp_path):
    _write(tmp_path / "home" / ".ghostwriter" / "mcp-config.json", {"mcpServers": {"home": {"command": "h"}}})
    assert list(load_mcp_registry(str(workspace)).servers) == ["home"]

    _write(workspace / ".ghostwriter" / "mcp-config.json", {"mcpServers": {"proj": {"command": "p", "args": ["-v"]}}})
    registry = load_mcp_registry(str(workspace))
    assert list(registry.servers) == ["proj"]
    assert registry.servers["proj"].args == ["-v"]
    assert registry.source.endswith("mcp-config.json")


def test_missing_config_is_empty(workspace):
    assert load_mcp_registry(str(workspace)).servers == {}


def test_invalid_config_raises(workspace):
    _write(workspace / ".ghostwriter" / "mcp-config.json", {"mcpServers": {"bad": {"args": []}}})
    with pytest.raises(ConfigError):
        load_mcp_registry(str(workspace))


def test_write_example_is_loadable_and_disabled(workspace):
    path = workspace / ".ghostwriter" / "mcp-config.json"
    write_example(path)
    registry = load_mcp_registry(str(workspace))
    assert "filesystem" in registry.servers
    assert registry.enabled() == {}


def test_registry_alias():
    reg = MCPRegistry.model_validate({"mcpServers": {"a": {"command": "x", "disabled": True}, "b": {"command": "y"}}})
    assert list(reg.enabled()) == ["b"]


class FakeManager:
    def __init__(self):
        self.calls = []

    def connected_servers(self):
        return ["github"]

    async def list_all_tools(self):
        return [
            {"server": "github", "name": "create issue", "description": "Open an issue", "inputSchema": {"type": "object", "properties": {"title": {"type": "string"}}}},
            {"server": "github", "name": "search_codebase", "description": "Remote search", "inputSchema": None},
        ]

    async def call_tool(self, name, arguments):
        self.calls.append((name, arguments))
        return ToolResult.ok(f"created {arguments['title']}")


@pytest.mark.asyncio
async def test_mcp_tools_are_delegated_and_confirmed(make_context):
    manager = FakeManager()
    provider = MCPProvider(manager)
    registry = ToolRegistry(BuiltinProvider().tools(), [provider])
    await registry.refresh()

    tool = registry.get("create_issue")
    assert tool.source == "delegated"
    assert tool.risk_level == "medium"
    assert tool.metadata == {"server": "github", "remote_name": "create issue"}
    assert tool.description == "[github] Open an issue"
    assert registry.get("search_codebase").source == "builtin"
    assert "github" in registry.system_instructions()

    confirm = Confirmer(True)
    result = await registry.dispatch(tool_call("create_issue", title="Bug"), make_context(confirm=confirm))
    assert result.success and result.data == "created Bug"
    assert manager.calls == [("create issue", {"title": "Bug"})]
    assert confirm.asked[0]["tool_name"] == "create_issue"


class FakeSession:
    def __init__(self):
        self.calls = []

    async def list_tools(self):
        return SimpleNamespace(
            tools=[SimpleNamespace(name="create issue", description="Open an issue", inputSchema=None)]
        )

    async def call_tool(self, name, arguments):
        self.calls.append((name, arguments))
        if not arguments.get("title"):
            return SimpleNamespace(content=[SimpleNamespace(text="title required")], isError=True)
        return SimpleNamespace(content=[SimpleNamespace(text=f"created {arguments['title']}")], isError=False)


def _manager_with(session):
    manager = MCPClientManager()
    manager._connections["github"] = _Connection(name="github", session=session, stack=AsyncExitStack())
    return manager


@pytest.mark.asyncio
async def test_client_manager_routes_calls_and_maps_errors(make_context):
    session = FakeSession()
    registry = ToolRegistry(BuiltinProvider().tools(), [MCPProvider(_manager_with(session))])
    await registry.refresh()
    ctx = make_context(confirm=Confirmer(True))

    ok = await registry.dispatch(tool_call("create_issue", title="Bug"), ctx)
    assert ok.success and ok.data == "created Bug"

    failed = await registry.dispatch(tool_call("create_issue", title=""), ctx)
    assert not failed.success
    assert failed.error == "title required"
    assert session.calls == [("create issue", {"title": "Bug"}), ("create issue", {"title": ""})]


@pytest.mark.asyncio
async def test_tool_whose_server_went_away_is_unknown(make_context):
    session = FakeSession()
    manager = _manager_with(session)
    registry = ToolRegistry(BuiltinProvider().tools(), [MCPProvider(manager)])
    await registry.refresh()
    assert registry.get("create_issue").source == "delegated"

    await manager.disconnect("github")
    result = await registry.dispatch(tool_call("create_issue", title="Bug"), make_context(confirm=Confirmer(True)))

    assert not result.success
    assert result.error == "Unknown tool: create issue"
    assert session.calls == []
