import json

import pytest

from ghostwriter.errors import ConfigError, PathNotAllowedError, UserCancelledError
from ghostwriter.policy.policy import ProjectPolicy, SafetyGate, is_dangerous_command
from ghostwriter.runtime.providers.builtin_provider import BuiltinProvider
from ghostwriter.runtime.tools.registry import ToolDefinition
from ghostwriter.runtime.types import ToolResult

from tests.helpers import Confirmer

TOOLS = {t.name: t for t in BuiltinProvider().tools()}


async def _noop(args, ctx):
    return ToolResult.ok()


@pytest.mark.parametrize(
    "command, dangerous",
    [
        ("rm -rf /", True),
        ("sudo apt install x", True),
        ("chmod 777 file", True),
        ("echo x > /dev/sda", True),
        ("dd if=/dev/zero of=disk", True),
        ("ls -la", False),
        ("git status", False),
    ],
)
def test_dangerous_patterns(command, dangerous):
    assert is_dangerous_command(command) is dangerous


def test_classification_table():
    gate = SafetyGate(ProjectPolicy())
    assert gate.classify(TOOLS["read_file"], {"path": "a"}).needs_confirmation is False
    assert gate.classify(TOOLS["write_file"], {"path": "a"}).needs_confirmation is True
    assert gate.classify(TOOLS["delete_file"], {"path": "a"}).risk == "high"

    auto = SafetyGate(ProjectPolicy(), auto_confirm=True)
    assert auto.classify(TOOLS["write_file"], {"path": "a"}).needs_confirmation is False
    assert auto.classify(TOOLS["delete_file"], {"path": "a"}).needs_confirmation is True


def test_whitelisted_command_skips_confirmation_unless_dangerous():
    gate = SafetyGate(ProjectPolicy(allow_commands=["npm test", "git *", "rm -rf /"]))
    assert gate.classify(TOOLS["run_command"], {"command": "npm test"}).needs_confirmation is False
    assert gate.classify(TOOLS["run_command"], {"command": "git log"}).needs_confirmation is False
    assert gate.classify(TOOLS["run_command"], {"command": "npm run build"}).needs_confirmation is True

    decision = gate.classify(TOOLS["run_command"], {"command": "rm -rf /"})
    assert decision.risk == "high"
    assert decision.needs_confirmation is True


def test_low_risk_tool_requiring_confirmation_counts_as_medium():
    tool = ToolDefinition(
        name="poke",
        capability="custom.poke",
        description="",
        parameters={},
        executor=_noop,
        requires_confirmation=True,
    )
    decision = SafetyGate(ProjectPolicy()).classify(tool, {})
    assert decision.risk == "medium"
    assert decision.needs_confirmation is True


def test_deny_substring_beats_allow_prefix(workspace):
    policy = ProjectPolicy(allow_write_paths=["."], deny_paths=[".env"])
    policy.check_path("src/app.py", str(workspace))
    with pytest.raises(PathNotAllowedError):
        policy.check_path(".env", str(workspace))


def test_allow_write_paths_restrict_writes(workspace):
    policy = ProjectPolicy(allow_write_paths=["src"])
    policy.check_path("src/main.py", str(workspace))
    with pytest.raises(PathNotAllowedError):
        policy.check_path("docs/readme.md", str(workspace))


def test_delete_of_working_directory_or_ancestor_refused(workspace):
    policy = ProjectPolicy()
    with pytest.raises(PathNotAllowedError):
        policy.check_path(".", str(workspace), deleting=True)
    with pytest.raises(PathNotAllowedError):
        policy.check_path("..", str(workspace), deleting=True)
    policy.check_path("build", str(workspace), deleting=True)


@pytest.mark.asyncio
async def test_authorize_declined_raises_cancelled(make_context):
    confirm = Confirmer(False)
    ctx = make_context(confirm=confirm)
    with pytest.raises(UserCancelledError) as exc:
        await ctx.gate.authorize(TOOLS["write_file"], {"path": "a.txt", "content": "x"}, ctx)
    assert str(exc.value) == "cancelled"
    assert confirm.asked[0]["tool_name"] == "write_file"
    assert confirm.asked[0]["risk"] == "medium"


@pytest.mark.asyncio
async def test_authorize_without_callback_declines(make_context):
    ctx = make_context(confirm=None)
    with pytest.raises(UserCancelledError):
        await ctx.gate.authorize(TOOLS["run_command"], {"command": "make"}, ctx)


@pytest.mark.asyncio
async def test_path_check_runs_before_prompt(make_context):
    confirm = Confirmer(True)
    ctx = make_context(confirm=confirm)
    with pytest.raises(PathNotAllowedError):
        await ctx.gate.authorize(TOOLS["write_file"], {"path": ".git/config", "content": ""}, ctx)
    assert confirm.asked == []


def test_persist_command_keeps_other_keys(workspace):
    cfg_dir = workspace / ".aide"
    cfg_dir.mkdir()
    (cfg_dir / "config.json").write_text(json.dumps({"llm": {"provider": "ollama"}, "allow_commands": ["ls"]}))

    policy = ProjectPolicy.load(str(workspace))
    policy.persist_command("npm test", str(workspace))
    policy.persist_command("npm test", str(workspace))

    data = json.loads((cfg_dir / "config.json").read_text())
    assert data["llm"] == {"provider": "ollama"}
    assert data["allow_commands"] == ["ls", "npm test"]
    assert policy.is_command_allowed("npm test")


def test_invalid_policy_raises_config_error(workspace):
    cfg_dir = workspace / ".aide"
    cfg_dir.mkdir()
    (cfg_dir / "config.json").write_text(json.dumps({"allow_commands": "not-a-list"}))
    with pytest.raises(ConfigError):
        ProjectPolicy.load(str(workspace))
