from __future__ import annotations

from typing import Optional, Sequence

import pytest

from ghostwriter import config
from ghostwriter.policy.policy import ProjectPolicy, SafetyGate
from ghostwriter.runtime.capabilities.registry import ToolRegistry
from ghostwriter.runtime.providers.builtin_provider import BuiltinProvider
from ghostwriter.runtime.tools.registry import ToolContext


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for var in ("LLM_PROVIDER", "LLM_MODEL", *config.API_KEY_ENV.values(), *config.BASE_URL_ENV.values()):
        monkeypatch.delenv(var, raising=False)
    wd = tmp_path / "project"
    wd.mkdir()
    return wd


@pytest.fixture
def gate():
    return SafetyGate(ProjectPolicy())


@pytest.fixture
def registry():
    return ToolRegistry(BuiltinProvider().tools())


@pytest.fixture
def make_context(workspace, gate):
    def _make(confirm=None, allowed: Optional[Sequence[str]] = None, allow_delegated: bool = False) -> ToolContext:
        return ToolContext(
            working_directory=str(workspace),
            gate=gate,
            confirm_action=confirm,
            allowed_tools=frozenset(allowed) if allowed is not None else None,
            allow_delegated=allow_delegated,
            agent_name="tester",
        )

    return _make
