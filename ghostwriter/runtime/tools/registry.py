from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, FrozenSet, Optional

from ghostwriter.runtime.types import ToolResult

if TYPE_CHECKING:
    from ghostwriter.policy.policy import ProjectPolicy, SafetyGate


ToolExecutor = Callable[[Dict[str, Any], "ToolContext"], Awaitable[ToolResult]]
ConfirmAction = Callable[..., Awaitable[bool]]

RISK_LEVELS = ("low", "medium", "high")


@dataclass
class ToolContext:
    """
    Everything a capability sees at invocation time.

    allowed_tools is the invoking agent's allow-list (None means unrestricted).
    allow_delegated admits capability-server tools that are not named in the list.
    """

    working_directory: str
    gate: "SafetyGate"
    confirm_action: Optional[ConfirmAction] = None
    allowed_tools: Optional[FrozenSet[str]] = None
    allow_delegated: bool = False
    agent_name: Optional[str] = None

    @property
    def policy(self) -> "ProjectPolicy":
        return self.gate.policy


@dataclass(frozen=True)
class ToolDefinition:
    """
    name: function name exported to the model (letters, digits, _ and -)
    capability: safety capability string (e.g. "shell.run", "filesystem.write")
    source: "builtin" or "delegated"
    """

    name: str
    capability: str
    description: str
    parameters: Dict[str, Any]  # JSON schema
    executor: ToolExecutor
    risk_level: str = "low"
    requires_confirmation: bool = False
    source: str = "builtin"
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.risk_level not in RISK_LEVELS:
            raise ValueError(f"Invalid risk level for {self.name}: {self.risk_level}")

    def schema(self) -> Dict[str, Any]:
        params = dict(self.parameters or {})
        params.setdefault("type", "object")
        params["properties"] = dict(params.get("properties") or {})
        params["required"] = [r for r in (params.get("required") or []) if r in params["properties"]]
        return params

    def to_openai_tool(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.schema(),
            },
        }

    def to_anthropic_tool(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.schema(),
        }

    def to_ollama_tool(self) -> Dict[str, Any]:
        return self.to_openai_tool()
