from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional


PROVIDERS = ("anthropic", "openai", "ollama", "grok", "kimi")


class StopReason(str, Enum):
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    success: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)

    def render(self) -> str:
        """
        Text shown to the model for this result.
        """
        if not self.success:
            return f"Error: {self.error or 'unknown error'}"
        if isinstance(self.data, str):
            return self.data
        return json.dumps(self.data, ensure_ascii=False, default=str)


@dataclass(frozen=True)
class ToolOutcome:
    tool_call_id: str
    name: str
    result: ToolResult


@dataclass(frozen=True)
class Message:
    role: str  # "system" | "user" | "assistant" | "tool"
    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None
    tool_results: List[ToolOutcome] = field(default_factory=list)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: Optional[List[ToolCall]] = None) -> "Message":
        return cls(role="assistant", content=content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool_turn(cls, outcomes: List[ToolOutcome]) -> "Message":
        """
        One synthetic tool message folding every result of a round.
        """
        lines = []
        for o in outcomes:
            status = "ok" if o.result.success else "failed"
            lines.append(f"[{o.name}] {status}\n{o.result.render()}")
        return cls(
            role="tool",
            content="\n\n".join(lines),
            tool_call_id=outcomes[0].tool_call_id if outcomes else None,
            tool_results=list(outcomes),
        )

    def outcomes(self) -> List[ToolOutcome]:
        """
        Per-call results of a tool message, also for the single-result form.
        """
        if self.tool_results:
            return list(self.tool_results)
        if self.tool_call_id:
            return [ToolOutcome(self.tool_call_id, "", ToolResult.ok(self.content))]
        return []


@dataclass(frozen=True)
class LLMResponse:
    text: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    stop_reason: StopReason = StopReason.END_TURN


@dataclass(frozen=True)
class LLMConfig:
    provider: str
    model: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None

    def with_changes(self, **changes: Any) -> "LLMConfig":
        return replace(self, **changes)
