from __future__ import annotations

from typing import Any, Dict, List, Sequence

from ghostwriter.runtime.tools.registry import ToolDefinition
from ghostwriter.runtime.types import LLMConfig, LLMResponse, Message, ToolCall


class ScriptedLLM:
    """
    Stands in for LLMClient: returns queued responses and records every request.
    """

    def __init__(self, responses: Sequence[Any]):
        self._responses = list(responses)
        self.requests: List[List[Message]] = []
        self.tool_names: List[List[str]] = []
        self.config = LLMConfig(provider="openai", model="test-model", api_key="k")

    async def call(self, messages: Sequence[Message], tools: Sequence[ToolDefinition] = ()) -> LLMResponse:
        self.requests.append(list(messages))
        self.tool_names.append([t.name for t in tools])
        if not self._responses:
            return LLMResponse(text="done")
        nxt = self._responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


class Confirmer:
    def __init__(self, answer: bool):
        self.answer = answer
        self.asked: List[Dict[str, Any]] = []

    async def __call__(self, **kwargs) -> bool:
        self.asked.append(kwargs)
        return self.answer


def tool_call(name: str, call_id: str = "call_1", **arguments) -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=arguments)
