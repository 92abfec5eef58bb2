from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from ghostwriter.errors import (
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolPermissionError,
)
from ghostwriter.runtime.capabilities.provider import CapabilityProvider
from ghostwriter.runtime.tools.registry import ToolContext, ToolDefinition
from ghostwriter.runtime.types import ToolCall, ToolResult

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    One namespace over builtin and delegated capabilities.

    Builtin tools are fixed at construction. Delegated tools come from providers
    and are replaced wholesale by refresh(). On a name collision the builtin wins.
    """

    def __init__(self, builtin: Iterable[ToolDefinition], delegated: Sequence[CapabilityProvider] = ()):
        self._builtin: Dict[str, ToolDefinition] = {}
        for t in builtin:
            self._builtin.setdefault(t.name, t)
        self._providers = list(delegated)
        self._delegated: Dict[str, ToolDefinition] = {}

    async def refresh(self) -> None:
        found: Dict[str, ToolDefinition] = {}
        for p in self._providers:
            try:
                tools = await p.discover()
            except Exception as e:
                logger.warning("Capability provider %s failed to list tools: %s", p.name, e)
                continue
            for t in tools:
                if t.name in self._builtin:
                    logger.debug("Delegated tool %s shadowed by builtin", t.name)
                    continue
                found.setdefault(t.name, t)
        self._delegated = found

    def list_capabilities(self) -> List[ToolDefinition]:
        return list(self._builtin.values()) + list(self._delegated.values())

    def for_agent(self, allowed: Optional[Iterable[str]], *, allow_delegated: bool = False) -> List[ToolDefinition]:
        """
        Capabilities an agent with this allow-list may call, in export order.
        """
        if allowed is None:
            return self.list_capabilities()
        names = set(allowed)
        out = [t for t in self._builtin.values() if t.name in names]
        out += [t for t in self._delegated.values() if allow_delegated or t.name in names]
        return out

    def get(self, name: str) -> ToolDefinition:
        if name in self._builtin:
            return self._builtin[name]
        if name in self._delegated:
            return self._delegated[name]
        raise ToolNotFoundError(name)

    def system_instructions(self) -> str:
        blocks: List[str] = []
        for p in self._providers:
            txt = p.system_instructions()
            if txt:
                blocks.append(txt.strip())
        return "\n\n".join([b for b in blocks if b])

    def _check_allowed(self, tool: ToolDefinition, ctx: ToolContext) -> None:
        if ctx.allowed_tools is None or tool.name in ctx.allowed_tools:
            return
        if tool.source == "delegated" and ctx.allow_delegated:
            return
        raise ToolPermissionError(tool.name, ctx.agent_name)

    async def dispatch(self, call: ToolCall, ctx: ToolContext) -> ToolResult:
        """
        Resolve, authorize and run one tool call. Never raises for tool-level failures.

        Anything unexpected from the allow-list check, the gate or the executor
        is wrapped as ToolExecutionError so every call still gets a result.
        """
        try:
            try:
                tool = self.get(call.name)
                self._check_allowed(tool, ctx)
                await ctx.gate.authorize(tool, call.arguments, ctx)
                return await tool.executor(dict(call.arguments), ctx)
            except ToolError:
                raise
            except Exception as e:
                raise ToolExecutionError(f"{type(e).__name__}: {e}", tool_name=call.name) from e
        except ToolError as e:
            logger.info("Tool %s failed: %s", call.name, e)
            return ToolResult.failure(str(e))
