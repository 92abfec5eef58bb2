from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from ghostwriter.runtime.mcp import MCPClientManager
from ghostwriter.runtime.tools.registry import ToolContext, ToolDefinition
from ghostwriter.runtime.types import ToolResult


def _safe_name(s: str) -> str:
    s = re.sub(r"[^a-zA-Z0-9_-]+", "_", s.strip())
    s = re.sub(r"_+", "_", s).strip("_")
    return s or "tool"


class MCPProvider:
    """
    Exposes every tool of the connected capability servers as a delegated ToolDefinition.
    """

    name = "mcp"

    def __init__(self, manager: MCPClientManager):
        self.mgr = manager

    def _definition(self, info: Dict[str, Any]) -> ToolDefinition:
        remote_name = str(info.get("name", ""))
        server = str(info.get("server", ""))

        async def _call(args: Dict[str, Any], ctx: ToolContext) -> ToolResult:
            return await self.mgr.call_tool(remote_name, args)

        description = str(info.get("description") or "").strip() or remote_name
        schema = info.get("inputSchema")
        return ToolDefinition(
            name=_safe_name(remote_name),
            capability="mcp.call",
            description=f"[{server}] {description}",
            parameters=schema if isinstance(schema, dict) else {"type": "object", "properties": {}},
            executor=_call,
            risk_level="medium",
            requires_confirmation=True,
            source="delegated",
            metadata={"server": server, "remote_name": remote_name},
        )

    async def discover(self) -> List[ToolDefinition]:
        return [self._definition(t) for t in await self.mgr.list_all_tools()]

    def system_instructions(self) -> Optional[str]:
        servers = self.mgr.connected_servers()
        if not servers:
            return None
        return (
            "External MCP servers are connected:\n"
            + "\n".join([f"- {s}" for s in servers])
            + "\nTheir tools are listed with a [server] prefix in the description."
        )
