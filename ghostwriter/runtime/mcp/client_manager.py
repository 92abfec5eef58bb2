from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any, Dict, List

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import get_default_environment, stdio_client

from ghostwriter.errors import MCPError, ToolNotFoundError
from ghostwriter.runtime.mcp.config import MCPRegistry, MCPServerConfig, expand_env
from ghostwriter.runtime.types import ToolResult

logger = logging.getLogger(__name__)


@dataclass
class _Connection:
    name: str
    session: ClientSession
    stack: AsyncExitStack


class MCPClientManager:
    """
    Stdio sessions to the configured capability servers.

    Connections are opened and closed from the same task (the CLI's main task),
    which the stdio transport requires.
    """

    def __init__(self):
        self._connections: Dict[str, _Connection] = {}
        self._tool_index: Dict[str, str] = {}  # tool name -> server name

    async def connect(self, name: str, server: MCPServerConfig) -> None:
        if name in self._connections:
            return
        params = StdioServerParameters(
            command=server.command,
            args=list(server.args),
            env={**get_default_environment(), **expand_env(server.env)},
        )
        stack = AsyncExitStack()
        try:
            read, write = await stack.enter_async_context(stdio_client(params))
            session = await stack.enter_async_context(ClientSession(read, write))
            await session.initialize()
        except Exception as e:
            await stack.aclose()
            raise MCPError(f"Failed to connect MCP server {name}: {e}") from e
        self._connections[name] = _Connection(name=name, session=session, stack=stack)
        logger.info("Connected MCP server %s", name)

    async def connect_all(self, registry: MCPRegistry) -> Dict[str, str]:
        """
        Connect every enabled server. Returns {server: error} for the ones that failed.
        """
        failures: Dict[str, str] = {}
        for name, server in registry.enabled().items():
            try:
                await self.connect(name, server)
            except MCPError as e:
                logger.warning("%s", e)
                failures[name] = str(e)
        return failures

    def connected_servers(self) -> List[str]:
        return list(self._connections.keys())

    async def list_all_tools(self) -> List[Dict[str, Any]]:
        """
        Returns {server, name, description, inputSchema} for every tool of every connected server.
        """
        out: List[Dict[str, Any]] = []
        index: Dict[str, str] = {}
        for conn in list(self._connections.values()):
            try:
                result = await conn.session.list_tools()
            except Exception as e:
                logger.warning("Listing tools of MCP server %s failed: %s", conn.name, e)
                continue
            for t in result.tools:
                index.setdefault(t.name, conn.name)
                out.append(
                    {
                        "server": conn.name,
                        "name": t.name,
                        "description": t.description or "",
                        "inputSchema": t.inputSchema or {"type": "object", "properties": {}},
                    }
                )
        self._tool_index = index
        return out

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> ToolResult:
        server = self._tool_index.get(name)
        if server is None or server not in self._connections:
            await self.list_all_tools()
            server = self._tool_index.get(name)
        conn = self._connections.get(server or "")
        if conn is None:
            raise ToolNotFoundError(name)

        result = await conn.session.call_tool(name, arguments)
        parts: List[str] = []
        for item in result.content or []:
            text = getattr(item, "text", None)
            parts.append(text if text is not None else item.model_dump_json())
        text = "\n".join(parts)
        if result.isError:
            return ToolResult.failure(text or f"MCP tool {name} failed")
        return ToolResult.ok(text)

    async def disconnect(self, name: str) -> None:
        conn = self._connections.pop(name, None)
        if conn is None:
            return
        try:
            await conn.stack.aclose()
        except Exception as e:
            logger.warning("Error closing MCP server %s: %s", name, e)
        self._tool_index = {k: v for k, v in self._tool_index.items() if v != name}

    async def disconnect_all(self) -> None:
        # close in reverse order of opening
        for name in reversed(list(self._connections.keys())):
            await self.disconnect(name)
