from __future__ import annotations

from typing import Optional


class GhostwriterError(Exception):
    pass


class ConfigError(GhostwriterError):
    pass


class MCPError(GhostwriterError):
    pass


# Provider errors abort the current user turn and reach the caller.


class ProviderError(GhostwriterError):
    def __init__(self, message: str, *, provider: str = ""):
        super().__init__(message)
        self.provider = provider


class ProviderAuthError(ProviderError):
    """
    Raised before any network request when the credential for the active provider is missing.
    """


class ProviderHTTPError(ProviderError):
    def __init__(self, status: int, body: str, *, provider: str = ""):
        super().__init__(f"{provider or 'provider'} returned HTTP {status}: {body[:500]}", provider=provider)
        self.status = status
        self.body = body


class ProviderConnectionError(ProviderError):
    pass


# Tool errors never leave the dispatcher; they become failed ToolResults.


class ToolError(GhostwriterError):
    def __init__(self, message: str, *, tool_name: str = ""):
        super().__init__(message)
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}", tool_name=tool_name)


class ToolPermissionError(ToolError):
    def __init__(self, tool_name: str, agent_name: Optional[str] = None):
        who = f"agent '{agent_name}'" if agent_name else "this agent"
        super().__init__(f"Tool '{tool_name}' is not available to {who}", tool_name=tool_name)
        self.agent_name = agent_name


class ToolExecutionError(ToolError):
    pass


class UserCancelledError(ToolError):
    def __init__(self, tool_name: str = ""):
        super().__init__("cancelled", tool_name=tool_name)


class PathNotAllowedError(ToolError):
    def __init__(self, path: str, reason: str, *, tool_name: str = ""):
        super().__init__(f"Access denied: {path} ({reason})", tool_name=tool_name)
        self.path = path
        self.reason = reason
