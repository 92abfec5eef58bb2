from .builtin_provider import BUILTIN_TOOL_NAMES, BuiltinProvider
from .mcp_provider import MCPProvider

__all__ = ["BUILTIN_TOOL_NAMES", "BuiltinProvider", "MCPProvider"]
