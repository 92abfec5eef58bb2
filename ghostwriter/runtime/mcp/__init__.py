from .config import MCPRegistry, MCPServerConfig, expand_env, load_mcp_registry
from .client_manager import MCPClientManager

__all__ = ["MCPRegistry", "MCPServerConfig", "expand_env", "load_mcp_registry", "MCPClientManager"]
