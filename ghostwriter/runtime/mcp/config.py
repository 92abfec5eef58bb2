from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ghostwriter import config
from ghostwriter.errors import ConfigError

logger = logging.getLogger(__name__)

_VAR = re.compile(r"\$\{([^}]+)\}")


class MCPServerConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    command: str
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    disabled: bool = False


class MCPRegistry(BaseModel):
    """
    Contents of .ghostwriter/mcp-config.json: {"mcpServers": {name: {...}}}.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    servers: Dict[str, MCPServerConfig] = Field(default_factory=dict, alias="mcpServers")
    source: Optional[str] = Field(default=None, exclude=True)

    def enabled(self) -> Dict[str, MCPServerConfig]:
        return {name: s for name, s in self.servers.items() if not s.disabled}


def expand_env(env: Dict[str, str]) -> Dict[str, str]:
    """
    Substitute ${VAR} references from the process environment. Unknown variables become "".
    """
    return {k: _VAR.sub(lambda m: os.environ.get(m.group(1), ""), str(v)) for k, v in env.items()}


def load_mcp_registry(working_directory: str) -> MCPRegistry:
    """
    First existing file wins: project directory, then the home directory.
    """
    for p in config.mcp_config_paths(working_directory):
        if not p.exists():
            continue
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigError(f"Could not read MCP config {p}: {e}") from e
        try:
            registry = MCPRegistry.model_validate(data if isinstance(data, dict) else {})
        except ValidationError as e:
            raise ConfigError(f"Invalid MCP config {p}: {e}") from e
        registry.source = str(p)
        logger.debug("Loaded %d MCP server(s) from %s", len(registry.servers), p)
        return registry
    return MCPRegistry()


def write_example(path: Path) -> None:
    example = {
        "mcpServers": {
            "filesystem": {
                "command": "npx",
                "args": ["-y", "@modelcontextprotocol/server-filesystem", "."],
                "env": {},
                "disabled": True,
            }
        }
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(example, indent=2) + "\n", encoding="utf-8")
