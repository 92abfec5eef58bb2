from __future__ import annotations

from typing import List, Optional, Protocol

from ghostwriter.runtime.tools.registry import ToolDefinition


class CapabilityProvider(Protocol):
    """
    Pluggable source of capabilities.

    Builtin providers return a fixed list; delegated providers re-query their
    capability servers every time discover() is awaited.
    """

    name: str

    async def discover(self) -> List[ToolDefinition]:
        ...

    def system_instructions(self) -> Optional[str]:
        """
        Optional system-level instruction block to inject into the model context.
        """
        ...
