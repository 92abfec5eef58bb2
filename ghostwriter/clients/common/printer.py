from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from ghostwriter.clients.cli import ui
from ghostwriter.protocol import EventType


@dataclass
class Printer:
    """
    Small terminal renderer for agent events.
    """

    show_status: bool = False
    active_subagents: Set[str] = field(default_factory=set)

    def __call__(self, event: Dict[str, Any]) -> None:
        self.handle(event)

    def handle(self, event: Dict[str, Any]) -> None:
        kind = event.get("event")
        payload = event.get("payload") or {}
        prefix = self._prefix(payload)

        if kind == EventType.AGENT_STATUS:
            if self.show_status:
                ui.print_status(f"{prefix}{payload.get('status', '')} (round {payload.get('iteration', '?')})")
        elif kind == EventType.AGENT_MESSAGE:
            # final answers are printed by the caller once the run returns
            if payload.get("partial"):
                ui.print_assistant_message(payload.get("content", ""), payload.get("agentName"))
        elif kind == EventType.AGENT_TOOL_CALL:
            ui.print_tool_call(prefix + str(payload.get("toolName", "")), payload.get("arguments") or {})
        elif kind == EventType.AGENT_TOOL_RESULT:
            ui.print_tool_result(
                str(payload.get("toolName", "")),
                bool(payload.get("ok")),
                payload.get("data"),
                payload.get("error"),
            )
        elif kind == EventType.AGENT_LOOP_LIMIT:
            ui.print_warning(str(payload.get("message", "Reached the tool loop limit")))
        elif kind == EventType.SUBAGENT_START:
            self.active_subagents.add(str(payload.get("agentId")))
            ui.print_info(f"Starting {payload.get('agentName')} ({payload.get('type')})")
        elif kind == EventType.SUBAGENT_END:
            self.active_subagents.discard(str(payload.get("agentId")))
            ui.print_info(f"{payload.get('agentName')} finished")

    def _prefix(self, payload: Dict[str, Any]) -> str:
        agent_id: Optional[str] = payload.get("agentId")
        if agent_id and agent_id in self.active_subagents:
            return f"[{payload.get('agentName')}] "
        return ""
