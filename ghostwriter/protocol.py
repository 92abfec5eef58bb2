from __future__ import annotations

from typing import Any, Dict


class EventType:
    AGENT_STATUS = "agent.status"
    AGENT_MESSAGE = "agent.message"
    AGENT_TOOL_CALL = "agent.tool_call"
    AGENT_TOOL_RESULT = "agent.tool_result"
    AGENT_LOOP_LIMIT = "agent.loop_limit"
    SUBAGENT_START = "subagent.start"
    SUBAGENT_END = "subagent.end"


def create_event(event: str, payload: Dict[str, Any]) -> dict:
    return {"type": "event", "event": event, "payload": payload}
