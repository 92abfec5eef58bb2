from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from ghostwriter.runtime.tools.registry import ToolDefinition
from ghostwriter.runtime.types import LLMConfig, LLMResponse, Message

logger = logging.getLogger(__name__)

PLACEHOLDER_GREETING = "Hello, please get ready to help me."


def synthetic_call_id() -> str:
    """Id for a tool call the wire left unnamed; unique within any turn."""
    return f"call_{uuid.uuid4().hex[:12]}"


class ProviderAdapter(Protocol):
    """
    Translation between canonical messages and one backend family's wire format.

    normalize/parse are pure; send performs the HTTP exchange for the family.
    """

    family: str

    def normalize(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        config: LLMConfig,
    ) -> Dict[str, Any]:
        ...

    def parse(self, payload: Dict[str, Any]) -> LLMResponse:
        ...

    async def send(
        self,
        request: Dict[str, Any],
        config: LLMConfig,
        http: httpx.AsyncClient,
    ) -> Dict[str, Any]:
        ...


def collect_system(messages: Sequence[Message]) -> str:
    """
    Concatenate every system message into the single system payload of a call.
    """
    blocks = [m.content.strip() for m in messages if m.role == "system" and m.content and m.content.strip()]
    return "\n\n".join(blocks)


def parse_arguments(raw: Any, *, tool_name: str) -> Optional[Dict[str, Any]]:
    """
    Decode tool-call arguments. Returns None (and logs) when the payload is unusable,
    in which case the caller drops that one call.
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("Dropping tool call %s: arguments are not valid JSON: %.200s", tool_name, raw)
            return None
        if isinstance(value, dict):
            return value
    logger.warning("Dropping tool call %s: arguments are not an object: %.200r", tool_name, raw)
    return None


def conversation(messages: Sequence[Message]) -> List[Message]:
    return [m for m in messages if m.role != "system"]
