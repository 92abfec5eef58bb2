from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

import httpx

from ghostwriter.errors import ProviderConnectionError, ProviderHTTPError
from ghostwriter.runtime.llm.provider import (
    PLACEHOLDER_GREETING,
    collect_system,
    conversation,
    synthetic_call_id,
)
from ghostwriter.runtime.tools.registry import ToolDefinition
from ghostwriter.runtime.types import LLMConfig, LLMResponse, Message, StopReason, ToolCall

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 8192

_STOP_REASONS = {
    "tool_use": StopReason.TOOL_USE,
    "max_tokens": StopReason.MAX_TOKENS,
    "stop_sequence": StopReason.STOP_SEQUENCE,
}


def _as_blocks(content: Any) -> List[Dict[str, Any]]:
    if isinstance(content, list):
        return content
    if content:
        return [{"type": "text", "text": str(content)}]
    return []


def _push(wire: List[Dict[str, Any]], role: str, content: Any) -> None:
    """
    Append a turn, merging into the previous one when it has the same role.
    """
    if wire and wire[-1]["role"] == role:
        wire[-1]["content"] = _as_blocks(wire[-1]["content"]) + _as_blocks(content)
        return
    wire.append({"role": role, "content": content})


class AnthropicMessagesAdapter:
    """
    Block-content family: one POST to {base}/v1/messages.
    """

    family = "anthropic"

    def normalize(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        config: LLMConfig,
    ) -> Dict[str, Any]:
        wire: List[Dict[str, Any]] = []
        for m in conversation(messages):
            if m.role == "user":
                _push(wire, "user", m.content)
            elif m.role == "assistant":
                blocks: List[Dict[str, Any]] = []
                if m.content:
                    blocks.append({"type": "text", "text": m.content})
                for tc in m.tool_calls:
                    blocks.append({"type": "tool_use", "id": tc.id, "name": tc.name, "input": dict(tc.arguments)})
                if not blocks:
                    continue
                _push(wire, "assistant", blocks if m.tool_calls else m.content)
            elif m.role == "tool":
                results = []
                for o in m.outcomes():
                    block: Dict[str, Any] = {
                        "type": "tool_result",
                        "tool_use_id": o.tool_call_id,
                        "content": o.result.render(),
                    }
                    if not o.result.success:
                        block["is_error"] = True
                    results.append(block)
                if results:
                    _push(wire, "user", results)

        if not wire or wire[0]["role"] != "user":
            wire.insert(0, {"role": "user", "content": PLACEHOLDER_GREETING})

        request: Dict[str, Any] = {
            "model": config.model,
            "max_tokens": config.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": wire,
        }
        system = collect_system(messages)
        if system:
            request["system"] = system
        if tools:
            request["tools"] = [t.to_anthropic_tool() for t in tools]
        if config.temperature is not None:
            request["temperature"] = config.temperature
        return request

    def parse(self, payload: Dict[str, Any]) -> LLMResponse:
        texts: List[str] = []
        calls: List[ToolCall] = []
        for block in payload.get("content") or []:
            kind = block.get("type")
            if kind == "text":
                texts.append(block.get("text") or "")
            elif kind == "tool_use":
                args = block.get("input")
                if args is None:
                    args = {}
                if not isinstance(args, dict):
                    logger.warning("Dropping tool call %s: input is not an object", block.get("name"))
                    continue
                calls.append(ToolCall(id=str(block.get("id") or synthetic_call_id()), name=str(block.get("name") or ""), arguments=args))
        stop = _STOP_REASONS.get(str(payload.get("stop_reason") or ""), StopReason.END_TURN)
        return LLMResponse(text="".join(texts), tool_calls=calls, stop_reason=stop)

    async def send(self, request: Dict[str, Any], config: LLMConfig, http: httpx.AsyncClient) -> Dict[str, Any]:
        base = (config.base_url or "https://api.anthropic.com").rstrip("/")
        url = f"{base}/v1/messages"
        headers = {
            "content-type": "application/json",
            "x-api-key": config.api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
        }
        logger.debug("POST %s model=%s", url, config.model)
        try:
            resp = await http.post(url, json=request, headers=headers)
        except httpx.TransportError as e:
            logger.error("Anthropic request failed: %s", e)
            raise ProviderConnectionError(f"Could not reach {base}: {e}", provider=config.provider) from e
        if resp.status_code >= 400:
            logger.error("Anthropic returned HTTP %s", resp.status_code)
            raise ProviderHTTPError(resp.status_code, resp.text, provider=config.provider)
        return resp.json()
