from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

import httpx

from ghostwriter.errors import ProviderConnectionError, ProviderHTTPError
from ghostwriter.runtime.llm.provider import collect_system, conversation, parse_arguments, synthetic_call_id
from ghostwriter.runtime.tools.registry import ToolDefinition
from ghostwriter.runtime.types import LLMConfig, LLMResponse, Message, StopReason, ToolCall

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_NUM_PREDICT = 4096
DEFAULT_TEMPERATURE = 0.7


class OllamaChatAdapter:
    """
    Local family: POST {base}/api/chat with stream disabled.
    Tool calls come back without ids, so each one gets a synthetic id here.
    """

    family = "ollama"

    def normalize(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        config: LLMConfig,
    ) -> Dict[str, Any]:
        wire: List[Dict[str, Any]] = []
        system = collect_system(messages)
        if system:
            wire.append({"role": "system", "content": system})

        for m in conversation(messages):
            if m.role == "user":
                wire.append({"role": "user", "content": m.content})
            elif m.role == "assistant":
                msg: Dict[str, Any] = {"role": "assistant", "content": m.content or ""}
                if m.tool_calls:
                    msg["tool_calls"] = [
                        {"function": {"name": tc.name, "arguments": dict(tc.arguments)}} for tc in m.tool_calls
                    ]
                wire.append(msg)
            elif m.role == "tool":
                for o in m.outcomes():
                    out: Dict[str, Any] = {"role": "tool", "content": o.result.render()}
                    if o.name:
                        out["tool_name"] = o.name
                    wire.append(out)

        request: Dict[str, Any] = {
            "model": config.model,
            "messages": wire,
            "stream": False,
            "options": {
                "temperature": config.temperature if config.temperature is not None else DEFAULT_TEMPERATURE,
                "num_predict": config.max_tokens or DEFAULT_NUM_PREDICT,
            },
        }
        if tools:
            request["tools"] = [t.to_ollama_tool() for t in tools]
        return request

    def parse(self, payload: Dict[str, Any]) -> LLMResponse:
        message = payload.get("message") or {}
        calls: List[ToolCall] = []
        for tc in message.get("tool_calls") or []:
            fn = tc.get("function") or {}
            name = str(fn.get("name") or "")
            args = parse_arguments(fn.get("arguments"), tool_name=name)
            if args is None:
                continue
            calls.append(ToolCall(id=str(tc.get("id") or synthetic_call_id()), name=name, arguments=args))

        if calls:
            stop = StopReason.TOOL_USE
        elif payload.get("done_reason") == "length":
            stop = StopReason.MAX_TOKENS
        else:
            stop = StopReason.END_TURN
        return LLMResponse(text=message.get("content") or "", tool_calls=calls, stop_reason=stop)

    async def send(self, request: Dict[str, Any], config: LLMConfig, http: httpx.AsyncClient) -> Dict[str, Any]:
        base = (config.base_url or DEFAULT_BASE_URL).rstrip("/")
        url = f"{base}/api/chat"
        logger.debug("POST %s model=%s", url, config.model)
        try:
            resp = await http.post(url, json=request)
        except httpx.TransportError as e:
            logger.error("Ollama is not reachable at %s: %s", base, e)
            raise ProviderConnectionError(
                f"Could not connect to Ollama at {base}. Is it running?", provider=config.provider
            ) from e
        if resp.status_code >= 400:
            logger.error("Ollama returned HTTP %s", resp.status_code)
            raise ProviderHTTPError(resp.status_code, resp.text, provider=config.provider)
        return resp.json()

    async def list_models(self, config: LLMConfig, http: httpx.AsyncClient) -> List[str]:
        base = (config.base_url or DEFAULT_BASE_URL).rstrip("/")
        try:
            resp = await http.get(f"{base}/api/tags")
            if resp.status_code >= 400:
                return []
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("Listing Ollama models failed: %s", e)
            return []
        return [str(m.get("name")) for m in (data.get("models") or []) if isinstance(m, dict) and m.get("name")]
