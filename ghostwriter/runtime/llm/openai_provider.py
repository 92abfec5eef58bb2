from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from ghostwriter.errors import ProviderConnectionError, ProviderHTTPError
from ghostwriter.runtime.llm.provider import (
    collect_system,
    conversation,
    parse_arguments,
    synthetic_call_id,
)
from ghostwriter.runtime.tools.registry import ToolDefinition
from ghostwriter.runtime.types import LLMConfig, LLMResponse, Message, StopReason, ToolCall

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.7

_FINISH_REASONS = {
    "tool_calls": StopReason.TOOL_USE,
    "length": StopReason.MAX_TOKENS,
}


class OpenAIChatCompletionsAdapter:
    """
    Flat function-calling family (OpenAI-compatible chat completions).

    One instance per provider; they differ only in the default base URL.
    """

    family = "openai"

    def __init__(self, *, default_base_url: str):
        self.default_base_url = default_base_url

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
                msg: Dict[str, Any] = {"role": "assistant", "content": m.content or None}
                if m.tool_calls:
                    msg["tool_calls"] = [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {"name": tc.name, "arguments": json.dumps(tc.arguments, ensure_ascii=False)},
                        }
                        for tc in m.tool_calls
                    ]
                elif not m.content:
                    msg["content"] = ""
                wire.append(msg)
            elif m.role == "tool":
                # one wire message per result
                for o in m.outcomes():
                    out: Dict[str, Any] = {"role": "tool", "tool_call_id": o.tool_call_id, "content": o.result.render()}
                    if o.name:
                        out["name"] = o.name
                    wire.append(out)

        request: Dict[str, Any] = {
            "model": config.model,
            "messages": wire,
            "max_tokens": config.max_tokens or DEFAULT_MAX_TOKENS,
            "temperature": config.temperature if config.temperature is not None else DEFAULT_TEMPERATURE,
        }
        if tools:
            request["tools"] = [t.to_openai_tool() for t in tools]
            request["tool_choice"] = "auto"
        return request

    def parse(self, payload: Dict[str, Any]) -> LLMResponse:
        choices = payload.get("choices") or []
        if not choices:
            return LLMResponse(text="")
        choice = choices[0] or {}
        message = choice.get("message") or {}

        calls: List[ToolCall] = []
        for tc in message.get("tool_calls") or []:
            fn = tc.get("function") or {}
            name = str(fn.get("name") or "")
            args = parse_arguments(fn.get("arguments"), tool_name=name)
            if args is None:
                continue
            calls.append(ToolCall(id=str(tc.get("id") or synthetic_call_id()), name=name, arguments=args))

        stop = _FINISH_REASONS.get(str(choice.get("finish_reason") or ""), StopReason.END_TURN)
        return LLMResponse(text=message.get("content") or "", tool_calls=calls, stop_reason=stop)

    def client(self, config: LLMConfig, http: Optional[httpx.AsyncClient] = None) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=config.api_key or "",
            base_url=(config.base_url or self.default_base_url).rstrip("/"),
            http_client=http,
            max_retries=0,
        )

    async def send(self, request: Dict[str, Any], config: LLMConfig, http: httpx.AsyncClient) -> Dict[str, Any]:
        client = self.client(config, http)
        logger.debug("chat.completions %s model=%s", client.base_url, config.model)
        try:
            completion = await client.chat.completions.create(**request)
        except APIStatusError as e:
            logger.error("%s returned HTTP %s", config.provider, e.status_code)
            raise ProviderHTTPError(e.status_code, e.response.text, provider=config.provider) from e
        except APIConnectionError as e:
            logger.error("%s request failed: %s", config.provider, e)
            raise ProviderConnectionError(f"Could not reach {client.base_url}: {e}", provider=config.provider) from e
        return completion.model_dump()
