from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from ghostwriter import config as app_config
from ghostwriter.errors import ConfigError, ProviderAuthError, ProviderError
from ghostwriter.runtime.llm.anthropic_provider import AnthropicMessagesAdapter
from ghostwriter.runtime.llm.ollama_provider import OllamaChatAdapter
from ghostwriter.runtime.llm.openai_provider import OpenAIChatCompletionsAdapter
from ghostwriter.runtime.llm.provider import ProviderAdapter
from ghostwriter.runtime.tools.registry import ToolDefinition
from ghostwriter.runtime.types import LLMConfig, LLMResponse, Message

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 120.0

_OLLAMA = OllamaChatAdapter()

# The only place that maps a provider name to its wire family.
ADAPTERS: Dict[str, ProviderAdapter] = {
    "anthropic": AnthropicMessagesAdapter(),
    "openai": OpenAIChatCompletionsAdapter(default_base_url=app_config.DEFAULT_BASE_URLS["openai"]),
    "grok": OpenAIChatCompletionsAdapter(default_base_url=app_config.DEFAULT_BASE_URLS["grok"]),
    "kimi": OpenAIChatCompletionsAdapter(default_base_url=app_config.DEFAULT_BASE_URLS["kimi"]),
    "ollama": _OLLAMA,
}


def select_adapter(provider: str) -> ProviderAdapter:
    try:
        return ADAPTERS[provider]
    except KeyError:
        raise ConfigError(f"Unsupported provider: {provider}") from None


class LLMClient:
    """
    Holds the active LLMConfig snapshot and performs one non-streaming call per turn.

    Updates swap the snapshot; a call already in flight keeps the one it started with.
    """

    def __init__(
        self,
        config: LLMConfig,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        self._config = config
        self._http = http_client
        self._owns_http = http_client is None
        self._timeout_s = timeout_s

    @property
    def config(self) -> LLMConfig:
        return self._config

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout_s)
        return self._http

    def update_config(self, **changes: Any) -> LLMConfig:
        self._config = self._config.with_changes(**changes)
        return self._config

    def switch_provider(self, provider: str, model: Optional[str] = None) -> LLMConfig:
        provider = provider.strip().lower()
        select_adapter(provider)
        self._config = LLMConfig(
            provider=provider,
            model=model or app_config.default_model(provider),
            api_key=app_config.api_key_for(provider),
            base_url=app_config.base_url_for(provider),
            max_tokens=self._config.max_tokens,
            temperature=self._config.temperature,
        )
        return self._config

    def provider_info(self) -> Dict[str, str]:
        cfg = self._config
        return {"provider": cfg.provider, "model": cfg.model, "base_url": cfg.base_url or ""}

    async def call(self, messages: Sequence[Message], tools: Sequence[ToolDefinition] = ()) -> LLMResponse:
        cfg = self._config
        adapter = select_adapter(cfg.provider)
        if app_config.requires_api_key(cfg.provider) and not cfg.api_key:
            raise ProviderAuthError(
                f"Missing API key for {cfg.provider} (set {app_config.API_KEY_ENV[cfg.provider]})",
                provider=cfg.provider,
            )
        request = adapter.normalize(messages, tools, cfg)
        payload = await adapter.send(request, cfg, self._client())
        response = adapter.parse(payload)
        logger.debug(
            "%s/%s -> stop=%s tool_calls=%d",
            cfg.provider,
            cfg.model,
            response.stop_reason.value,
            len(response.tool_calls),
        )
        return response

    async def check_connection(self) -> Tuple[bool, Optional[str]]:
        try:
            await self.call([Message.user("ping")])
        except ProviderError as e:
            return False, str(e)
        return True, None

    async def list_ollama_models(self) -> List[str]:
        cfg = self._config
        if cfg.provider != "ollama":
            cfg = cfg.with_changes(base_url=app_config.base_url_for("ollama"))
        return await _OLLAMA.list_models(cfg, self._client())

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None
