from .provider import ProviderAdapter
from .anthropic_provider import AnthropicMessagesAdapter
from .openai_provider import OpenAIChatCompletionsAdapter
from .ollama_provider import OllamaChatAdapter
from .client import LLMClient, select_adapter

__all__ = [
    "ProviderAdapter",
    "AnthropicMessagesAdapter",
    "OpenAIChatCompletionsAdapter",
    "OllamaChatAdapter",
    "LLMClient",
    "select_adapter",
]
