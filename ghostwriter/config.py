from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ghostwriter.runtime.types import PROVIDERS, LLMConfig

if TYPE_CHECKING:
    from ghostwriter.policy.policy import ProjectPolicy

logger = logging.getLogger(__name__)

PROJECT_CONFIG_FILE = Path(".aide") / "config.json"
MCP_CONFIG_FILE = Path(".ghostwriter") / "mcp-config.json"
KNOWLEDGE_FILE = "GHOSTWRITER.md"

DEFAULT_PROVIDER = "kimi"
DEFAULT_MAX_TOKENS = 32000
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOOL_LOOPS = 8

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4o",
    "ollama": "llama3.2",
    "grok": "grok-2-latest",
    "kimi": "kimi-k2-turbo-preview",
}

API_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "grok": "GROK_API_KEY",
    "kimi": "MOONSHOT_API_KEY",
}

BASE_URL_ENV = {
    "anthropic": "ANTHROPIC_BASE_URL",
    "openai": "OPENAI_BASE_URL",
    "ollama": "OLLAMA_BASE_URL",
    "grok": "GROK_BASE_URL",
    "kimi": "MOONSHOT_BASE_URL",
}

DEFAULT_BASE_URLS = {
    "anthropic": "https://api.anthropic.com",
    "openai": "https://api.openai.com/v1",
    "ollama": "http://localhost:11434",
    "grok": "https://api.x.ai/v1",
    "kimi": "https://api.moonshot.cn/v1",
}


def project_config_path(working_directory: str) -> Path:
    return Path(working_directory) / PROJECT_CONFIG_FILE


def load_project_config(working_directory: str) -> Dict[str, Any]:
    """
    Read .aide/config.json. Missing or unreadable files give {}.
    Re-read on every call so edits take effect without restarting.
    """
    p = project_config_path(working_directory)
    if not p.exists():
        return {}
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Could not load project config %s: %s", p, e)
        return {}
    return data if isinstance(data, dict) else {}


def _get(cfg: Dict[str, Any], *path: str, default: Any = None) -> Any:
    cur: Any = cfg
    for k in path:
        if not isinstance(cur, dict) or k not in cur:
            return default
        cur = cur[k]
    return cur


def _llm_setting(cfg: Dict[str, Any], *names: str) -> Any:
    # project files written by hand use either snake_case or camelCase
    for name in names:
        v = _get(cfg, "llm", name)
        if v is not None:
            return v
    return None


def default_model(provider: str) -> str:
    return DEFAULT_MODELS.get(provider, "")


def api_key_for(provider: str) -> Optional[str]:
    env = API_KEY_ENV.get(provider)
    if not env:
        return None
    return os.getenv(env) or None


def base_url_for(provider: str) -> Optional[str]:
    env = BASE_URL_ENV.get(provider)
    value = os.getenv(env) if env else None
    return value or DEFAULT_BASE_URLS.get(provider)


def requires_api_key(provider: str) -> bool:
    return provider in API_KEY_ENV


def mcp_config_paths(working_directory: str) -> List[Path]:
    return [Path(working_directory) / MCP_CONFIG_FILE, Path.home() / MCP_CONFIG_FILE]


def history_path() -> Path:
    return Path.home() / ".ghostwriter" / "history"


def max_tool_loops(cfg: Dict[str, Any]) -> int:
    try:
        return max(1, int(_get(cfg, "agent", "max_tool_loops", default=DEFAULT_MAX_TOOL_LOOPS)))
    except (TypeError, ValueError):
        return DEFAULT_MAX_TOOL_LOOPS


def build_llm_config(
    cfg: Dict[str, Any],
    *,
    provider: Optional[str] = None,
    model: Optional[str] = None,
) -> LLMConfig:
    """
    Precedence: explicit argument, then the project file, then the environment, then defaults.
    Credentials and base URLs prefer the environment over the project file.
    """
    provider = (
        provider
        or _llm_setting(cfg, "provider")
        or os.getenv("LLM_PROVIDER")
        or DEFAULT_PROVIDER
    )
    provider = str(provider).strip().lower()
    model = model or _llm_setting(cfg, "model") or os.getenv("LLM_MODEL") or default_model(provider)

    env_base = os.getenv(BASE_URL_ENV.get(provider, "")) if provider in BASE_URL_ENV else None
    base_url = env_base or _llm_setting(cfg, "base_url", "baseUrl") or DEFAULT_BASE_URLS.get(provider)

    max_tokens = _llm_setting(cfg, "max_tokens", "maxTokens") or DEFAULT_MAX_TOKENS
    temperature = _llm_setting(cfg, "temperature")
    return LLMConfig(
        provider=provider,
        model=str(model),
        api_key=api_key_for(provider) or _llm_setting(cfg, "api_key", "apiKey"),
        base_url=base_url,
        max_tokens=int(max_tokens),
        temperature=float(temperature) if temperature is not None else DEFAULT_TEMPERATURE,
    )


@dataclass
class AppConfig:
    working_directory: str
    llm: LLMConfig
    policy: "ProjectPolicy"
    auto_confirm: bool = False
    max_tool_loops: int = DEFAULT_MAX_TOOL_LOOPS
    debug: bool = False


def create_app_config(
    *,
    working_directory: Optional[str] = None,
    auto_confirm: bool = False,
    debug: bool = False,
    provider: Optional[str] = None,
    model: Optional[str] = None,
) -> AppConfig:
    from ghostwriter.policy.policy import ProjectPolicy

    wd = os.path.abspath(working_directory or os.getcwd())
    cfg = load_project_config(wd)
    return AppConfig(
        working_directory=wd,
        llm=build_llm_config(cfg, provider=provider, model=model),
        policy=ProjectPolicy.load(wd),
        auto_confirm=auto_confirm,
        max_tool_loops=max_tool_loops(cfg),
        debug=debug,
    )


def validate_config(app: AppConfig) -> List[str]:
    errors: List[str] = []
    provider = app.llm.provider
    if provider not in PROVIDERS:
        errors.append(f"Unknown provider '{provider}'. Choose one of: {', '.join(PROVIDERS)}")
    elif requires_api_key(provider) and not app.llm.api_key:
        errors.append(f"Missing API key for {provider}: set {API_KEY_ENV[provider]} or llm.api_key in {PROJECT_CONFIG_FILE}")
    if not app.llm.model:
        errors.append("No model configured")
    if not os.path.isdir(app.working_directory):
        errors.append(f"Working directory does not exist: {app.working_directory}")
    return errors
