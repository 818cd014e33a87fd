"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供各厂商的具体实现 (openai_client、anthropic_client)。
"""

from typing import Optional

from assistant_core.config.settings import settings as default_settings
from assistant_core.domain.exceptions import ConfigurationError
from assistant_core.providers.base import ProviderClient
from assistant_core.providers.openai_client import OpenAIClient
from assistant_core.providers.anthropic_client import AnthropicClient


def resolve_provider_name(name: Optional[str] = None, settings=None) -> str:
    """确定要使用的 Provider。

    auto：配置了 Anthropic key 时用 anthropic，否则有 OpenAI key 用 openai，
    两者都没有则抛出 ConfigurationError（在任何模型调用之前）。
    """

    cfg = settings or default_settings
    provider_name = (name or getattr(cfg, "default_provider", "auto") or "auto").lower()
    if provider_name == "auto":
        if getattr(cfg, "anthropic_api_key", None):
            return "anthropic"
        if getattr(cfg, "openai_api_key", None):
            return "openai"
        raise ConfigurationError(code="NO_PROVIDER_CONFIGURED", message="No AI provider configured.")
    if provider_name not in ("openai", "anthropic"):
        raise ConfigurationError(code="UNKNOWN_PROVIDER", message=f"Unknown provider: {provider_name}")
    if not getattr(cfg, f"{provider_name}_api_key", None):
        raise ConfigurationError(code="MISSING_API_KEY", message=f"{provider_name.upper()}_API_KEY not set")
    return provider_name


def create_provider(name: Optional[str] = None, settings=None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。"""

    cfg = settings or default_settings
    provider_name = resolve_provider_name(name, cfg)
    if provider_name == "anthropic":
        return AnthropicClient(cfg)
    return OpenAIClient(cfg)

