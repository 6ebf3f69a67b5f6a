"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Completion Client 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供具体实现 (openai_client)。
"""

from typing import Optional

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ConfigurationError
from chat_core.providers.base import CompletionClient
from chat_core.providers.openai_client import OpenAIClient
from chat_core.providers.registry import get_provider_config


# Provider 名称 -> 客户端实现；名称须在 registry 中登记
_CLIENTS = {
    "openai": OpenAIClient,
}


def create_provider(name: Optional[str] = None, cfg=None) -> CompletionClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。"""

    cfg = cfg or settings
    provider_name = name or getattr(cfg, "default_provider", "openai")
    try:
        provider_cfg = get_provider_config(provider_name)
    except KeyError:
        raise ConfigurationError(code="UNKNOWN_PROVIDER", message=f"Unknown provider: {provider_name!r}")
    return _CLIENTS[provider_cfg.name](cfg)


__all__ = ["CompletionClient", "OpenAIClient", "create_provider"]
