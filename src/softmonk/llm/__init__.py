"""LLM 模块：供应商配置、适配器、路由与提示词"""

from .providers import (
    AzureOpenAIAdapter,
    CallPacer,
    GeminiAdapter,
    OpenAICompatibleAdapter,
    ProviderAdapter,
    ProviderConfig,
    ProviderReply,
    build_adapter,
    build_provider_configs,
    invoke_with_rate_limit,
    invoke_with_turn_timeout,
)
from .prompts import FAILURE_PHRASE, SYSTEM_PROMPTS, TRUST_HIERARCHY
from .router import ProviderRouter

__all__ = [
    "AzureOpenAIAdapter",
    "CallPacer",
    "GeminiAdapter",
    "OpenAICompatibleAdapter",
    "ProviderAdapter",
    "ProviderConfig",
    "ProviderReply",
    "build_adapter",
    "build_provider_configs",
    "invoke_with_rate_limit",
    "invoke_with_turn_timeout",
    "FAILURE_PHRASE",
    "SYSTEM_PROMPTS",
    "TRUST_HIERARCHY",
    "ProviderRouter",
]
