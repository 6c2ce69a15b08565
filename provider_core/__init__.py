"""Provider Core 顶层包。

该包把多个互不兼容的厂商流式 API 统一成一套契约，
包括配置加载、领域模型、Provider 适配、流式归一化、
注册表与工厂等能力。
"""

from provider_core.domain.models import ChatMessage, ChatOptions, ChatResponse, NormalizedChunk
from provider_core.engine import EngineFactory, EngineRegistry
from provider_core.infrastructure.transport import CancellationToken
from provider_core.providers.configs import ProviderConfig

__all__ = [
    "CancellationToken",
    "ChatMessage",
    "ChatOptions",
    "ChatResponse",
    "EngineFactory",
    "EngineRegistry",
    "NormalizedChunk",
    "ProviderConfig",
]
