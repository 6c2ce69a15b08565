"""OpenRouter 流式处理：chat/completions 帧格式，推理是否输出由 reasoning.exclude 决定。"""

from provider_core.providers.completions.stream_processor import CompletionsStreamProcessor
from provider_core.providers.openrouter.error_handler import OpenRouterErrorHandler


class OpenRouterStreamProcessor(CompletionsStreamProcessor):
    provider = "openrouter"
    error_handler_class = OpenRouterErrorHandler
