"""OpenAI 兼容 Provider。

不在模型目录中登记模型：model 与 base_url 完全由调用方配置决定。
"""

from typing import Any, Dict, List

from provider_core.domain.models import ChatMessage, ChatOptions, ProviderCapabilities
from provider_core.providers.base import BaseEngine
from provider_core.providers.completions.stream_processor import CompletionsStreamProcessor
from provider_core.providers.configs import OpenAICompatConfig
from provider_core.providers.openai_compat.error_handler import OpenAICompatErrorHandler
from provider_core.providers.openai_compat.request_builder import build_headers, build_request


class OpenAICompatStreamProcessor(CompletionsStreamProcessor):
    provider = "openai_compat"
    error_handler_class = OpenAICompatErrorHandler


class OpenAICompatProvider(BaseEngine):
    type = "openai_compat"
    name = "OpenAI Compatible"
    capabilities = ProviderCapabilities(
        streaming=True,
        reasoning=True,
        thinking=True,
        multimodal=False,
        max_context_length=128000,
    )
    config_class = OpenAICompatConfig
    error_handler_class = OpenAICompatErrorHandler

    def endpoint(self, options: ChatOptions) -> str:
        return f"{self._require_config().base_url}/chat/completions"

    def models_endpoint(self) -> str:
        return f"{self._require_config().base_url}/models"

    def headers(self) -> Dict[str, str]:
        return build_headers(self._require_config())

    def build_request_body(self, messages: List[ChatMessage], options: ChatOptions) -> Dict[str, Any]:
        return build_request(messages, self._require_config(), options)

    def create_stream_processor(self, options: ChatOptions) -> OpenAICompatStreamProcessor:
        cfg = self._require_config()
        return OpenAICompatStreamProcessor(cfg.model, show_thinking=cfg.show_thinking)
