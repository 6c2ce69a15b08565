"""OpenAI Provider（Responses API）。"""

from typing import Any, Dict, List

from provider_core.domain.models import ChatMessage, ChatOptions, ProviderCapabilities
from provider_core.providers.base import BaseEngine
from provider_core.providers.catalog import OPENAI_CATALOG
from provider_core.providers.configs import OpenAIConfig
from provider_core.providers.openai.error_handler import OpenAIErrorHandler
from provider_core.providers.openai.request_builder import build_request
from provider_core.providers.openai.stream_processor import OpenAIStreamProcessor


class OpenAIProvider(BaseEngine):
    type = "openai"
    name = "OpenAI"
    capabilities = ProviderCapabilities(
        streaming=True,
        reasoning=True,
        thinking=True,
        multimodal=True,
        max_context_length=400000,
        supported_models=tuple(OPENAI_CATALOG.models),
    )
    config_class = OpenAIConfig
    error_handler_class = OpenAIErrorHandler

    def endpoint(self, options: ChatOptions) -> str:
        cfg = self._require_config()
        base = cfg.base_url or self._settings.openai_base_url
        return f"{base.rstrip('/')}/responses"

    def models_endpoint(self) -> str:
        cfg = self._require_config()
        base = cfg.base_url or self._settings.openai_base_url
        return f"{base.rstrip('/')}/models"

    def headers(self) -> Dict[str, str]:
        cfg = self._require_config()
        return {
            "Authorization": f"Bearer {cfg.api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

    def build_request_body(self, messages: List[ChatMessage], options: ChatOptions) -> Dict[str, Any]:
        return build_request(messages, self._require_config(), options, stream=True)

    def create_stream_processor(self, options: ChatOptions) -> OpenAIStreamProcessor:
        cfg = self._require_config()
        # 只有请求了推理摘要时才向调用方输出 thinking
        show_thinking = bool(options.reasoning_effort or cfg.reasoning_effort)
        return OpenAIStreamProcessor(cfg.model, show_thinking=show_thinking)
