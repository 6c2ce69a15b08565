"""Google Gemini Provider。"""

from typing import Any, Dict, List

from provider_core.domain.models import ChatMessage, ChatOptions, ProviderCapabilities
from provider_core.providers.base import BaseEngine
from provider_core.providers.catalog import GEMINI_CATALOG
from provider_core.providers.configs import GeminiConfig
from provider_core.providers.gemini.error_handler import GeminiErrorHandler
from provider_core.providers.gemini.request_builder import build_headers, build_models_url, build_request, build_url
from provider_core.providers.gemini.stream_processor import GeminiStreamProcessor


class GeminiProvider(BaseEngine):
    type = "gemini"
    name = "Google Gemini"
    capabilities = ProviderCapabilities(
        streaming=True,
        reasoning=False,
        thinking=True,
        multimodal=True,
        max_context_length=1048576,
        supported_models=tuple(GEMINI_CATALOG.models),
    )
    config_class = GeminiConfig
    error_handler_class = GeminiErrorHandler

    def endpoint(self, options: ChatOptions) -> str:
        cfg = self._require_config()
        return build_url(cfg.base_url or self._settings.gemini_base_url, cfg.model)

    def models_endpoint(self) -> str:
        cfg = self._require_config()
        return build_models_url(cfg.base_url or self._settings.gemini_base_url)

    def headers(self) -> Dict[str, str]:
        return build_headers(self._require_config().api_key)

    def build_request_body(self, messages: List[ChatMessage], options: ChatOptions) -> Dict[str, Any]:
        return build_request(messages, self._require_config(), options)

    def create_stream_processor(self, options: ChatOptions) -> GeminiStreamProcessor:
        cfg = self._require_config()
        return GeminiStreamProcessor(cfg.model, show_thinking=cfg.show_thoughts)
