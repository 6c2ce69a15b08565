"""OpenRouter Provider。"""

from typing import Any, Dict, List

from provider_core.domain.models import ChatMessage, ChatOptions, ProviderCapabilities
from provider_core.providers.base import BaseEngine
from provider_core.providers.catalog import OPENROUTER_CATALOG
from provider_core.providers.configs import OpenRouterConfig
from provider_core.providers.openrouter.error_handler import OpenRouterErrorHandler
from provider_core.providers.openrouter.request_builder import build_headers, build_request
from provider_core.providers.openrouter.stream_processor import OpenRouterStreamProcessor


class OpenRouterProvider(BaseEngine):
    type = "openrouter"
    name = "OpenRouter"
    capabilities = ProviderCapabilities(
        streaming=True,
        reasoning=True,
        thinking=True,
        multimodal=False,
        max_context_length=1048576,
        supported_models=tuple(OPENROUTER_CATALOG.models),
    )
    config_class = OpenRouterConfig
    error_handler_class = OpenRouterErrorHandler

    def endpoint(self, options: ChatOptions) -> str:
        cfg = self._require_config()
        base = cfg.base_url or self._settings.openrouter_base_url
        return f"{base.rstrip('/')}/chat/completions"

    def models_endpoint(self) -> str:
        cfg = self._require_config()
        base = cfg.base_url or self._settings.openrouter_base_url
        return f"{base.rstrip('/')}/models"

    def headers(self) -> Dict[str, str]:
        return build_headers(
            self._require_config().api_key,
            self._settings.openrouter_referer,
            self._settings.openrouter_title,
        )

    def build_request_body(self, messages: List[ChatMessage], options: ChatOptions) -> Dict[str, Any]:
        return build_request(
            messages,
            self._require_config(),
            options,
            cache_threshold=self._settings.large_block_cache_threshold,
        )

    def create_stream_processor(self, options: ChatOptions) -> OpenRouterStreamProcessor:
        cfg = self._require_config()
        return OpenRouterStreamProcessor(cfg.model, show_thinking=cfg.show_thinking)
