"""xAI Grok Provider。"""

from typing import Any, Dict, List

from provider_core.domain.models import ChatMessage, ChatOptions, ProviderCapabilities
from provider_core.providers.base import BaseEngine
from provider_core.providers.catalog import GROK_CATALOG
from provider_core.providers.configs import GrokConfig
from provider_core.providers.grok.error_handler import GrokErrorHandler
from provider_core.providers.grok.request_builder import build_headers, build_request
from provider_core.providers.grok.stream_processor import GrokStreamProcessor


class GrokProvider(BaseEngine):
    type = "grok"
    name = "xAI Grok"
    capabilities = ProviderCapabilities(
        streaming=True,
        reasoning=True,
        thinking=False,
        multimodal=False,
        max_context_length=2000000,
        supported_models=tuple(GROK_CATALOG.models),
    )
    config_class = GrokConfig
    error_handler_class = GrokErrorHandler

    def endpoint(self, options: ChatOptions) -> str:
        cfg = self._require_config()
        base = cfg.base_url or self._settings.grok_base_url
        return f"{base.rstrip('/')}/responses"

    def models_endpoint(self) -> str:
        cfg = self._require_config()
        base = cfg.base_url or self._settings.grok_base_url
        return f"{base.rstrip('/')}/models"

    def headers(self) -> Dict[str, str]:
        return build_headers(self._require_config().api_key)

    def build_request_body(self, messages: List[ChatMessage], options: ChatOptions) -> Dict[str, Any]:
        return build_request(messages, self._require_config(), options, stream=True)

    def create_stream_processor(self, options: ChatOptions) -> GrokStreamProcessor:
        return GrokStreamProcessor(self._require_config().model)
