"""Grok 错误映射。"""

from typing import Any, Mapping, Tuple

from provider_core.domain.models import ErrorType
from provider_core.providers.errors import ErrorHandler


class GrokErrorHandler(ErrorHandler):
    provider = "grok"
    service_name = "xAI"

    def describe_status(self, status: int, err: Mapping[str, Any]) -> Tuple[ErrorType, str, str]:
        if status in (401, 403):
            return "authentication", "AUTH_ERROR", "Invalid xAI API key. Please check your API key in settings."
        if status == 429:
            return "rate_limit", "RATE_LIMIT", "Grok rate limit exceeded. Please wait before making more requests."
        return super().describe_status(status, err)
