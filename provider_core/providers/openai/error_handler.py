"""OpenAI 错误映射。"""

from typing import Any, Mapping, Tuple

from provider_core.domain.models import ErrorType
from provider_core.providers.errors import ErrorHandler


class OpenAIErrorHandler(ErrorHandler):
    provider = "openai"
    service_name = "OpenAI"

    def describe_status(self, status: int, err: Mapping[str, Any]) -> Tuple[ErrorType, str, str]:
        if status == 401:
            return "authentication", "AUTH_ERROR", "Invalid OpenAI API key. Please check your API key in settings."
        if status == 429 and err.get("code") == "insufficient_quota":
            return "rate_limit", "QUOTA_EXCEEDED", "OpenAI quota exceeded. Please check your plan and billing details."
        if status == 429:
            return "rate_limit", "RATE_LIMIT", "OpenAI rate limit exceeded. Please wait before making more requests."
        return super().describe_status(status, err)
