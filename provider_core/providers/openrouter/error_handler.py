"""OpenRouter 错误映射。"""

from typing import Any, Mapping, Optional, Tuple

from provider_core.domain.models import ErrorType, ProviderError
from provider_core.providers.errors import ErrorHandler


class OpenRouterErrorHandler(ErrorHandler):
    provider = "openrouter"
    service_name = "OpenRouter"

    def describe_status(self, status: int, err: Mapping[str, Any]) -> Tuple[ErrorType, str, str]:
        if status in (401, 403):
            return "authentication", "AUTH_ERROR", "Invalid or missing API key"
        if status == 402:
            return "rate_limit", "QUOTA_EXCEEDED", "Insufficient credits or quota exceeded"
        return super().describe_status(status, err)


def get_retry_delay(error: ProviderError) -> Optional[float]:
    """建议的重试等待秒数；不应重试时返回 None。"""

    if error.retry_after:
        return float(error.retry_after)
    if error.type == "rate_limit":
        return 60.0
    if error.type == "network":
        return 5.0
    return None
