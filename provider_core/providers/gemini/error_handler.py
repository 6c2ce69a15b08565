"""Gemini 错误映射。

Gemini 的错误体形如 {"error": {"code": 429, "message": "...", "status": "RESOURCE_EXHAUSTED",
"details": [{"reason": "..."}]}}。限流错误未给出 retry-after 时默认 60 秒。
"""

from typing import Any, Mapping, Tuple

from provider_core.domain.models import ErrorType
from provider_core.providers.errors import ErrorHandler

DEFAULT_RETRY_AFTER = 60


class GeminiErrorHandler(ErrorHandler):
    provider = "gemini"
    service_name = "Gemini API"
    default_retry_after = DEFAULT_RETRY_AFTER

    def describe_status(self, status: int, err: Mapping[str, Any]) -> Tuple[ErrorType, str, str]:
        if status == 400:
            reasons = [
                d.get("reason") or d.get("message")
                for d in err.get("details") or []
                if isinstance(d, Mapping) and (d.get("reason") or d.get("message"))
            ]
            if reasons:
                return "validation", "GEMINI_VALIDATION_ERROR", f"Invalid request: {', '.join(reasons)}"
            return "validation", "GEMINI_VALIDATION_ERROR", f"Bad request: {err.get('message') or 'Unknown error'}"
        if status == 401:
            return (
                "authentication",
                "GEMINI_AUTH_ERROR",
                "Authentication failed. Please check your Google API key is valid and has Gemini API enabled.",
            )
        if status == 403:
            return (
                "authentication",
                "GEMINI_AUTH_ERROR",
                "Access denied. Make sure your Google API key has access to Gemini API.",
            )
        if status == 404:
            return (
                "validation",
                "GEMINI_VALIDATION_ERROR",
                "Model not found. The selected Gemini model may not be available in your region or with your API key.",
            )
        if status == 429:
            retry = err.get("retry_after")
            if retry:
                return "rate_limit", "GEMINI_RATE_LIMIT", f"Rate limit exceeded. Please retry after {retry} seconds."
            return "rate_limit", "GEMINI_RATE_LIMIT", "Rate limit exceeded. Please wait before making more requests."
        if status == 503:
            return "network", "GEMINI_NETWORK_ERROR", "Gemini API service unavailable. Please try again later."
        if status >= 500:
            return "network", "GEMINI_NETWORK_ERROR", "Gemini API server error. Please try again later."
        return super().describe_status(status, err)
