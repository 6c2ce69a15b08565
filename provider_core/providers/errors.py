"""错误归一化的公共部分。

ErrorHandler.format(raw) 把任意失败值转成 ProviderError：

- BusinessError：直接转换（保留原有 type / code）。
- HttpStatusError：按 HTTP 状态码 + 响应体映射，各厂商可覆盖文案。
- 厂商错误 JSON（{"error": {...}}）：按 error.type / error.status 映射。
- 其他异常：unknown，消息取异常文本。
- 非异常值（字符串、None 等）：unknown，使用通用消息。
"""

from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from provider_core.domain.exceptions import BusinessError
from provider_core.domain.models import ErrorType, ProviderError
from provider_core.infrastructure.transport import HttpStatusError

GENERIC_MESSAGE = "An unknown error occurred"

# 厂商 error.type / error.status 字段到错误类型的映射
_VENDOR_ERROR_TYPES: Dict[str, Tuple[ErrorType, str]] = {
    "invalid_request_error": ("validation", "INVALID_REQUEST"),
    "invalid_argument": ("validation", "INVALID_REQUEST"),
    "authentication_error": ("authentication", "AUTH_ERROR"),
    "unauthenticated": ("authentication", "AUTH_ERROR"),
    "permission_denied": ("authentication", "AUTH_ERROR"),
    "rate_limit_error": ("rate_limit", "RATE_LIMIT"),
    "resource_exhausted": ("rate_limit", "RATE_LIMIT"),
    "insufficient_quota": ("rate_limit", "QUOTA_EXCEEDED"),
    "api_error": ("network", "API_ERROR"),
    "server_error": ("network", "API_ERROR"),
    "unavailable": ("network", "SERVICE_ERROR"),
}


def parse_retry_after(value: Any) -> Optional[int]:
    """解析 Retry-After：秒数或 HTTP 日期，无法解析时返回 None。"""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return max(int(value), 0)
    text = str(value).strip()
    if not text:
        return None
    try:
        return max(int(float(text)), 0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(int((when - datetime.now(timezone.utc)).total_seconds()), 0)


def header_value(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    if not headers:
        return None
    lower = name.lower()
    for k, v in headers.items():
        if k.lower() == lower:
            return v
    return None


def vendor_error(body: Any) -> Dict[str, Any]:
    """取出响应体中的 error 对象；形如 {"error": "text"} 时包装成 {"message": text}。"""

    if not isinstance(body, Mapping):
        return {}
    err = body.get("error")
    if isinstance(err, Mapping):
        return dict(err)
    if isinstance(err, str):
        return {"message": err}
    if isinstance(body.get("message"), str):
        return {"message": body["message"]}
    return {}


class ErrorHandler:
    """默认错误处理器，各厂商继承后覆盖 provider、服务名与状态码文案。"""

    provider = "unknown"
    service_name = "Provider"
    default_retry_after: Optional[int] = None

    def format(self, raw: Any) -> ProviderError:
        if isinstance(raw, BusinessError):
            return raw.to_provider_error(self.provider)
        if isinstance(raw, HttpStatusError):
            return self.from_http(raw.status_code, raw.json(), raw.headers, raw.body)
        if isinstance(raw, Mapping) and vendor_error(raw):
            return self.from_body(raw)
        if isinstance(raw, TimeoutError):
            return ProviderError(type="timeout", message=str(raw) or "Request timed out", code="TIMEOUT", provider=self.provider)
        if isinstance(raw, ConnectionError):
            return ProviderError(
                type="network",
                message=str(raw) or "Connection lost",
                code="NETWORK_ERROR",
                provider=self.provider,
                details={"originalError": type(raw).__name__},
            )
        if isinstance(raw, BaseException):
            return ProviderError(
                type="unknown",
                message=str(raw) or GENERIC_MESSAGE,
                code="UNKNOWN_ERROR",
                provider=self.provider,
                details={"originalError": type(raw).__name__},
            )
        return ProviderError(
            type="unknown",
            message=GENERIC_MESSAGE,
            code="UNKNOWN_ERROR",
            provider=self.provider,
            details={"originalError": repr(raw)},
        )

    # ---- HTTP 错误 ----

    def describe_status(self, status: int, err: Mapping[str, Any]) -> Tuple[ErrorType, str, str]:
        """返回 (type, code, message)。"""

        vendor_msg = err.get("message") if isinstance(err.get("message"), str) else None
        if status == 400:
            return "validation", "BAD_REQUEST", f"Bad request: {vendor_msg or 'Unknown error'}"
        if status == 401:
            return "authentication", "AUTH_ERROR", "Invalid or missing API key"
        if status == 403:
            return "authentication", "AUTH_ERROR", "Access denied"
        if status == 404:
            return "validation", "NOT_FOUND", "Model not found or invalid endpoint"
        if status == 408:
            return "timeout", "TIMEOUT", "Request timed out"
        if status == 429:
            return "rate_limit", "RATE_LIMIT", "Rate limit exceeded"
        if status >= 500:
            return "network", "SERVICE_ERROR", f"{self.service_name} service error"
        return "unknown", f"HTTP_{status}", vendor_msg or f"HTTP error {status}"

    def from_http(
        self,
        status: int,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        text: Optional[str] = None,
    ) -> ProviderError:
        err = vendor_error(body)
        error_type, code, message = self.describe_status(status, err)
        details: Dict[str, Any] = {"statusCode": status}
        if err.get("code") is not None:
            details["originalCode"] = err["code"]
        if err.get("type") or err.get("status"):
            details["originalType"] = err.get("type") or err.get("status")
        if isinstance(err.get("message"), str):
            details["vendorMessage"] = err["message"]
        elif text and not body:
            details["body"] = text[:500]
        retry_after = parse_retry_after(header_value(headers, "Retry-After"))
        if retry_after is None:
            retry_after = parse_retry_after(err.get("retry_after"))
        if retry_after is None and error_type == "rate_limit":
            retry_after = self.default_retry_after
        return ProviderError(
            type=error_type,
            message=message,
            code=code,
            provider=self.provider,
            retry_after=retry_after,
            details=details,
        )

    # ---- 厂商错误 JSON ----

    def from_body(self, body: Mapping[str, Any]) -> ProviderError:
        err = vendor_error(body)
        raw_type = str(err.get("type") or err.get("status") or err.get("code") or "").lower()
        error_type, code = _VENDOR_ERROR_TYPES.get(raw_type, ("unknown", ""))
        if not code:
            code = str(err.get("code") or "UNKNOWN_ERROR")
        retry_after = parse_retry_after(err.get("retry_after"))
        if retry_after is None and error_type == "rate_limit":
            retry_after = self.default_retry_after
        details: Dict[str, Any] = {}
        if raw_type:
            details["originalType"] = raw_type
        if err.get("code") is not None:
            details["originalCode"] = err["code"]
        return ProviderError(
            type=error_type,
            message=err.get("message") or GENERIC_MESSAGE,
            code=code,
            provider=self.provider,
            retry_after=retry_after,
            details=details or None,
        )
