"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于上层（聊天服务 / UI）做统一捕获与用户提示。

每个异常类都对应一种 ProviderError.type，可以通过 to_provider_error()
转成纯数据记录，也可以通过 raise_provider_error() 从记录还原成异常。
"""

from typing import Any, Dict, Optional, Type

from provider_core.domain.models import ErrorType, ProviderError


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "NOT_INITIALIZED"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、retry_after、details 等）。
    """

    error_type: ErrorType = "unknown"

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)

    @property
    def provider(self) -> Optional[str]:
        return self.extra.get("provider")

    @property
    def retry_after(self) -> Optional[int]:
        return self.extra.get("retry_after")

    def to_provider_error(self, provider: Optional[str] = None) -> ProviderError:
        """转换为 ProviderError 记录。provider 参数优先于异常自带的 provider。"""

        existing = self.extra.get("provider_error")
        if isinstance(existing, ProviderError) and provider in (None, existing.provider):
            return existing
        details: Dict[str, Any] = dict(self.extra.get("details") or {})
        if self.http_status and "statusCode" not in details and self.http_status != 400:
            details["statusCode"] = self.http_status
        return ProviderError(
            type=self.error_type,
            message=self.message,
            code=self.code,
            provider=provider or self.provider or "unknown",
            retry_after=self.retry_after,
            details=details or None,
        )


class ValidationError(BusinessError):
    """参数或配置校验失败，不可重试。"""

    error_type = "validation"


class ConfigurationError(ValidationError):
    """Provider 配置无效（initialize 失败、类型不匹配等）。"""


class InvalidMessageFormatError(ValidationError):
    """消息列表为空、角色未知或内容为空。"""


class InvalidProviderError(ValidationError):
    """注册到 EngineRegistry 的对象缺少必需的接口。"""


class ProviderCreationError(ValidationError):
    """批量创建 Provider 时部分失败。

    - errors: 每个失败条目的描述（"Provider i (type): reason"）。
    - providers: 成功创建的 Provider 实例。
    """

    def __init__(self, message: str, errors: list, providers: list):
        super().__init__(code="PROVIDER_CREATION_FAILED", message=message)
        self.errors = errors
        self.providers = providers


class NotInitializedError(BusinessError):
    """在 initialize 之前调用了需要配置的方法（编程错误）。"""

    error_type = "not_initialized"

    def __init__(
        self,
        code: str = "NOT_INITIALIZED",
        message: str = "Provider not initialized",
        http_status: int = 500,
        **extra,
    ):
        super().__init__(code=code, message=message, http_status=http_status, **extra)


class NotSupportedError(BusinessError):
    """Provider 不支持该操作（编程错误）。"""

    error_type = "not_supported"


class ProviderNotFoundError(BusinessError):
    """EngineRegistry 中不存在指定类型的 Provider。"""

    error_type = "validation"


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、服务端 5xx 等。"""

    error_type = "network"


class ProviderTimeoutError(NetworkError):
    """请求或读取超时。"""

    error_type = "timeout"


class AbortError(BusinessError):
    """调用方取消了请求，始终与失败区分开。"""

    error_type = "aborted"

    def __init__(
        self,
        code: str = "ABORTED",
        message: str = "Request was cancelled",
        http_status: int = 499,
        **extra,
    ):
        super().__init__(code=code, message=message, http_status=http_status, **extra)


class AuthError(BusinessError):
    """鉴权失败（API Key 无效、无权限）。"""

    error_type = "authentication"


class RateLimitError(BusinessError):
    """Provider 限流错误，由上层负责重试/退避策略。"""

    error_type = "rate_limit"


class ApiError(BusinessError):
    """第三方 API 返回了无法归类的错误。"""

    error_type = "unknown"


class UnknownProviderError(BusinessError):
    """兜底异常。"""

    error_type = "unknown"


_ERROR_CLASSES: Dict[str, Type[BusinessError]] = {
    "validation": ValidationError,
    "not_initialized": NotInitializedError,
    "not_supported": NotSupportedError,
    "network": NetworkError,
    "timeout": ProviderTimeoutError,
    "aborted": AbortError,
    "authentication": AuthError,
    "rate_limit": RateLimitError,
    "unknown": UnknownProviderError,
}


def raise_provider_error(error: ProviderError) -> None:
    """把 ProviderError 记录还原成对应的异常并抛出。"""

    cls = _ERROR_CLASSES.get(error.type, UnknownProviderError)
    status = (error.details or {}).get("statusCode") or 400
    raise cls(
        code=error.code,
        message=error.message,
        http_status=status,
        provider=error.provider,
        retry_after=error.retry_after,
        details=dict(error.details or {}),
        provider_error=error,
    )
