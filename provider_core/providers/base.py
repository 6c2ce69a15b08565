"""Provider 公共基类。

上层（聊天服务 / UI）不直接依赖具体厂商的 HTTP 细节，而是依赖 BaseEngine：

- initialize(config): 校验并冻结配置。
- stream_chat(messages, options): 返回惰性、单次遍历的 NormalizedChunk 迭代器。
- chat(messages, options): 非流式调用，返回聚合后的 ChatResponse。
- test_connection(): 访问模型列表接口，返回连通与否。
- format_error(raw): 把任意失败值映射成 ProviderError。

子类只需提供请求体构建、端点/请求头以及流式处理器，其余流程
（消息校验、请求计数、取消检查、错误归一化）都在这里统一完成。
"""

import codecs
import time
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, Iterator, List, Mapping, Optional, Sequence, Type

from provider_core.config.settings import Settings, settings
from provider_core.domain.exceptions import (
    AbortError,
    BusinessError,
    ConfigurationError,
    InvalidMessageFormatError,
    NotInitializedError,
    raise_provider_error,
)
from provider_core.domain.models import (
    VALID_ROLES,
    ChatMessage,
    ChatOptions,
    ChatResponse,
    NormalizedChunk,
    ProviderCapabilities,
    ProviderError,
    ValidationResult,
)
from provider_core.infrastructure.logging.logger import logger
from provider_core.infrastructure.transport import (
    CancellationToken,
    HttpStatusError,
    HttpxTransport,
    Transport,
    TransportRequest,
)
from provider_core.providers.catalog import ModelConfig, get_model_by_id, get_models_by_provider
from provider_core.providers.configs import VALIDATORS, ProviderConfig
from provider_core.providers.errors import ErrorHandler
from provider_core.providers.stream_base import StreamProcessor


@dataclass
class RateLimitStatus:
    request_count: int
    window_start: float
    next_reset_time: float


class BaseEngine:
    """所有 Provider 的基类。"""

    type: ClassVar[str] = ""
    name: ClassVar[str] = ""
    capabilities: ClassVar[ProviderCapabilities]
    config_class: ClassVar[Type[Any]]
    error_handler_class: ClassVar[Type[ErrorHandler]] = ErrorHandler

    def __init__(
        self,
        transport: Optional[Transport] = None,
        cfg: Settings = settings,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = cfg
        self._transport = transport or HttpxTransport(timeout=cfg.http_timeout)
        self._clock = clock
        self._window = float(cfg.rate_window_seconds)
        self._config: Optional[Any] = None
        self._request_timestamps: List[float] = []
        self._errors = self.error_handler_class()

    # ---- 生命周期 ----

    def initialize(self, config: ProviderConfig) -> None:
        if not isinstance(config, ProviderConfig) or config.type != self.type:
            got = getattr(config, "type", type(config).__name__)
            raise ConfigurationError(
                code="CONFIG_TYPE_MISMATCH",
                message=f"Invalid config type for {self.name}: expected {self.type}, got {got}",
                provider=self.type,
            )
        result = self.validate_config(config.config)
        if not result.is_valid:
            raise ConfigurationError(
                code="INVALID_CONFIG",
                message=f"Configuration validation failed: {', '.join(result.errors)}",
                provider=self.type,
                details={"errors": list(result.errors)},
            )
        self._config = self.config_class.from_mapping(config.config)
        logger.info("provider.initialized", extra={"extra": {"provider": self.type, "model": self._config.model}})

    def validate_config(self, config: Any) -> ValidationResult:
        """校验配置字典，从不抛异常。"""

        if isinstance(config, ProviderConfig):
            if config.type != self.type:
                return ValidationResult(is_valid=False, errors=[f"Invalid provider type: {config.type}"])
            config = config.config
        if not isinstance(config, Mapping):
            return ValidationResult(is_valid=False, errors=["Configuration must be an object"])
        errors = VALIDATORS[self.type](config)
        return ValidationResult(is_valid=not errors, errors=errors)

    def has_required_config(self) -> bool:
        cfg = self._config
        if cfg is None:
            return False
        return bool(cfg.api_key and cfg.api_key.strip() and cfg.model)

    def is_configured(self) -> bool:
        return self._config is not None

    def get_config(self) -> Optional[Any]:
        return self._config

    def reset(self) -> None:
        """丢弃配置与请求历史，回到未初始化状态。"""

        self._config = None
        self._request_timestamps = []

    # ---- 模型目录 ----

    def get_models(self) -> List[ModelConfig]:
        return get_models_by_provider(self.type)

    def get_model(self, model_id: str) -> Optional[ModelConfig]:
        model = get_model_by_id(model_id)
        if model is None or model.provider != self.type:
            return None
        return model

    # ---- 错误 ----

    def format_error(self, raw: Any) -> ProviderError:
        return self._errors.format(raw)

    # ---- 流式对话 ----

    def stream_chat(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[ChatOptions] = None,
    ) -> Iterator[NormalizedChunk]:
        """校验消息并发起流式请求。

        校验在调用时立即执行；返回的迭代器在首次 next() 时才打开连接。
        """

        self._validate_messages(messages)
        options = options or ChatOptions()
        request = self._chat_request(messages, options, stream=True)
        processor = self.create_stream_processor(options)
        return self._run_stream(request, processor, options.cancel_token)

    def chat(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[ChatOptions] = None,
    ) -> ChatResponse:
        """一次性读取整段流式响应，聚合成单个 ChatResponse。"""

        self._validate_messages(messages)
        options = options or ChatOptions()
        request = self._chat_request(messages, options, stream=False)
        processor = self.create_stream_processor(options)
        log_extra = {"provider": self.type, "model": processor.model}
        logger.info("provider.chat.start", extra={"extra": log_extra})
        try:
            response = self._transport.request(request)
            if options.cancel_token is not None:
                options.cancel_token.raise_if_cancelled()
            chunks = processor.process_text(response.text) + processor.finish()
        except BusinessError as e:
            logger.error(f"Chat failed: {e.message}", extra={"extra": {**log_extra, "code": e.code}})
            raise
        except Exception as e:
            error = self.format_error(e)
            logger.error(f"Chat failed: {error.message}", extra={"extra": {**log_extra, "code": error.code}})
            raise_provider_error(error)
        result = ChatResponse.from_chunks(chunks, processor.model)
        logger.info("provider.chat.end", extra={"extra": {**log_extra, "finish_reason": result.finish_reason}})
        return result

    def test_connection(self) -> bool:
        """请求厂商模型列表接口，检查端点与密钥是否可用。未初始化时返回 False。"""

        if self._config is None:
            return False
        self._track_request()
        request = TransportRequest(
            url=self.models_endpoint(),
            method="GET",
            headers=self.headers(),
            timeout=self._settings.http_timeout,
        )
        try:
            self._transport.request(request)
        except (BusinessError, HttpStatusError) as e:
            logger.warning("provider.connection_failed", extra={"extra": {"provider": self.type, "error": str(e)}})
            return False
        return True

    def _chat_request(self, messages: Sequence[ChatMessage], options: ChatOptions, stream: bool) -> TransportRequest:
        self._track_request()
        return TransportRequest(
            url=self.endpoint(options),
            method="POST",
            headers=self.headers(),
            body=self.build_request_body(list(messages), options),
            stream=stream,
            cancel_token=options.cancel_token,
            timeout=self._settings.http_timeout,
        )

    def _run_stream(
        self,
        request: TransportRequest,
        processor: StreamProcessor,
        token: Optional[CancellationToken],
    ) -> Iterator[NormalizedChunk]:
        log_extra = {"provider": self.type, "model": processor.model}
        logger.info("provider.stream.start", extra={"extra": log_extra})
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        emitted = 0
        try:
            for raw in self._transport.stream(request):
                if token is not None:
                    token.raise_if_cancelled()
                for chunk in processor.process_text(decoder.decode(raw)):
                    if token is not None:
                        token.raise_if_cancelled()
                    emitted += 1
                    yield chunk
            tail = processor.process_text(decoder.decode(b"", final=True))
            for chunk in tail + processor.finish():
                if token is not None:
                    token.raise_if_cancelled()
                emitted += 1
                yield chunk
        except AbortError:
            logger.info("provider.stream.aborted", extra={"extra": {**log_extra, "chunks": emitted}})
            raise
        except BusinessError as e:
            logger.error(f"Stream failed: {e.message}", extra={"extra": {**log_extra, "code": e.code}})
            raise
        except Exception as e:
            error = self.format_error(e)
            logger.error(f"Stream failed: {error.message}", extra={"extra": {**log_extra, "code": error.code}})
            raise_provider_error(error)
        logger.info("provider.stream.end", extra={"extra": {**log_extra, "chunks": emitted}})

    # ---- 子类实现 ----

    def endpoint(self, options: ChatOptions) -> str:
        raise NotImplementedError

    def models_endpoint(self) -> str:
        raise NotImplementedError

    def headers(self) -> Dict[str, str]:
        raise NotImplementedError

    def build_request_body(self, messages: List[ChatMessage], options: ChatOptions) -> Dict[str, Any]:
        raise NotImplementedError

    def create_stream_processor(self, options: ChatOptions) -> StreamProcessor:
        raise NotImplementedError

    # ---- 流式辅助 ----

    @staticmethod
    def extract_content(chunk: NormalizedChunk) -> Optional[str]:
        return chunk.content

    @staticmethod
    def is_stream_complete(chunk: NormalizedChunk) -> bool:
        return chunk.finish_reason is not None

    # ---- 校验与请求统计 ----

    def _require_config(self) -> Any:
        if self._config is None:
            raise NotInitializedError(provider=self.type)
        return self._config

    def _validate_messages(self, messages: Sequence[ChatMessage]) -> None:
        self._require_config()
        if not isinstance(messages, (list, tuple)) or not messages:
            raise InvalidMessageFormatError(
                code="EMPTY_MESSAGES",
                message="Messages array cannot be empty",
                provider=self.type,
            )
        for i, msg in enumerate(messages):
            role = getattr(msg, "role", None)
            content = getattr(msg, "content", None)
            if role not in VALID_ROLES or not isinstance(content, str):
                raise InvalidMessageFormatError(
                    code="INVALID_MESSAGE",
                    message="Invalid message format",
                    provider=self.type,
                    details={"index": i},
                )
            if not content.strip():
                raise InvalidMessageFormatError(
                    code="EMPTY_CONTENT",
                    message="Message content cannot be empty",
                    provider=self.type,
                    details={"index": i},
                )

    def _prune_requests(self) -> None:
        cutoff = self._clock() - self._window
        self._request_timestamps = [t for t in self._request_timestamps if t > cutoff]

    def _track_request(self) -> None:
        self._prune_requests()
        self._request_timestamps.append(self._clock())

    def get_request_history(self) -> List[float]:
        self._prune_requests()
        return list(self._request_timestamps)

    def get_rate_limit_status(self) -> RateLimitStatus:
        self._prune_requests()
        now = self._clock()
        start = self._request_timestamps[0] if self._request_timestamps else now
        return RateLimitStatus(
            request_count=len(self._request_timestamps),
            window_start=start,
            next_reset_time=start + self._window,
        )
