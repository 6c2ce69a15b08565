"""Provider 注册表。

持有零个或多个已初始化的 Provider，记录当前激活的 Provider，
并通过事件通道广播生命周期变化：

- providerRegistered: {"type", "provider"}
- providerUnregistered: {"type", "provider"}
- activeProviderChanged: {"previous_type", "current_type", "provider"}

监听器抛出的异常只记录日志，不影响注册表自身的状态转换。
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from provider_core.domain.exceptions import InvalidProviderError, ProviderNotFoundError
from provider_core.domain.models import ProviderCapabilities
from provider_core.infrastructure.logging.logger import logger

Listener = Callable[[Dict[str, Any]], None]

EVENT_KINDS = ("providerRegistered", "providerUnregistered", "activeProviderChanged")

REQUIRED_ATTRIBUTES = ("type", "name", "capabilities")
REQUIRED_METHODS = (
    "initialize",
    "validate_config",
    "has_required_config",
    "test_connection",
    "chat",
    "stream_chat",
    "get_models",
    "get_model",
    "format_error",
)


class EventChannel:
    """单一事件类型的发布/订阅通道。"""

    def __init__(self, kind: str):
        self.kind = kind
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, event: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(
                    "registry.listener_failed",
                    extra={"extra": {"event": self.kind, "error": repr(e)}},
                )

    def __len__(self) -> int:
        return len(self._listeners)


@dataclass(frozen=True)
class ProviderMetadata:
    type: str
    name: str
    capabilities: ProviderCapabilities


class EngineRegistry:
    def __init__(self) -> None:
        self._providers: Dict[str, Any] = {}
        self._active_type: Optional[str] = None
        self.channels: Dict[str, EventChannel] = {kind: EventChannel(kind) for kind in EVENT_KINDS}

    # ---- 事件 ----

    def on(self, kind: str, listener: Listener) -> None:
        self._channel(kind).subscribe(listener)

    def off(self, kind: str, listener: Listener) -> None:
        self._channel(kind).unsubscribe(listener)

    def _channel(self, kind: str) -> EventChannel:
        try:
            return self.channels[kind]
        except KeyError:
            raise ValueError(f"Unknown registry event: {kind}") from None

    # ---- 注册 ----

    def register(self, provider: Any) -> bool:
        self._validate_provider(provider)
        self._providers[provider.type] = provider
        logger.info("registry.registered", extra={"extra": {"provider": provider.type}})
        self.channels["providerRegistered"].publish({"type": provider.type, "provider": provider})
        return True

    def unregister(self, provider_type: str) -> bool:
        provider = self._providers.get(provider_type)
        if provider is None:
            return False
        if self._active_type == provider_type:
            self.clear_active_provider()
        del self._providers[provider_type]
        logger.info("registry.unregistered", extra={"extra": {"provider": provider_type}})
        self.channels["providerUnregistered"].publish({"type": provider_type, "provider": provider})
        return True

    @staticmethod
    def _validate_provider(provider: Any) -> None:
        if provider is None:
            raise InvalidProviderError(code="INVALID_PROVIDER", message="Invalid provider: provider is required")
        missing = [a for a in REQUIRED_ATTRIBUTES if not getattr(provider, a, None)]
        missing += [m for m in REQUIRED_METHODS if not callable(getattr(provider, m, None))]
        if missing:
            raise InvalidProviderError(
                code="INVALID_PROVIDER",
                message=f"Invalid provider: missing required properties ({', '.join(missing)})",
                details={"missing": missing},
            )
        if not isinstance(provider.capabilities, ProviderCapabilities):
            raise InvalidProviderError(code="INVALID_PROVIDER", message="Invalid provider: invalid capabilities")

    # ---- 查询 ----

    def get_provider(self, provider_type: str) -> Any:
        provider = self._providers.get(provider_type)
        if provider is None:
            raise ProviderNotFoundError(
                code="PROVIDER_NOT_FOUND",
                message=f"Provider not found: {provider_type}",
                http_status=404,
                provider=provider_type,
            )
        return provider

    def has_provider(self, provider_type: str) -> bool:
        return provider_type in self._providers

    def get_registered_providers(self) -> List[str]:
        return list(self._providers)

    def get_provider_metadata(self, provider_type: str) -> ProviderMetadata:
        provider = self.get_provider(provider_type)
        return ProviderMetadata(type=provider.type, name=provider.name, capabilities=provider.capabilities)

    # ---- 激活 ----

    def set_active_provider(self, provider_type: str) -> bool:
        provider = self.get_provider(provider_type)
        if self._active_type == provider_type:
            return True
        previous = self._active_type
        self._active_type = provider_type
        self.channels["activeProviderChanged"].publish(
            {"previous_type": previous, "current_type": provider_type, "provider": provider}
        )
        return True

    def get_active_provider(self) -> Optional[Any]:
        if self._active_type is None:
            return None
        return self._providers.get(self._active_type)

    def get_active_provider_type(self) -> Optional[str]:
        return self._active_type

    def clear_active_provider(self) -> None:
        if self._active_type is None:
            return
        previous = self._active_type
        self._active_type = None
        self.channels["activeProviderChanged"].publish(
            {"previous_type": previous, "current_type": None, "provider": None}
        )

    # ---- 其他 ----

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_providers": len(self._providers),
            "active_provider": self._active_type,
            "registered_types": self.get_registered_providers(),
        }

    def clear(self) -> None:
        self.clear_active_provider()
        for provider_type in list(self._providers):
            self.unregister(provider_type)

    def is_empty(self) -> bool:
        return not self._providers

    def __len__(self) -> int:
        return len(self._providers)
