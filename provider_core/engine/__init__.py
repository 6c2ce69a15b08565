"""Provider 生命周期管理：注册表（registry）与工厂（factory）。"""

from provider_core.engine.factory import EngineFactory
from provider_core.engine.registry import EngineRegistry, EventChannel

__all__ = ["EngineFactory", "EngineRegistry", "EventChannel"]
