"""Provider 工厂：根据声明式配置创建并初始化 Provider 实例。

批量创建时逐条处理，单条失败不会中断后续条目；全部尝试完之后，
若有失败则抛出一个 ProviderCreationError，列出每条失败并带上已成功的实例。
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Type

from provider_core.config.settings import Settings, settings
from provider_core.domain.exceptions import (
    BusinessError,
    ConfigurationError,
    ProviderCreationError,
    ValidationError,
)
from provider_core.domain.models import ValidationResult
from provider_core.engine.registry import EngineRegistry
from provider_core.infrastructure.logging.logger import logger
from provider_core.infrastructure.transport import Transport
from provider_core.providers.base import BaseEngine
from provider_core.providers.catalog import get_model_by_id
from provider_core.providers.configs import PROVIDER_TYPES, VALIDATORS, ProviderConfig, default_config
from provider_core.providers.gemini.provider import GeminiProvider
from provider_core.providers.grok.provider import GrokProvider
from provider_core.providers.openai.provider import OpenAIProvider
from provider_core.providers.openai_compat.provider import OpenAICompatProvider
from provider_core.providers.openrouter.provider import OpenRouterProvider

PROVIDER_CLASSES: Dict[str, Type[BaseEngine]] = {
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
    "openrouter": OpenRouterProvider,
    "grok": GrokProvider,
    "openai_compat": OpenAICompatProvider,
}


class EngineFactory:
    def __init__(self, transport: Optional[Transport] = None, cfg: Settings = settings):
        self._transport = transport
        self._settings = cfg

    # ---- 单个 Provider ----

    def create_provider(self, config: Optional[ProviderConfig]) -> BaseEngine:
        provider_type = getattr(config, "type", None)
        if not self.is_provider_supported(provider_type):
            raise ValidationError(
                code="UNSUPPORTED_PROVIDER",
                message=f"Unsupported provider type: {provider_type}",
            )
        if not isinstance(getattr(config, "config", None), Mapping):
            raise ValidationError(
                code="INVALID_CONFIG",
                message="Invalid provider configuration: config object is required",
                provider=provider_type,
            )

        provider = PROVIDER_CLASSES[provider_type](transport=self._transport, cfg=self._settings)
        try:
            provider.initialize(config)
        except BusinessError as e:
            raise ConfigurationError(
                code="PROVIDER_INIT_FAILED",
                message=f"Failed to initialize {provider_type} provider: {e.message}",
                provider=provider_type,
                details=e.extra.get("details"),
            ) from e
        logger.info("factory.created", extra={"extra": {"provider": provider_type}})
        return provider

    def create_and_register(self, config: ProviderConfig, registry: EngineRegistry) -> BaseEngine:
        provider_type = getattr(config, "type", None)
        try:
            provider = self.create_provider(config)
            registry.register(provider)
        except BusinessError as e:
            raise ConfigurationError(
                code="PROVIDER_REGISTER_FAILED",
                message=f"Failed to create and register {provider_type} provider: {e.message}",
                provider=provider_type,
            ) from e
        return provider

    # ---- 批量 ----

    def create_providers(self, configs: Sequence[Optional[ProviderConfig]]) -> List[BaseEngine]:
        return self._create_many(configs, self.create_provider, "Failed to create some providers")

    def create_and_register_providers(
        self,
        configs: Sequence[Optional[ProviderConfig]],
        registry: EngineRegistry,
    ) -> List[BaseEngine]:
        return self._create_many(
            configs,
            lambda c: self.create_and_register(c, registry),
            "Failed to create and register some providers",
        )

    @staticmethod
    def _create_many(configs, create, headline: str) -> List[BaseEngine]:
        providers: List[BaseEngine] = []
        errors: List[str] = []
        for i, config in enumerate(configs):
            if config is None:
                errors.append(f"Provider {i} (None): Configuration is missing")
                continue
            try:
                providers.append(create(config))
            except BusinessError as e:
                errors.append(f"Provider {i} ({getattr(config, 'type', None)}): {e.message}")
        if errors:
            logger.warning("factory.partial_failure", extra={"extra": {"errors": errors, "created": len(providers)}})
            raise ProviderCreationError(
                message=headline + ":\n" + "\n".join(errors),
                errors=errors,
                providers=providers,
            )
        return providers

    # ---- 校验与查询 ----

    def validate_configuration(self, config: Optional[ProviderConfig]) -> ValidationResult:
        """与 create_provider 相同的检查，但不创建实例。"""

        provider_type = getattr(config, "type", None)
        if not self.is_provider_supported(provider_type):
            return ValidationResult(is_valid=False, errors=[f"Unsupported provider type: {provider_type}"])
        if not isinstance(getattr(config, "config", None), Mapping):
            return ValidationResult(
                is_valid=False,
                errors=["Invalid provider configuration: config object is required"],
            )
        errors = VALIDATORS[provider_type](config.config)
        return ValidationResult(is_valid=not errors, errors=errors)

    @staticmethod
    def get_supported_providers() -> List[str]:
        return list(PROVIDER_TYPES)

    @staticmethod
    def is_provider_supported(provider_type: Any) -> bool:
        return isinstance(provider_type, str) and provider_type in PROVIDER_CLASSES

    # ---- 默认配置 ----

    @staticmethod
    def create_default_openai_config(api_key: str, model: str = "gpt-5-nano") -> ProviderConfig:
        model_cfg = get_model_by_id(model)
        effort = (model_cfg.reasoning_effort if model_cfg else None) or "low"
        return default_config("openai", api_key, model=model, reasoning_effort=effort)

    @staticmethod
    def create_default_gemini_config(api_key: str, model: str = "gemini-2.5-flash-lite") -> ProviderConfig:
        return default_config("gemini", api_key, model=model, thinking_budget="0", show_thoughts=False)

    @staticmethod
    def create_default_openrouter_config(
        api_key: str,
        model: str = "anthropic/claude-sonnet-4",
    ) -> ProviderConfig:
        return default_config("openrouter", api_key, model=model, reasoning={"effort": "medium"})
