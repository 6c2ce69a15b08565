"""Provider 配置模型与校验。

ProviderConfig 是以 type 为标签的联合类型：外层信封只携带 type 与原始
配置字典，Provider 在 initialize 时先校验字典，再冻结成对应的 dataclass。

配置键使用 snake_case，同时兼容前端常见的 camelCase 写法（apiKey、baseUrl 等）。
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlparse

from provider_core.providers.catalog import get_default_model_for_provider, model_exists

PROVIDER_TYPES = ("openai", "gemini", "openrouter", "grok", "openai_compat")

REASONING_EFFORTS = ("minimal", "low", "medium", "high")
THINKING_LEVELS = ("low", "high")


@dataclass
class ProviderConfig:
    """配置信封：type + 厂商相关的原始配置。"""

    type: str
    config: Mapping[str, Any] = field(default_factory=dict)


def _get(config: Mapping[str, Any], key: str, default: Any = None) -> Any:
    """按 snake_case 取值，缺失时回退到 camelCase 键。"""

    if key in config:
        return config[key]
    head, *rest = key.split("_")
    camel = head + "".join(p.capitalize() for p in rest)
    return config.get(camel, default)


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def parse_thinking_budget(value: Any) -> Optional[int]:
    """thinking budget 允许整数或整数字符串，其他值视为无效（返回 None）。"""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


# ---- 冻结后的配置变体 ----


@dataclass(frozen=True)
class OpenAIConfig:
    api_key: str
    model: str
    reasoning_effort: Optional[str] = None
    base_url: Optional[str] = None
    type: str = "openai"

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "OpenAIConfig":
        return cls(
            api_key=_get(config, "api_key"),
            model=_get(config, "model"),
            reasoning_effort=_get(config, "reasoning_effort"),
            base_url=_get(config, "base_url"),
        )


@dataclass(frozen=True)
class GeminiConfig:
    api_key: str
    model: str
    thinking_budget: Optional[int] = None
    thinking_level: Optional[str] = None
    show_thoughts: bool = False
    use_url_context: bool = False
    base_url: Optional[str] = None
    type: str = "gemini"

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "GeminiConfig":
        return cls(
            api_key=_get(config, "api_key"),
            model=_get(config, "model"),
            thinking_budget=parse_thinking_budget(_get(config, "thinking_budget")),
            thinking_level=_get(config, "thinking_level"),
            show_thoughts=bool(_get(config, "show_thoughts", False)),
            use_url_context=bool(_get(config, "use_url_context", False)),
            base_url=_get(config, "base_url"),
        )


@dataclass(frozen=True)
class OpenRouterReasoning:
    effort: Optional[str] = None
    max_tokens: Optional[int] = None
    exclude: bool = False


@dataclass(frozen=True)
class OpenRouterConfig:
    api_key: str
    model: str
    reasoning: Optional[OpenRouterReasoning] = None
    web_search: bool = False
    base_url: Optional[str] = None
    type: str = "openrouter"

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "OpenRouterConfig":
        raw = _get(config, "reasoning")
        reasoning = None
        if isinstance(raw, Mapping):
            reasoning = OpenRouterReasoning(
                effort=_get(raw, "effort"),
                max_tokens=_get(raw, "max_tokens"),
                exclude=bool(_get(raw, "exclude", False)),
            )
        return cls(
            api_key=_get(config, "api_key"),
            model=_get(config, "model"),
            reasoning=reasoning,
            web_search=bool(_get(config, "web_search", False)),
            base_url=_get(config, "base_url"),
        )

    @property
    def show_thinking(self) -> bool:
        return not (self.reasoning is not None and self.reasoning.exclude)


@dataclass(frozen=True)
class GrokConfig:
    api_key: str
    model: str
    base_url: Optional[str] = None
    type: str = "grok"

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "GrokConfig":
        return cls(
            api_key=_get(config, "api_key"),
            model=_get(config, "model"),
            base_url=_get(config, "base_url"),
        )


@dataclass(frozen=True)
class OpenAICompatConfig:
    api_key: str
    model: str
    base_url: str
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    show_thinking: bool = True
    type: str = "openai_compat"

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "OpenAICompatConfig":
        return cls(
            api_key=_get(config, "api_key"),
            model=_get(config, "model"),
            base_url=str(_get(config, "base_url")).rstrip("/"),
            headers=MappingProxyType(dict(_get(config, "headers") or {})),
            temperature=_get(config, "temperature"),
            max_tokens=_get(config, "max_tokens"),
            show_thinking=bool(_get(config, "show_thinking", True)),
        )


# ---- 校验函数：只返回错误列表，从不抛异常 ----


def _check_api_key_and_model(config: Mapping[str, Any], errors: List[str], catalog: bool) -> None:
    if _is_blank(_get(config, "api_key")):
        errors.append("Invalid API key")
    model = _get(config, "model")
    if _is_blank(model):
        errors.append("Invalid model")
    elif catalog and not model_exists(model):
        errors.append(f"Unknown model: {model}")


def validate_openai_config(config: Mapping[str, Any]) -> List[str]:
    errors: List[str] = []
    _check_api_key_and_model(config, errors, catalog=True)
    effort = _get(config, "reasoning_effort")
    if effort is not None and effort not in REASONING_EFFORTS:
        errors.append("Invalid reasoning effort")
    return errors


def validate_gemini_config(config: Mapping[str, Any]) -> List[str]:
    errors: List[str] = []
    _check_api_key_and_model(config, errors, catalog=False)
    budget = _get(config, "thinking_budget")
    if budget is not None and parse_thinking_budget(budget) is None:
        errors.append("Invalid thinking budget")
    level = _get(config, "thinking_level")
    if level is not None and level not in THINKING_LEVELS:
        errors.append("Invalid thinking level")
    show = _get(config, "show_thoughts")
    if show is not None and not isinstance(show, bool):
        errors.append("Invalid show thoughts setting")
    return errors


def validate_openrouter_config(config: Mapping[str, Any]) -> List[str]:
    errors: List[str] = []
    _check_api_key_and_model(config, errors, catalog=False)
    reasoning = _get(config, "reasoning")
    if reasoning is not None:
        if not isinstance(reasoning, Mapping):
            errors.append("Invalid reasoning settings")
        else:
            effort = _get(reasoning, "effort")
            if effort is not None and effort not in REASONING_EFFORTS:
                errors.append("Invalid reasoning effort")
            max_tokens = _get(reasoning, "max_tokens")
            if max_tokens is not None and (
                isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0
            ):
                errors.append("Invalid max thinking tokens")
            exclude = _get(reasoning, "exclude")
            if exclude is not None and not isinstance(exclude, bool):
                errors.append("Invalid reasoning exclude setting")
    return errors


def validate_grok_config(config: Mapping[str, Any]) -> List[str]:
    errors: List[str] = []
    _check_api_key_and_model(config, errors, catalog=True)
    return errors


def validate_openai_compat_config(config: Mapping[str, Any]) -> List[str]:
    errors: List[str] = []
    _check_api_key_and_model(config, errors, catalog=False)
    base_url = _get(config, "base_url")
    if _is_blank(base_url):
        errors.append("Invalid endpoint URL")
    else:
        parsed = urlparse(base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append("Invalid endpoint URL format")
    headers = _get(config, "headers")
    if headers is not None:
        if not isinstance(headers, Mapping) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in headers.items()
        ):
            errors.append("Invalid custom headers")
    temperature = _get(config, "temperature")
    if temperature is not None and (
        isinstance(temperature, bool) or not isinstance(temperature, (int, float)) or not 0 <= temperature <= 2
    ):
        errors.append("Invalid temperature")
    max_tokens = _get(config, "max_tokens")
    if max_tokens is not None and (isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0):
        errors.append("Invalid max tokens")
    return errors


VALIDATORS = {
    "openai": validate_openai_config,
    "gemini": validate_gemini_config,
    "openrouter": validate_openrouter_config,
    "grok": validate_grok_config,
    "openai_compat": validate_openai_compat_config,
}


def default_config(provider_type: str, api_key: str = "", **overrides: Any) -> ProviderConfig:
    """生成某个 Provider 的默认配置信封（模型取目录中的默认模型）。"""

    body: Dict[str, Any] = {"api_key": api_key}
    model = get_default_model_for_provider(provider_type)
    if model:
        body["model"] = model
    if provider_type == "openai":
        body["reasoning_effort"] = "low"
    elif provider_type == "gemini":
        body["thinking_budget"] = -1
        body["show_thoughts"] = False
    elif provider_type == "openrouter":
        body["reasoning"] = {"exclude": False}
    body.update(overrides)
    return ProviderConfig(type=provider_type, config=body)
