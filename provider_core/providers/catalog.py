"""Provider 与模型目录。

本模块集中声明每个厂商的默认端点与可用模型：

- ModelConfig: 单个模型的静态属性（上下文长度、推理参数等）。
- ProviderCatalog: 某个 Provider 的默认 base_url 与模型列表。

请求构建器通过这里判断模型是否支持推理 / thinking，配置校验通过这里
判断模型 ID 是否存在。
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional


@dataclass(frozen=True)
class ModelConfig:
    """单个模型的配置。"""

    id: str
    name: str
    provider: str
    context_length: int
    max_tokens: int = 8192
    reasoning_effort: Optional[str] = None  # effort 风格推理（OpenAI / DeepSeek）
    reasoning_max_tokens: Optional[int] = None  # token 预算风格推理（Anthropic）
    thinking_budget: Optional[int] = None  # Gemini 2.5，-1 表示动态
    thinking_level: Optional[str] = None  # Gemini 3
    multimodal: bool = False


@dataclass(frozen=True)
class ProviderCatalog:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]
    default_model: str


def _models(*items: ModelConfig) -> Dict[str, ModelConfig]:
    return {m.id: m for m in items}


OPENAI_CATALOG = ProviderCatalog(
    name="openai",
    base_url="https://api.openai.com/v1",
    models=_models(
        ModelConfig("gpt-5-nano", "GPT-5 Nano", "openai", 400000, 128000, reasoning_effort="low", multimodal=True),
        ModelConfig("gpt-5-mini", "GPT-5 Mini", "openai", 400000, 128000, reasoning_effort="low", multimodal=True),
        ModelConfig("gpt-5", "GPT-5", "openai", 400000, 128000, reasoning_effort="medium", multimodal=True),
        ModelConfig("gpt-4.1-mini", "GPT-4.1 Mini", "openai", 1047576, 32768, multimodal=True),
    ),
    default_model="gpt-5-nano",
)

GEMINI_CATALOG = ProviderCatalog(
    name="gemini",
    base_url="https://generativelanguage.googleapis.com",
    models=_models(
        ModelConfig("gemini-2.5-flash-lite", "Gemini 2.5 Flash Lite", "gemini", 1048576, 65536, thinking_budget=0, multimodal=True),
        ModelConfig("gemini-2.5-flash", "Gemini 2.5 Flash", "gemini", 1048576, 65536, thinking_budget=-1, multimodal=True),
        ModelConfig("gemini-2.5-pro", "Gemini 2.5 Pro", "gemini", 1048576, 65536, thinking_budget=-1, multimodal=True),
        ModelConfig("gemini-3-pro-preview", "Gemini 3 Pro", "gemini", 1048576, 65536, thinking_level="high", multimodal=True),
    ),
    default_model="gemini-2.5-flash-lite",
)

OPENROUTER_CATALOG = ProviderCatalog(
    name="openrouter",
    base_url="https://openrouter.ai/api/v1",
    models=_models(
        ModelConfig("anthropic/claude-sonnet-4", "Claude Sonnet 4", "openrouter", 200000, reasoning_max_tokens=8000),
        ModelConfig("openai/gpt-5-mini", "GPT-5 Mini", "openrouter", 400000, reasoning_effort="low"),
        ModelConfig("deepseek/deepseek-r1", "DeepSeek R1", "openrouter", 163840, reasoning_effort="medium"),
        ModelConfig("google/gemini-2.5-flash", "Gemini 2.5 Flash", "openrouter", 1048576),
        ModelConfig("meta-llama/llama-3.3-70b-instruct", "Llama 3.3 70B", "openrouter", 131072),
    ),
    default_model="anthropic/claude-sonnet-4",
)

GROK_CATALOG = ProviderCatalog(
    name="grok",
    base_url="https://api.x.ai/v1",
    models=_models(
        ModelConfig("grok-4-fast-reasoning", "Grok 4 Fast", "grok", 2000000),
        ModelConfig("grok-4-fast-non-reasoning", "Grok 4 Fast (non-reasoning)", "grok", 2000000),
        ModelConfig("grok-4", "Grok 4", "grok", 256000),
    ),
    default_model="grok-4-fast-reasoning",
)


PROVIDER_CATALOG: Mapping[str, ProviderCatalog] = {
    "openai": OPENAI_CATALOG,
    "gemini": GEMINI_CATALOG,
    "openrouter": OPENROUTER_CATALOG,
    "grok": GROK_CATALOG,
}


def get_provider_catalog(name: str) -> ProviderCatalog:
    """根据名称获取 ProviderCatalog，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_CATALOG.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")


def get_models_by_provider(name: str) -> List[ModelConfig]:
    try:
        return list(get_provider_catalog(name).models.values())
    except KeyError:
        return []


def get_model_by_id(model_id: str) -> Optional[ModelConfig]:
    for cfg in PROVIDER_CATALOG.values():
        if model_id in cfg.models:
            return cfg.models[model_id]
    return None


def model_exists(model_id: str) -> bool:
    return get_model_by_id(model_id) is not None


def get_default_model_for_provider(name: str) -> Optional[str]:
    try:
        return get_provider_catalog(name).default_model
    except KeyError:
        return None


def supports_thinking(model_id: str) -> bool:
    """Gemini 模型是否支持 thinking 配置（budget 或 level 任一即可）。"""

    model = get_model_by_id(model_id)
    if model is None:
        return model_id.startswith("gemini-2.5") or model_id.startswith("gemini-3")
    return model.thinking_budget is not None or model.thinking_level is not None
