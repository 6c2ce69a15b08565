"""OpenRouter chat/completions 请求体构建。

- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>，另带 HTTP-Referer / X-Title 归属头

推理参数取自模型目录：带 token 预算的模型发送 reasoning.max_tokens，
effort 风格模型发送 reasoning.effort（minimal 映射为 low）。
anthropic/ 与 google/ 模型的长文本块附加 ephemeral cache_control。
"""

from typing import Any, Dict, List, Optional

from provider_core.domain.models import ChatMessage, ChatOptions
from provider_core.providers.catalog import get_model_by_id
from provider_core.providers.configs import OpenRouterConfig

DEFAULT_CACHE_THRESHOLD = 2000


def base_model_id(model: str) -> str:
    return model.split(":", 1)[0] or model


def supports_reasoning(model: str) -> bool:
    cfg = get_model_by_id(base_model_id(model))
    return bool(cfg and (cfg.reasoning_effort or cfg.reasoning_max_tokens))


def supports_caching(model: str) -> bool:
    base = base_model_id(model)
    return base.startswith("anthropic/") or base.startswith("google/")


def _reasoning_payload(config: OpenRouterConfig, options: ChatOptions) -> Optional[Dict[str, Any]]:
    model_cfg = get_model_by_id(base_model_id(config.model))
    if model_cfg is None or not (model_cfg.reasoning_effort or model_cfg.reasoning_max_tokens):
        return None
    user = config.reasoning
    reasoning: Dict[str, Any] = {}
    if model_cfg.reasoning_max_tokens is not None:
        reasoning["max_tokens"] = (user.max_tokens if user and user.max_tokens else None) or model_cfg.reasoning_max_tokens
    else:
        effort = options.reasoning_effort or (user.effort if user else None) or model_cfg.reasoning_effort
        reasoning["effort"] = "low" if effort == "minimal" else effort
    if user and user.exclude:
        reasoning["exclude"] = True
    return reasoning


def _apply_cache_control(messages: List[Dict[str, Any]], threshold: int) -> None:
    for msg in messages:
        content = msg.get("content")
        if isinstance(content, str) and len(content) > threshold:
            msg["content"] = [{"type": "text", "text": content, "cache_control": {"type": "ephemeral"}}]


def build_request(
    messages: List[ChatMessage],
    config: OpenRouterConfig,
    options: Optional[ChatOptions] = None,
    cache_threshold: int = DEFAULT_CACHE_THRESHOLD,
) -> Dict[str, Any]:
    options = options or ChatOptions()
    formatted: List[Dict[str, Any]] = []
    system = options.system_prompt or "\n".join(m.content for m in messages if m.role == "system")
    if system:
        formatted.append({"role": "system", "content": system})
    for m in messages:
        if m.role in ("user", "assistant"):
            formatted.append({"role": m.role, "content": m.content})

    base = base_model_id(config.model)
    body: Dict[str, Any] = {
        "model": f"{base}:online" if config.web_search else base,
        "messages": formatted,
        "stream": True,
    }
    reasoning = _reasoning_payload(config, options)
    if reasoning:
        body["reasoning"] = reasoning
    if supports_caching(base):
        _apply_cache_control(formatted, cache_threshold)
    return body


def build_headers(api_key: str, referer: Optional[str], title: str) -> Dict[str, str]:
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "X-Title": title,
    }
    if referer:
        headers["HTTP-Referer"] = referer
    return headers
