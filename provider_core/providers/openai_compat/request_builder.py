"""OpenAI 兼容端点（自建网关 / 本地推理服务）的请求体构建。

- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>，可叠加自定义请求头
"""

from typing import Any, Dict, List, Optional

from provider_core.domain.models import ChatMessage, ChatOptions
from provider_core.providers.configs import OpenAICompatConfig


def build_request(
    messages: List[ChatMessage],
    config: OpenAICompatConfig,
    options: Optional[ChatOptions] = None,
) -> Dict[str, Any]:
    options = options or ChatOptions()
    formatted: List[Dict[str, Any]] = []
    if options.system_prompt:
        formatted.append({"role": "system", "content": options.system_prompt})
    for m in messages:
        if m.role == "system" and options.system_prompt:
            continue
        formatted.append({"role": m.role, "content": m.content})

    body: Dict[str, Any] = {
        "model": config.model,
        "messages": formatted,
        "stream": True,
    }
    if config.temperature is not None:
        body["temperature"] = config.temperature
    if config.max_tokens is not None:
        body["max_tokens"] = config.max_tokens
    return body


def build_headers(config: OpenAICompatConfig) -> Dict[str, str]:
    headers = {
        "Authorization": f"Bearer {config.api_key}",
        "Content-Type": "application/json",
        "Accept": "text/event-stream",
    }
    headers.update(config.headers)
    return headers
