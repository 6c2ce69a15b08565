"""xAI Grok 请求体构建（Responses 风格端点 {base_url}/responses）。

消息映射与续写模式与 OpenAI 相同，但不发送 reasoning 参数：
Grok 的推理由模型 ID 决定（*-reasoning / *-non-reasoning）。
"""

from typing import Any, Dict, List, Optional

from provider_core.domain.models import ChatMessage, ChatOptions
from provider_core.providers.configs import GrokConfig
from provider_core.providers.openai.request_builder import build_input, system_instructions


def build_request(
    messages: List[ChatMessage],
    config: GrokConfig,
    options: Optional[ChatOptions] = None,
    stream: bool = True,
) -> Dict[str, Any]:
    options = options or ChatOptions()
    body: Dict[str, Any] = {
        "model": config.model,
        "input": build_input(messages, options.previous_response_id),
        "tools": [{"type": "web_search"}],
        "store": True,
    }
    instructions = system_instructions(messages, options)
    if instructions:
        body["instructions"] = instructions
    if options.previous_response_id:
        body["previous_response_id"] = options.previous_response_id
    if stream:
        body["stream"] = True
    return body


def build_headers(api_key: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "Accept": "text/event-stream",
    }
