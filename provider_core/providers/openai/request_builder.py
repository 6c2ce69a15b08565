"""OpenAI Responses API 请求体构建。

- URL: {base_url}/responses
- 认证: Authorization: Bearer <api_key>

历史消息中 assistant 轮次使用 output_text，user 轮次使用 input_text；
system 消息合并进 instructions。提供 previous_response_id 时只发送
最新一条用户消息，由服务端续接会话。
"""

from typing import Any, Dict, List, Optional

from provider_core.domain.models import ChatMessage, ChatOptions
from provider_core.providers.configs import OpenAIConfig


def _text_item(role: str, text: str) -> Dict[str, Any]:
    part_type = "output_text" if role == "assistant" else "input_text"
    return {"role": role, "content": [{"type": part_type, "text": text}]}


def system_instructions(messages: List[ChatMessage], options: ChatOptions) -> Optional[str]:
    if options.system_prompt:
        return options.system_prompt
    system = [m.content for m in messages if m.role == "system"]
    return "\n".join(system) if system else None


def build_input(messages: List[ChatMessage], previous_response_id: Optional[str]) -> List[Dict[str, Any]]:
    if previous_response_id:
        users = [m for m in messages if m.role == "user"]
        return [_text_item("user", users[-1].content)] if users else []
    return [_text_item(m.role, m.content) for m in messages if m.role != "system"]


def build_request(
    messages: List[ChatMessage],
    config: OpenAIConfig,
    options: Optional[ChatOptions] = None,
    stream: bool = True,
) -> Dict[str, Any]:
    options = options or ChatOptions()
    body: Dict[str, Any] = {
        "model": config.model,
        "tools": [{"type": "web_search"}],
        "store": True,
    }
    instructions = system_instructions(messages, options)
    if instructions:
        body["instructions"] = instructions
    if options.previous_response_id:
        body["previous_response_id"] = options.previous_response_id
    body["input"] = build_input(messages, options.previous_response_id)
    if stream:
        body["stream"] = True
    effort = options.reasoning_effort or config.reasoning_effort
    if effort:
        body["reasoning"] = {"effort": effort, "summary": "auto"}
    return body
