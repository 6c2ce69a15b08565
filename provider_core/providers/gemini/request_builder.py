"""Gemini generateContent 请求体构建。

- URL: {base_url}/v1beta/models/{model}:streamGenerateContent?alt=sse
- 认证: x-goog-api-key 头

assistant 角色映射为 model；system 消息合并进 systemInstruction。
始终启用 google_search 工具，按需追加 url_context。
"""

from typing import Any, Dict, List, Optional

from provider_core.domain.exceptions import ValidationError
from provider_core.domain.models import ChatMessage, ChatOptions
from provider_core.providers.catalog import supports_thinking
from provider_core.providers.configs import GeminiConfig, parse_thinking_budget

SUPPORTED_IMAGE_TYPES = ("image/png", "image/jpeg", "image/webp", "image/heic", "image/heif")


def _attachment_part(attachment: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    kind = attachment.get("type")
    if kind != "image":
        raise ValidationError(code="UNSUPPORTED_MEDIA", message=f"Unsupported media type: {kind}", provider="gemini")
    mime = str(attachment.get("mime_type") or attachment.get("mimeType") or "").lower()
    uri = attachment.get("file_uri") or attachment.get("fileUri")
    # 只支持已上传到 Gemini 的文件（fileUri），内联 base64 不发送
    if mime not in SUPPORTED_IMAGE_TYPES or not uri:
        return None
    return {"fileData": {"mimeType": mime, "fileUri": uri}}


def convert_messages(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    contents = []
    for m in messages:
        if m.role == "system":
            continue
        parts: List[Dict[str, Any]] = []
        if m.content.strip():
            parts.append({"text": m.content})
        for att in m.meta.get("attachments") or []:
            part = _attachment_part(att)
            if part:
                parts.append(part)
        contents.append({"role": "model" if m.role == "assistant" else "user", "parts": parts})
    return contents


def build_generation_config(config: GeminiConfig, options: ChatOptions) -> Dict[str, Any]:
    gen: Dict[str, Any] = {}
    level = options.thinking_level or config.thinking_level
    if level:
        gen["thinkingLevel"] = level
        return gen
    if not supports_thinking(config.model):
        return gen
    raw = options.thinking_budget if options.thinking_budget is not None else config.thinking_budget
    budget = parse_thinking_budget(raw)
    if budget is None:
        return gen
    if budget == 0 and "gemini-2.5-pro" in config.model.lower():
        # 2.5 Pro 不能关闭 thinking，回退为动态预算
        budget = -1
    gen["thinkingConfig"] = {"thinkingBudget": budget, "includeThoughts": budget != 0}
    return gen


def build_request(
    messages: List[ChatMessage],
    config: GeminiConfig,
    options: Optional[ChatOptions] = None,
) -> Dict[str, Any]:
    options = options or ChatOptions()
    contents = convert_messages(messages)
    if not contents or all(not c["parts"] for c in contents):
        raise ValidationError(code="EMPTY_MESSAGES", message="Messages array cannot be empty", provider="gemini")
    body: Dict[str, Any] = {}
    system = options.system_prompt or "\n".join(m.content for m in messages if m.role == "system")
    if system:
        body["systemInstruction"] = {"parts": [{"text": system}]}
    body["generationConfig"] = build_generation_config(config, options)
    tools: List[Dict[str, Any]] = [{"google_search": {}}]
    if options.use_url_context or config.use_url_context:
        tools.append({"url_context": {}})
    body["tools"] = tools
    body["contents"] = contents
    return body


def build_url(base_url: str, model: str) -> str:
    return f"{base_url.rstrip('/')}/v1beta/models/{model}:streamGenerateContent?alt=sse"


def build_models_url(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/v1beta/models"


def build_headers(api_key: str) -> Dict[str, str]:
    return {"x-goog-api-key": api_key, "Content-Type": "application/json"}
