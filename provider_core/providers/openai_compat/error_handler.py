"""OpenAI 兼容端点错误映射。"""

from provider_core.providers.errors import ErrorHandler


class OpenAICompatErrorHandler(ErrorHandler):
    provider = "openai_compat"
    service_name = "OpenAI-compatible endpoint"
