"""通用 OpenAI 兼容端点适配。"""
