"""OpenAI Responses API 适配。"""
