"""xAI Grok Responses 风格 API 适配。"""
