"""Google Gemini streamGenerateContent 适配。"""
