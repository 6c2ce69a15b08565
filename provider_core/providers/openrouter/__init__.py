"""OpenRouter chat/completions 适配。"""
