"""chat/completions 风格流的公共处理。"""
