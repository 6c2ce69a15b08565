"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 公共基类 (base) 与流式处理基类 (stream_base)。
- 维护模型目录 (catalog) 与配置校验 (configs)。
- 提供各厂商的具体实现 (openai、gemini、openrouter、grok、openai_compat)。

具体 Provider 通过 provider_core.engine.EngineFactory 创建。
"""
