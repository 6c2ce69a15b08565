import json

from provider_core.domain.models import ChatMessage, ChatOptions
from provider_core.providers.configs import OpenAICompatConfig, validate_openai_compat_config
from provider_core.providers.openai_compat.provider import OpenAICompatStreamProcessor
from provider_core.providers.openai_compat.request_builder import build_headers, build_request


def compat_config(**kw):
    base = {"api_key": "k", "model": "llama3", "base_url": "https://llm.local/v1/"}
    base.update(kw)
    return OpenAICompatConfig.from_mapping(base)


def test_config_normalizes_base_url():
    assert compat_config().base_url == "https://llm.local/v1"


def test_build_request_optional_sampling():
    body = build_request([ChatMessage(role="user", content="hi")], compat_config(temperature=0.2, max_tokens=64))
    assert body == {
        "model": "llama3",
        "messages": [{"role": "user", "content": "hi"}],
        "stream": True,
        "temperature": 0.2,
        "max_tokens": 64,
    }


def test_build_request_keeps_system_messages_without_prompt():
    msgs = [ChatMessage(role="system", content="S"), ChatMessage(role="user", content="hi")]
    assert build_request(msgs, compat_config())["messages"][0] == {"role": "system", "content": "S"}
    body = build_request(msgs, compat_config(), ChatOptions(system_prompt="P"))
    assert body["messages"] == [{"role": "system", "content": "P"}, {"role": "user", "content": "hi"}]


def test_custom_headers_merged():
    headers = build_headers(compat_config(headers={"X-Org": "acme"}))
    assert headers["X-Org"] == "acme"
    assert headers["Authorization"] == "Bearer k"


def test_validation_errors():
    errors = validate_openai_compat_config(
        {"api_key": "k", "model": "m", "base_url": "ftp://x", "temperature": 3, "headers": {"a": 1}, "max_tokens": 0}
    )
    assert errors == ["Invalid endpoint URL format", "Invalid custom headers", "Invalid temperature", "Invalid max tokens"]
    assert validate_openai_compat_config({"apiKey": "k", "model": "m", "baseUrl": "http://localhost:8000"}) == []
    assert "Invalid endpoint URL" in validate_openai_compat_config({"api_key": "k", "model": "m"})


def test_reasoning_content_passthrough():
    p = OpenAICompatStreamProcessor("llama3")
    text = "data: " + json.dumps({"choices": [{"delta": {"reasoning_content": "hmm", "content": "ok"}}]}) + "\n\n"
    chunks = p.process_text(text)
    assert len(chunks) == 1
    assert (chunks[0].thinking, chunks[0].content) == ("hmm", "ok")
    assert chunks[0].id.startswith("openai_compat-chunk-")
