import json

import pytest

from provider_core.domain.exceptions import UnknownProviderError
from provider_core.domain.models import ChatMessage, ChatOptions
from provider_core.providers.configs import OpenRouterConfig
from provider_core.providers.openrouter.error_handler import OpenRouterErrorHandler, get_retry_delay
from provider_core.providers.openrouter.request_builder import (
    build_headers,
    build_request,
    supports_caching,
    supports_reasoning,
)
from provider_core.providers.openrouter.stream_processor import OpenRouterStreamProcessor


def frames(*events):
    return "".join(f"data: {json.dumps(e)}\n\n" for e in events) + "data: [DONE]\n\n"


def config(model="anthropic/claude-sonnet-4", **kw):
    return OpenRouterConfig.from_mapping(dict({"api_key": "k", "model": model}, **kw))


def test_request_uses_catalog_token_budget_and_online_suffix():
    body = build_request([ChatMessage(role="user", content="hi")], config(web_search=True))
    assert body["model"] == "anthropic/claude-sonnet-4:online"
    assert body["reasoning"] == {"max_tokens": 8000}
    assert body["stream"] is True


def test_request_reasoning_overrides_and_exclude():
    cfg = config(reasoning={"max_tokens": 2000, "exclude": True})
    body = build_request([ChatMessage(role="user", content="hi")], cfg)
    assert body["reasoning"] == {"max_tokens": 2000, "exclude": True}

    cfg = config("openai/gpt-5-mini", reasoning={"effort": "minimal"})
    assert build_request([ChatMessage(role="user", content="hi")], cfg)["reasoning"] == {"effort": "low"}

    cfg = config("deepseek/deepseek-r1")
    assert build_request([ChatMessage(role="user", content="hi")], cfg)["reasoning"] == {"effort": "medium"}


def test_request_without_reasoning_support():
    body = build_request([ChatMessage(role="user", content="hi")], config("meta-llama/llama-3.3-70b-instruct:free"))
    assert body["model"] == "meta-llama/llama-3.3-70b-instruct"
    assert "reasoning" not in body
    assert not supports_reasoning("meta-llama/llama-3.3-70b-instruct")
    assert supports_reasoning("anthropic/claude-sonnet-4:online")


def test_system_prompt_first_and_only_chat_roles():
    msgs = [
        ChatMessage(role="system", content="ignored"),
        ChatMessage(role="user", content="hi"),
        ChatMessage(role="assistant", content="yo"),
    ]
    body = build_request(msgs, config("meta-llama/llama-3.3-70b-instruct"), ChatOptions(system_prompt="S"))
    assert body["messages"] == [
        {"role": "system", "content": "S"},
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "yo"},
    ]


def test_large_blocks_get_cache_control_on_supported_models():
    big = "x" * 2001
    body = build_request([ChatMessage(role="user", content=big)], config())
    assert body["messages"][0]["content"] == [{"type": "text", "text": big, "cache_control": {"type": "ephemeral"}}]

    body = build_request([ChatMessage(role="user", content=big)], config("meta-llama/llama-3.3-70b-instruct"))
    assert body["messages"][0]["content"] == big

    body = build_request([ChatMessage(role="user", content="small")], config(), cache_threshold=3)
    assert isinstance(body["messages"][0]["content"], list)
    assert supports_caching("google/gemini-2.5-flash")


def test_attribution_headers():
    assert "HTTP-Referer" not in build_headers("k", None, "provider-core")
    headers = build_headers("k", "https://app.example", "My App")
    assert headers["HTTP-Referer"] == "https://app.example"
    assert headers["X-Title"] == "My App"
    assert headers["Authorization"] == "Bearer k"


def test_stream_reasoning_content_and_usage_tail():
    p = OpenRouterStreamProcessor("anthropic/claude-sonnet-4")
    text = frames(
        {"id": "gen-1", "model": "anthropic/claude-sonnet-4", "choices": [{"delta": {"reasoning": "think"}}]},
        {"id": "gen-1", "choices": [{"delta": {"content": "Hi"}}]},
        {"id": "gen-1", "choices": [{"delta": {"content": "!"}, "finish_reason": "stop"}]},
        {"id": "gen-1", "choices": [], "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7}},
    )
    chunks = p.process_text(text) + p.finish()

    assert len(chunks) == 4
    assert chunks[0].thinking == "think"
    assert [c.content for c in chunks[1:3]] == ["Hi", "!"]
    assert chunks[2].finish_reason is None
    assert chunks[3].finish_reason == "stop"
    assert chunks[3].usage.total_tokens == 7
    assert all(c.usage is None for c in chunks[:3])
    assert all(c.id == "gen-1" for c in chunks)


def test_usage_reported_once_after_empty_stop_frame():
    p = OpenRouterStreamProcessor("m")
    chunks = p.process_text(frames(
        {"id": "gen-2", "choices": [{"delta": {"content": "Hi"}}]},
        {"id": "gen-2", "choices": [{"delta": {}, "finish_reason": "stop"}]},
        {"id": "gen-2", "choices": [], "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7}},
    )) + p.finish()

    assert [(c.content, c.finish_reason) for c in chunks] == [("Hi", None), (None, "stop")]
    assert sum(c.usage.total_tokens for c in chunks if c.usage) == 7
    assert chunks[-1].usage.total_tokens == 7
    assert all(c.choices for c in chunks)


def test_usage_frames_after_terminal_are_dropped():
    p = OpenRouterStreamProcessor("m")
    chunks = p.process_text(frames(
        {"choices": [{"delta": {"content": "a"}}], "usage": {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2}},
        {"choices": [{"delta": {}, "finish_reason": "length"}]},
        {"choices": [], "usage": {"prompt_tokens": 1, "completion_tokens": 3, "total_tokens": 4}},
    )) + p.finish()

    assert [c.finish_reason for c in chunks] == [None, "length"]
    assert chunks[0].usage is None
    assert chunks[1].usage.total_tokens == 2


def test_cache_tokens_reported_as_cache_discount():
    p = OpenRouterStreamProcessor("anthropic/claude-sonnet-4")
    usage = {
        "prompt_tokens": 3000,
        "completion_tokens": 10,
        "total_tokens": 3010,
        "cache_creation_input_tokens": 2000,
        "cache_read_input_tokens": 500,
    }
    chunks = p.process_text(frames(
        {"choices": [{"delta": {"content": "ok"}, "finish_reason": "stop"}]},
        {"choices": [], "usage": usage},
    )) + p.finish()

    assert chunks[0].metadata is None
    assert chunks[-1].finish_reason == "stop"
    assert chunks[-1].metadata["cacheDiscount"] == 2500


def test_excluded_reasoning_is_not_surfaced():
    p = OpenRouterStreamProcessor("anthropic/claude-sonnet-4", show_thinking=False)
    assert p.process_text(frames({"choices": [{"delta": {"reasoning": "think"}}]})) == []


def test_reasoning_details_encrypted_placeholder():
    p = OpenRouterStreamProcessor("openai/gpt-5-mini")
    delta = {"reasoning_details": [{"type": "reasoning.encrypted", "data": "abc"}]}
    chunks = p.process_text(frames({"choices": [{"delta": delta}]}))
    assert chunks[0].thinking == "[Reasoning content]"


def test_standalone_finish_frame_is_terminal():
    p = OpenRouterStreamProcessor("m")
    chunks = p.process_text(frames(
        {"choices": [{"delta": {"content": "a"}}]},
        {"choices": [{"delta": {}, "finish_reason": "length"}]},
        {"choices": [{"delta": {}, "finish_reason": "length"}]},
    ))
    assert [c.finish_reason for c in chunks] == [None, "length"]
    assert p.finish() == []


def test_url_citations_collected():
    p = OpenRouterStreamProcessor("m")
    annotation = {"type": "url_citation", "url_citation": {"url": "https://a.com/p", "title": "A", "content": "snip"}}
    chunks = p.process_text(frames({"choices": [{"delta": {"content": "x", "annotations": [annotation]}}]}))
    assert chunks[0].metadata["searchResults"]["sources"] == [
        {"title": "A", "url": "https://a.com/p", "domain": "a.com", "snippet": "snip"}
    ]


def test_error_frame_raises():
    p = OpenRouterStreamProcessor("m")
    with pytest.raises(UnknownProviderError) as exc:
        p.process_text(frames({"error": {"message": "Upstream failed", "code": 502}}))
    err = exc.value.to_provider_error()
    assert err.provider == "openrouter"
    assert err.message == "Upstream failed"


def test_error_handler_status_mapping():
    h = OpenRouterErrorHandler()
    assert h.from_http(402).code == "QUOTA_EXCEEDED"
    assert h.from_http(403).message == "Invalid or missing API key"
    server = h.from_http(502)
    assert (server.type, server.message) == ("network", "OpenRouter service error")
    assert h.from_http(404).code == "NOT_FOUND"


def test_retry_delay():
    h = OpenRouterErrorHandler()
    assert get_retry_delay(h.from_http(429, headers={"Retry-After": "12"})) == 12.0
    assert get_retry_delay(h.from_http(429)) == 60.0
    assert get_retry_delay(h.from_http(500)) == 5.0
    assert get_retry_delay(h.from_http(401)) is None
