import json

import pytest

from provider_core.domain.exceptions import NetworkError, RateLimitError
from provider_core.domain.models import ChatMessage, ChatOptions
from provider_core.infrastructure.transport import HttpStatusError
from provider_core.providers.configs import OpenAIConfig
from provider_core.providers.openai.error_handler import OpenAIErrorHandler
from provider_core.providers.openai.request_builder import build_request
from provider_core.providers.openai.stream_processor import OpenAIStreamProcessor


def sse(*events):
    return "".join(f"event: {e['type']}\ndata: {json.dumps(e, ensure_ascii=False)}\n\n" for e in events)


COMPLETED = {
    "type": "response.completed",
    "response": {
        "id": "resp_1",
        "status": "completed",
        "usage": {"input_tokens": 10, "output_tokens": 5, "total_tokens": 15, "output_tokens_details": {"reasoning_tokens": 2}},
    },
}


def conversation():
    return [
        ChatMessage(role="system", content="Be brief"),
        ChatMessage(role="user", content="hi"),
        ChatMessage(role="assistant", content="hello"),
        ChatMessage(role="user", content="more"),
    ]


def test_build_request_full_history():
    cfg = OpenAIConfig(api_key="k", model="gpt-5-nano", reasoning_effort="low")
    body = build_request(conversation(), cfg)
    assert body["model"] == "gpt-5-nano"
    assert body["instructions"] == "Be brief"
    assert body["input"] == [
        {"role": "user", "content": [{"type": "input_text", "text": "hi"}]},
        {"role": "assistant", "content": [{"type": "output_text", "text": "hello"}]},
        {"role": "user", "content": [{"type": "input_text", "text": "more"}]},
    ]
    assert body["reasoning"] == {"effort": "low", "summary": "auto"}
    assert body["tools"] == [{"type": "web_search"}]
    assert body["stream"] is True
    assert body["store"] is True


def test_build_request_with_previous_response_sends_latest_user_turn():
    cfg = OpenAIConfig(api_key="k", model="gpt-4.1-mini")
    opts = ChatOptions(previous_response_id="resp_0", system_prompt="Custom")
    body = build_request(conversation(), cfg, opts)
    assert body["previous_response_id"] == "resp_0"
    assert body["instructions"] == "Custom"
    assert body["input"] == [{"role": "user", "content": [{"type": "input_text", "text": "more"}]}]
    assert "reasoning" not in body


def test_stream_with_reasoning_search_and_completion():
    p = OpenAIStreamProcessor("gpt-5-nano", show_thinking=True)
    text = sse(
        {"type": "response.created", "response": {"id": "resp_1", "status": "in_progress"}},
        {"type": "response.reasoning_summary_text.delta", "delta": "Thinking"},
        {"type": "response.reasoning_summary_text.done", "text": "Thinking"},
        {"type": "response.output_item.done", "item": {"type": "reasoning", "summary": [{"type": "summary_text", "text": "Thinking"}]}},
        {"type": "response.output_text.delta", "delta": "Hel"},
        {"type": "response.output_text.delta", "delta": "lo"},
        {
            "type": "response.output_item.done",
            "item": {
                "type": "web_search_call",
                "action": {"query": "py", "sources": [{"url": "https://docs.python.org", "title": "Python"}]},
            },
        },
        {
            "type": "response.output_text.annotation.added",
            "annotation": {"type": "url_citation", "url": "https://docs.python.org", "title": "Python docs"},
        },
        COMPLETED,
    )
    chunks = p.process_text(text) + p.finish()

    assert [c.thinking for c in chunks] == ["Thinking", None, None, None]
    assert [c.content for c in chunks] == [None, "Hel", "lo", None]
    assert [c.finish_reason for c in chunks] == [None, None, None, "stop"]
    assert chunks[1].metadata == {"responseId": "resp_1"}

    terminal = chunks[-1]
    assert terminal.id == "resp_1"
    assert terminal.usage.total_tokens == 15
    assert terminal.usage.thinking_tokens == 2
    results = terminal.metadata["searchResults"]
    assert [s["url"] for s in results["sources"]] == [
        "https://www.google.com/search?q=py",
        "https://docs.python.org",
    ]
    assert results["sources"][1]["title"] == "Python"
    assert results["queries"] == ["py"]


def test_duplicate_completion_is_suppressed():
    p = OpenAIStreamProcessor("gpt-5-nano")
    first = p.process_text(sse(COMPLETED))
    second = p.process_text(sse(COMPLETED))
    assert len(first) == 1
    assert second == []
    assert first[0].usage.total_tokens == 15


def test_reasoning_hidden_when_not_requested():
    p = OpenAIStreamProcessor("gpt-4.1-mini", show_thinking=False)
    chunks = p.process_text(sse({"type": "response.reasoning_summary_text.delta", "delta": "secret"}))
    assert chunks == []


def test_standalone_reasoning_emitted_once():
    p = OpenAIStreamProcessor("gpt-5", show_thinking=True)
    block = {"type": "response.output_item.done", "item": {"type": "reasoning", "summary": [{"text": "plan"}]}}
    chunks = p.process_text(sse(block, block))
    assert [c.thinking for c in chunks] == ["plan"]


def test_blank_standalone_reasoning_is_suppressed():
    p = OpenAIStreamProcessor("gpt-5", show_thinking=True)
    block = {"type": "response.output_item.done", "item": {"type": "reasoning", "summary": [{"text": "  "}]}}
    assert p.process_text(sse(block)) == []
    assert not p.state.reasoning_emitted


def test_non_string_reasoning_delta_is_stringified():
    p = OpenAIStreamProcessor("gpt-5", show_thinking=True)
    chunks = p.process_text(sse({"type": "response.reasoning_text.delta", "delta": {"text": "deep"}}))
    assert chunks[0].thinking == "deep"


def test_inline_stop_waits_for_end_of_stream():
    p = OpenAIStreamProcessor("gpt-5")
    chunks = p.process_text(sse({"type": "response.output_text.delta", "delta": "x", "finish_reason": "stop"}))
    assert chunks[0].content == "x"
    assert chunks[0].finish_reason is None
    tail = p.finish()
    assert len(tail) == 1
    assert tail[0].finish_reason == "stop"


def test_inline_length_passes_through():
    p = OpenAIStreamProcessor("gpt-5")
    chunks = p.process_text(sse({"type": "response.output_text.delta", "delta": "x", "finish_reason": "length"}))
    assert chunks[0].finish_reason == "length"
    assert p.process_text(sse(COMPLETED)) == []
    assert p.finish() == []


def test_incomplete_response_maps_to_length():
    p = OpenAIStreamProcessor("gpt-5")
    event = {"type": "response.incomplete", "response": {"id": "r", "incomplete_details": {"reason": "max_output_tokens"}}}
    chunks = p.process_text(sse(event))
    assert chunks[0].finish_reason == "length"


def test_error_event_raises_normalized_error():
    p = OpenAIStreamProcessor("gpt-5")
    with pytest.raises(RateLimitError) as exc:
        p.process_text(sse({"type": "error", "error": {"type": "rate_limit_error", "message": "slow down"}}))
    assert exc.value.message == "slow down"
    assert exc.value.to_provider_error().provider == "openai"


def test_bare_error_event_maps_to_api_error():
    p = OpenAIStreamProcessor("gpt-5")
    with pytest.raises(NetworkError) as exc:
        p.process_text(sse({"type": "error", "code": "server_error", "message": "boom"}))
    assert exc.value.code == "API_ERROR"
    assert exc.value.message == "boom"


def test_error_handler_quota_and_retry_after():
    h = OpenAIErrorHandler()
    quota = h.from_http(429, {"error": {"code": "insufficient_quota", "message": "no credit"}})
    assert (quota.type, quota.code) == ("rate_limit", "QUOTA_EXCEEDED")
    limited = h.from_http(429, {"error": {"message": "slow"}}, headers={"retry-after": "30"})
    assert limited.code == "RATE_LIMIT"
    assert limited.retry_after == 30
    assert limited.details["vendorMessage"] == "slow"


def test_error_handler_formats_any_value():
    h = OpenAIErrorHandler()
    server = h.format(HttpStatusError(503, "upstream down"))
    assert (server.type, server.code, server.message) == ("network", "SERVICE_ERROR", "OpenAI service error")
    assert server.details["body"] == "upstream down"
    auth = h.format(HttpStatusError(401, '{"error": {"message": "bad key"}}'))
    assert auth.type == "authentication"
    crash = h.format(ValueError("bad value"))
    assert (crash.type, crash.message, crash.details) == ("unknown", "bad value", {"originalError": "ValueError"})
    assert h.format(None).message == "An unknown error occurred"
    assert h.format("oops").message == "An unknown error occurred"
