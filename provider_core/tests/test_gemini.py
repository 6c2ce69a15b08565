import json

import pytest

from provider_core.domain.exceptions import ValidationError
from provider_core.domain.models import ChatMessage, ChatOptions
from provider_core.providers.configs import GeminiConfig
from provider_core.providers.gemini.error_handler import GeminiErrorHandler
from provider_core.providers.gemini.request_builder import build_request, build_url
from provider_core.providers.gemini.stream_processor import GeminiFramer, GeminiStreamProcessor


def sse(*events):
    return "".join(f"data: {json.dumps(e)}\r\n\r\n" for e in events)


def candidate(*parts, finish=None, **extra):
    cand = {"content": {"role": "model", "parts": list(parts)}}
    if finish:
        cand["finishReason"] = finish
    cand.update(extra)
    return {"candidates": [cand]}


def test_framer_array_mode_survives_arbitrary_splits():
    objs = [
        candidate({"text": 'quote " and {brace} \\ slash'}),
        {"usageMetadata": {"promptTokenCount": 1, "totalTokenCount": 2}},
    ]
    raw = "[" + ",\r\n".join(json.dumps(o) for o in objs) + "]"
    framer = GeminiFramer()
    out = []
    for i in range(0, len(raw), 7):
        out.extend(framer.feed(raw[i:i + 7]))
    out.extend(framer.flush())
    assert framer.mode == "array"
    assert out == objs


def test_framer_array_mode_emits_objects_before_array_closes():
    framer = GeminiFramer()
    first = candidate({"text": "a"})
    assert framer.feed("[" + json.dumps(first) + ",") == [first]
    assert framer.feed('{"candidates": []') == []
    assert framer.feed("}]") == [{"candidates": []}]
    assert framer.feed("garbage after end") == []


def test_framer_sse_mode_with_split_lines():
    framer = GeminiFramer()
    text = sse(candidate({"text": "a"}), candidate({"text": "b"})) + "data: [DONE]\n\n"
    out = framer.feed(text[:15]) + framer.feed(text[15:]) + framer.flush()
    assert framer.mode == "sse"
    assert out == [candidate({"text": "a"}), candidate({"text": "b"})]


def test_framer_ndjson_lines():
    framer = GeminiFramer()
    out = framer.feed('{"a": 1}\n{"b": 2}')
    assert out == [{"a": 1}]
    assert framer.flush() == [{"b": 2}]


def test_stream_with_thoughts_and_pending_stop():
    p = GeminiStreamProcessor("gemini-2.5-flash", show_thinking=True)
    text = sse(
        candidate({"text": "plan", "thought": True}),
        dict(candidate({"text": "Hello"}), usageMetadata={"promptTokenCount": 3, "candidatesTokenCount": 1, "totalTokenCount": 4}),
        dict(
            candidate({"text": " world"}, finish="STOP"),
            usageMetadata={"promptTokenCount": 3, "candidatesTokenCount": 2, "totalTokenCount": 5, "thoughtsTokenCount": 7},
        ),
    )
    chunks = p.process_text(text) + p.finish()

    assert [c.thinking for c in chunks] == ["plan", None, None, None]
    assert [c.content for c in chunks] == [None, "Hello", " world", None]
    assert [c.finish_reason for c in chunks] == [None, None, None, "stop"]
    assert chunks[1].usage is None
    assert chunks[-1].usage.total_tokens == 5
    assert chunks[-1].usage.thinking_tokens == 7
    assert chunks[0].model == "gemini-2.5-flash"


def test_thoughts_dropped_when_hidden():
    p = GeminiStreamProcessor("gemini-2.5-flash", show_thinking=False)
    chunks = p.process_text(sse(candidate({"text": "plan", "thought": True}, {"text": "answer"})))
    assert len(chunks) == 1
    assert chunks[0].thinking is None
    assert chunks[0].content == "answer"
    assert not p.state.reasoning_emitted


def test_max_tokens_terminates_immediately():
    p = GeminiStreamProcessor("gemini-2.5-flash")
    chunks = p.process_text(sse(candidate({"text": "x"}, finish="MAX_TOKENS")))
    assert chunks[0].finish_reason == "length"
    assert p.finish() == []


def test_blocked_prompt_yields_content_filter():
    p = GeminiStreamProcessor("gemini-2.5-flash")
    chunks = p.process_text(sse({"promptFeedback": {"blockReason": "SAFETY"}}))
    assert len(chunks) == 1
    assert chunks[0].finish_reason == "content_filter"
    assert chunks[0].content is None


def test_grounding_metadata_becomes_search_results():
    p = GeminiStreamProcessor("gemini-2.5-flash")
    grounding = {
        "webSearchQueries": ["weather"],
        "groundingChunks": [{"web": {"uri": "https://www.example.com/x", "title": ""}}],
    }
    chunks = p.process_text(sse(candidate({"text": "Sunny"}, finish="STOP", groundingMetadata=grounding)))
    results = chunks[0].metadata["searchResults"]
    assert results["sources"] == [{"title": "example.com", "url": "https://www.example.com/x"}]
    assert results["queries"] == ["weather"]
    tail = p.finish()
    assert tail[0].metadata["searchResults"]["sources"][0]["url"] == "https://www.example.com/x"


def test_build_request_roles_and_system_instruction():
    cfg = GeminiConfig(api_key="k", model="gemini-2.5-flash")
    msgs = [
        ChatMessage(role="system", content="S"),
        ChatMessage(role="user", content="hi"),
        ChatMessage(role="assistant", content="yo"),
    ]
    body = build_request(msgs, cfg)
    assert body["systemInstruction"] == {"parts": [{"text": "S"}]}
    assert body["contents"] == [
        {"role": "user", "parts": [{"text": "hi"}]},
        {"role": "model", "parts": [{"text": "yo"}]},
    ]
    assert body["tools"] == [{"google_search": {}}]


def test_thinking_budget_normalization():
    pro = GeminiConfig(api_key="k", model="gemini-2.5-pro", thinking_budget=0)
    body = build_request([ChatMessage(role="user", content="hi")], pro)
    assert body["generationConfig"] == {"thinkingConfig": {"thinkingBudget": -1, "includeThoughts": True}}

    lite = GeminiConfig(api_key="k", model="gemini-2.5-flash-lite")
    body = build_request([ChatMessage(role="user", content="hi")], lite, ChatOptions(thinking_budget="0"))
    assert body["generationConfig"] == {"thinkingConfig": {"thinkingBudget": 0, "includeThoughts": False}}


def test_thinking_level_and_url_context():
    cfg = GeminiConfig(api_key="k", model="gemini-3-pro-preview", thinking_level="high", use_url_context=True)
    body = build_request([ChatMessage(role="user", content="hi")], cfg)
    assert body["generationConfig"] == {"thinkingLevel": "high"}
    assert body["tools"] == [{"google_search": {}}, {"url_context": {}}]


def test_image_attachment_by_file_uri():
    cfg = GeminiConfig(api_key="k", model="gemini-2.5-flash")
    msg = ChatMessage(
        role="user",
        content="what is this",
        meta={"attachments": [{"type": "image", "mime_type": "image/png", "file_uri": "files/abc"}]},
    )
    body = build_request([msg], cfg)
    assert body["contents"][0]["parts"][1] == {"fileData": {"mimeType": "image/png", "fileUri": "files/abc"}}

    bad = ChatMessage(role="user", content="doc", meta={"attachments": [{"type": "pdf"}]})
    with pytest.raises(ValidationError, match="Unsupported media type: pdf"):
        build_request([bad], cfg)


def test_build_url():
    url = build_url("https://generativelanguage.googleapis.com/", "gemini-2.5-flash")
    assert url == "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.5-flash:streamGenerateContent?alt=sse"


def test_error_handler_messages():
    h = GeminiErrorHandler()
    limited = h.from_http(429, {"error": {"code": 429, "message": "quota", "status": "RESOURCE_EXHAUSTED"}})
    assert (limited.type, limited.code, limited.retry_after) == ("rate_limit", "GEMINI_RATE_LIMIT", 60)
    assert limited.details["originalType"] == "RESOURCE_EXHAUSTED"
    invalid = h.from_http(400, {"error": {"message": "bad", "details": [{"reason": "API_KEY_INVALID"}]}})
    assert invalid.message == "Invalid request: API_KEY_INVALID"
    assert h.from_http(503).code == "GEMINI_NETWORK_ERROR"
