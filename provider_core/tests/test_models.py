import pytest

from provider_core.domain.exceptions import (
    AbortError,
    NotInitializedError,
    ProviderTimeoutError,
    RateLimitError,
    UnknownProviderError,
    raise_provider_error,
)
from provider_core.domain.models import ChatResponse, ChunkChoice, ChunkDelta, ChunkUsage, NormalizedChunk, ProviderError


def test_chunk_to_dict_uses_camel_case():
    chunk = NormalizedChunk(
        id="c1",
        model="m",
        created=1,
        choices=[ChunkChoice(index=0, delta=ChunkDelta(content="hi"), finish_reason="stop")],
        usage=ChunkUsage(prompt_tokens=1, completion_tokens=2, total_tokens=3, thinking_tokens=4),
        metadata={"responseId": "r"},
    )
    assert chunk.to_dict() == {
        "id": "c1",
        "object": "response.chunk",
        "created": 1,
        "model": "m",
        "choices": [{"index": 0, "delta": {"content": "hi"}, "finishReason": "stop"}],
        "usage": {"promptTokens": 1, "completionTokens": 2, "totalTokens": 3, "thinkingTokens": 4},
        "metadata": {"responseId": "r"},
    }


def test_usage_only_chunk_accessors():
    chunk = NormalizedChunk(id="c", model="m", choices=[])
    assert chunk.content is None
    assert chunk.finish_reason is None
    assert "usage" not in chunk.to_dict()


def test_raise_provider_error_round_trip():
    error = ProviderError(type="rate_limit", message="slow", code="RATE_LIMIT", provider="gemini", retry_after=60)
    with pytest.raises(RateLimitError) as exc:
        raise_provider_error(error)
    assert exc.value.retry_after == 60
    assert exc.value.to_provider_error() is error
    assert exc.value.to_provider_error("openrouter").provider == "openrouter"


@pytest.mark.parametrize(
    "error_type, cls",
    [("timeout", ProviderTimeoutError), ("aborted", AbortError), ("unknown", UnknownProviderError)],
)
def test_error_type_maps_to_exception_class(error_type, cls):
    with pytest.raises(cls):
        raise_provider_error(ProviderError(type=error_type, message="x", code="X", provider="openai"))


def test_exception_defaults():
    err = NotInitializedError(provider="gemini").to_provider_error()
    assert (err.type, err.code, err.provider) == ("not_initialized", "NOT_INITIALIZED", "gemini")
    assert err.details == {"statusCode": 500}
    assert AbortError().to_provider_error("openai").type == "aborted"


def _delta_chunk(chunk_id, content=None, thinking=None, finish_reason=None, usage=None, metadata=None):
    return NormalizedChunk(
        id=chunk_id,
        model="m",
        choices=[ChunkChoice(index=0, delta=ChunkDelta(content=content, thinking=thinking), finish_reason=finish_reason)],
        usage=usage,
        metadata=metadata,
    )


def test_chat_response_from_chunks():
    chunks = [
        _delta_chunk("a", thinking="plan "),
        _delta_chunk("b", content="Hel", thinking="more"),
        _delta_chunk("c", content="lo", metadata={"searchResults": {"sources": []}}),
        _delta_chunk("resp-1", finish_reason="stop", usage=ChunkUsage(1, 2, 3), metadata={"responseId": "resp-1"}),
    ]
    resp = ChatResponse.from_chunks(chunks, "fallback")
    assert resp.id == "resp-1"
    assert resp.model == "m"
    assert resp.content == "Hello"
    assert resp.thinking == "plan more"
    assert resp.finish_reason == "stop"
    assert resp.usage.total_tokens == 3
    assert resp.metadata == {"searchResults": {"sources": []}, "responseId": "resp-1"}


def test_chat_response_without_terminal_chunk():
    resp = ChatResponse.from_chunks([_delta_chunk("a", content="part")], "m")
    assert resp.finish_reason is None
    assert resp.id == "a"

    empty = ChatResponse.from_chunks([], "m")
    assert (empty.content, empty.model, empty.thinking) == ("", "m", None)
    assert empty.id.startswith("resp-")
