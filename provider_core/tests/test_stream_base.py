from provider_core.providers.sse import SSEDecoder, SSEEvent, decode_json_events
from provider_core.providers.stream_base import StreamProcessor, StreamState, convert_usage, hostname_title


class SnapshotProcessor(StreamProcessor):
    provider = "test"

    def process_event(self, event):
        if "text" not in event:
            return None
        delta = self._diff_cumulative(event["text"])
        return self._make_chunk(content=delta) if delta else None


def test_cumulative_snapshot_yields_only_new_suffix():
    p = SnapshotProcessor("m")
    chunks = p.process_text('data: {"text": "Hello"}\n\ndata: {"text": "Hello, world!"}\n\n')
    assert [c.content for c in chunks] == ["Hello", ", world!"]


def test_stale_or_repeated_snapshot_is_ignored():
    p = SnapshotProcessor("m")
    p.process_text('data: {"text": "Hello, world!"}\n\n')
    assert p.process_text('data: {"text": "Hello"}\n\n') == []
    assert p.process_text('data: {"text": "Hello, world!"}\n\n') == []
    assert p.state.last_seen_content == "Hello, world!"


def test_event_split_across_fragments():
    p = SnapshotProcessor("m")
    assert p.process_text('data: {"te') == []
    chunks = p.process_text('xt": "Hi"}\n\n')
    assert [c.content for c in chunks] == ["Hi"]
    assert chunks[0].model == "m"
    assert chunks[0].id.startswith("test-chunk-")


def test_finish_flushes_unterminated_tail():
    p = SnapshotProcessor("m")
    assert p.process_text('data: {"text": "A"}') == []
    assert [c.content for c in p.finish()] == ["A"]


def test_reset_clears_state():
    p = SnapshotProcessor("m")
    p.process_text('data: {"text": "abc"}\n\n')
    p.state.reasoning_emitted = True
    p.reset()
    assert p.state == StreamState()


def test_sse_decoder_handles_event_names_and_comments():
    dec = SSEDecoder()
    events = dec.feed(": keepalive\nevent: response.created\r\ndata: {\"a\": 1}\r\n\r\n")
    assert events == [SSEEvent(data='{"a": 1}', event="response.created")]
    assert decode_json_events(events, "test") == [{"a": 1, "type": "response.created"}]


def test_decode_skips_done_and_malformed_payloads():
    events = [SSEEvent(data="[DONE]"), SSEEvent(data="not json"), SSEEvent(data='{"b": 2}')]
    assert decode_json_events(events, "test") == [{"b": 2}]


def test_decode_falls_back_to_line_by_line():
    events = [SSEEvent(data='{"a": 1}\n{"b": 2}')]
    assert decode_json_events(events, "test") == [{"a": 1}, {"b": 2}]


def test_convert_usage_responses_style():
    usage = convert_usage({"input_tokens": 10, "output_tokens": 5, "output_tokens_details": {"reasoning_tokens": 3}})
    assert (usage.prompt_tokens, usage.completion_tokens, usage.total_tokens, usage.thinking_tokens) == (10, 5, 15, 3)


def test_convert_usage_completions_style():
    usage = convert_usage({"prompt_tokens": 1, "completion_tokens": 2, "total_tokens": 3})
    assert (usage.prompt_tokens, usage.completion_tokens, usage.total_tokens) == (1, 2, 3)
    assert usage.thinking_tokens is None
    assert convert_usage(None) is None


def test_merge_sources_deduplicates_by_url():
    st = StreamState()
    assert st.merge_sources([{"title": "A", "url": "https://a.com"}])
    assert not st.merge_sources([{"title": "A again", "url": "https://a.com"}, {"title": "no url"}])
    assert st.search_sources == [{"title": "A", "url": "https://a.com"}]


def test_hostname_title():
    assert hostname_title("https://www.example.com/path") == "example.com"
    assert hostname_title("not a url") == "not a url"
