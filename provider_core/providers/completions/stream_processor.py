"""chat/completions 风格流式事件处理（OpenRouter 与 OpenAI 兼容端点共用）。

帧格式为 `data: {...}`，以 `data: [DONE]` 结束；每帧含 choices[].delta。

推理字段在不同上游间命名不一：reasoning、reasoning_content 或
reasoning_details[]（reasoning.text / reasoning.summary / reasoning.encrypted）。
同一帧里同时带推理和正文时合并成一个分块。

choices 为空、仅携带 usage 的尾帧不单独产出分块；usage 只出现在终止分块上。
"""

from typing import Any, Dict, List, Mapping, Optional

from provider_core.domain.exceptions import raise_provider_error
from provider_core.domain.models import ChunkUsage, NormalizedChunk
from provider_core.providers.errors import ErrorHandler
from provider_core.providers.stream_base import StreamProcessor, convert_usage, hostname_title, stringify

KNOWN_FINISH_REASONS = ("stop", "length", "content_filter", "tool_calls")


def normalize_finish_reason(reason: Optional[str]) -> Optional[str]:
    if not reason:
        return None
    r = str(reason).lower()
    if r in KNOWN_FINISH_REASONS:
        return r
    if r in ("end_turn", "stop_sequence", "eos", "completed"):
        return "stop"
    if r in ("max_tokens", "max_output_tokens"):
        return "length"
    if "filter" in r or r == "safety":
        return "content_filter"
    if "tool" in r or r == "function_call":
        return "tool_calls"
    return "stop"


def extract_reasoning(delta: Mapping[str, Any]) -> Optional[str]:
    for key in ("reasoning", "reasoning_content"):
        value = delta.get(key)
        if value is not None and value != "":
            return stringify(value)
    details = delta.get("reasoning_details")
    if not isinstance(details, list):
        return None
    parts: List[str] = []
    for d in details:
        if not isinstance(d, Mapping):
            continue
        kind = d.get("type")
        if kind == "reasoning.encrypted":
            if d.get("data") and d.get("data") != "[REDACTED]":
                parts.append("[Reasoning content]")
        elif kind == "reasoning.summary" and d.get("summary"):
            parts.append(d["summary"])
        elif d.get("text"):
            parts.append(d["text"])
        elif d.get("summary"):
            parts.append(d["summary"])
    return "\n".join(parts) if parts else None


class CompletionsStreamProcessor(StreamProcessor):
    provider = "openai_compat"
    error_handler_class = ErrorHandler

    def process_event(self, event: Dict[str, Any]) -> Optional[NormalizedChunk]:
        if isinstance(event.get("error"), Mapping):
            self._raise_stream_error(event)
        if self.state.terminal_emitted:
            return None

        choices = event.get("choices") if isinstance(event.get("choices"), list) else []
        usage = self._record_usage(event.get("usage"))
        if not self.state.response_id and isinstance(event.get("id"), str):
            self.state.response_id = event["id"]

        # 仅带 usage 的尾帧不单独产出分块，usage 随终止分块发出
        if not choices:
            return None

        choice = choices[0] if isinstance(choices[0], Mapping) else {}
        delta = choice.get("delta") or choice.get("message") or {}
        if not isinstance(delta, Mapping):
            delta = {}

        self._capture_annotations(delta.get("annotations") or event.get("annotations") or [])

        thinking = extract_reasoning(delta)
        if thinking and not self.show_thinking:
            thinking = None
        if thinking:
            self.state.reasoning_emitted = True
        content = delta.get("content") if isinstance(delta.get("content"), str) else None
        if content:
            self.state.last_seen_content += content
        reason = normalize_finish_reason(choice.get("finish_reason"))

        # stop 可能后随 usage 尾帧，先挂起，由 finish() 统一发出终止分块
        if reason == "stop":
            self.state.pending_finish_reason = "stop"
            reason = None

        if content or thinking:
            if reason is not None:
                self.state.terminal_emitted = True
                self.state.pending_finish_reason = None
                final_usage = usage or self.state.last_usage
                metadata = self._terminal_metadata(final_usage)
            else:
                final_usage = None
                metadata = self._metadata() if self.state.search_sources else None
            return self._make_chunk(
                content=content or None,
                thinking=thinking,
                finish_reason=reason,
                usage=final_usage,
                chunk_id=event.get("id"),
                model=event.get("model"),
                created=event.get("created"),
                metadata=metadata,
            )

        if reason is not None:
            return self._terminal_chunk(
                reason,
                usage=usage or self.state.last_usage,
                chunk_id=event.get("id"),
                model=event.get("model"),
                created=event.get("created"),
            )
        return None

    def _record_usage(self, raw: Any) -> Optional[ChunkUsage]:
        usage = convert_usage(raw)
        if usage is None:
            return None
        self.state.last_usage = usage
        cached = (raw.get("cache_creation_input_tokens") or 0) + (raw.get("cache_read_input_tokens") or 0)
        if cached > 0:
            self.state.cache_discount = cached
        return usage

    def _capture_annotations(self, annotations: Any) -> None:
        if not isinstance(annotations, list):
            return
        sources = []
        for a in annotations:
            if not isinstance(a, Mapping) or a.get("type") != "url_citation":
                continue
            nested = a.get("url_citation") if isinstance(a.get("url_citation"), Mapping) else {}
            url = nested.get("url") or a.get("url")
            if not isinstance(url, str) or not url:
                continue
            source = {
                "title": nested.get("title") or a.get("title") or "Untitled",
                "url": url,
                "domain": nested.get("domain") or a.get("domain") or hostname_title(url),
            }
            snippet = nested.get("content") or a.get("snippet")
            if snippet:
                source["snippet"] = snippet
            sources.append(source)
        self.state.merge_sources(sources)

    def _raise_stream_error(self, event: Mapping[str, Any]) -> None:
        handler = self.error_handler_class()
        handler.provider = self.provider
        raise_provider_error(handler.from_body(event))
