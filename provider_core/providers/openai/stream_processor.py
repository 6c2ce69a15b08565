"""Responses 风格流式事件处理。

事件按固定优先级分类，先匹配先处理：

1. 搜索 / 引用事件：合并进 searchResults，不产出分块。
2. 推理摘要增量：surface 推理时产出 thinking 分块，否则静默丢弃。
3. 推理结束标记：静默消费。
4. 独立推理块：仅在尚未输出过推理且摘要非空时产出一次。
5. 正文增量：真增量直接转发；累计快照与上次快照做差。
6. 完成事件：终止分块，附带 usage 与累计元数据。

GrokStreamProcessor 复用同一流程，只替换搜索与正文的提取方式。
"""

from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote_plus

from provider_core.domain.exceptions import raise_provider_error
from provider_core.domain.models import NormalizedChunk
from provider_core.providers.openai.error_handler import OpenAIErrorHandler
from provider_core.providers.stream_base import StreamProcessor, convert_usage, hostname_title, stringify

REASONING_DELTA_TYPES = (
    "response.reasoning_summary_text.delta",
    "response.reasoning_text.delta",
)
REASONING_DONE_TYPES = (
    "response.reasoning_summary_text.done",
    "response.reasoning_summary_part.done",
    "response.reasoning_summary_part.added",
    "response.reasoning_text.done",
)
ERROR_TYPES = ("error", "response.failed")


def normalize_finish_reason(reason: Optional[str]) -> str:
    """完成事件的结束原因；缺省或无法识别时视为 stop。"""

    if not reason:
        return "stop"
    r = str(reason).lower()
    if "stop" in r or r == "completed":
        return "stop"
    if "length" in r or "max_output_tokens" in r:
        return "length"
    if "filter" in r:
        return "content_filter"
    if "tool" in r:
        return "tool_calls"
    return "stop"


def _summary_text(items: Any) -> Optional[str]:
    if not isinstance(items, list):
        return None
    parts = []
    for s in items:
        if isinstance(s, Mapping):
            text = s.get("text") or s.get("content")
            if isinstance(text, str) and text:
                parts.append(text)
        elif isinstance(s, str) and s:
            parts.append(s)
    return "\n".join(parts) if parts else None


def extract_reasoning_summary(event: Mapping[str, Any]) -> Optional[str]:
    """从独立推理事件中取出摘要文本。"""

    text = _summary_text(event.get("summary"))
    if text:
        return text
    item = event.get("item")
    if isinstance(item, Mapping) and item.get("type") == "reasoning":
        text = _summary_text(item.get("summary"))
        if text:
            return text
    response = event.get("response") if isinstance(event.get("response"), Mapping) else {}
    outputs = event.get("output") or event.get("outputs") or response.get("output")
    if isinstance(outputs, list):
        for o in outputs:
            if isinstance(o, Mapping) and (o.get("type") or o.get("item_type")) == "reasoning":
                text = _summary_text(o.get("summary") or (o.get("data") or {}).get("summary"))
                if text:
                    return text
    reasoning = event.get("reasoning")
    if isinstance(reasoning, Mapping):
        text = _summary_text(reasoning.get("summary"))
        if text:
            return text
    if isinstance(event.get("summary_text"), str):
        return event["summary_text"]
    return None


class ResponsesStreamProcessor(StreamProcessor):
    """Responses 风格 API 的公共处理流程。"""

    provider = "openai"
    error_handler_class = OpenAIErrorHandler

    def process_event(self, event: Dict[str, Any]) -> Optional[NormalizedChunk]:
        etype = event.get("type")
        if etype in ERROR_TYPES:
            raise_provider_error(self.error_handler_class().from_body(self._error_body(event)))
        self._capture_response_id(event)

        if self._capture_search(event):
            return None

        if etype in REASONING_DELTA_TYPES:
            delta = event.get("delta")
            if delta is None or delta == "" or not self.show_thinking:
                return None
            self.state.reasoning_emitted = True
            return self._make_chunk(thinking=stringify(delta))

        if etype in REASONING_DONE_TYPES:
            return None

        if self._is_standalone_reasoning(event):
            summary = extract_reasoning_summary(event)
            if self.show_thinking and not self.state.reasoning_emitted and summary and summary.strip():
                self.state.reasoning_emitted = True
                return self._make_chunk(
                    thinking=summary,
                    chunk_id=event.get("id"),
                    usage=convert_usage(event.get("usage")),
                )
            return None

        content = self._extract_content(event)
        if content:
            reason = self._inline_finish_reason(event)
            if reason == "stop":
                self.state.pending_finish_reason = "stop"
                reason = None
            elif reason is not None:
                self.state.terminal_emitted = True
            return self._make_chunk(
                content=content,
                finish_reason=reason,
                usage=convert_usage(event.get("usage")),
                chunk_id=event.get("id") or self.state.response_id,
                model=self._event_model(event),
                created=event.get("created"),
                metadata=self._metadata(),
            )

        if self._is_completion(event):
            if self.state.terminal_emitted:
                return None
            response = self._response(event)
            usage = convert_usage(event.get("usage") or response.get("usage"))
            return self._terminal_chunk(
                self._completion_reason(event),
                usage=usage,
                model=self._event_model(event),
                created=event.get("created") or response.get("created_at"),
            )
        return None

    # ---- 分类 ----

    @staticmethod
    def _response(event: Mapping[str, Any]) -> Mapping[str, Any]:
        response = event.get("response")
        return response if isinstance(response, Mapping) else {}

    def _is_standalone_reasoning(self, event: Mapping[str, Any]) -> bool:
        if event.get("type") == "reasoning" or event.get("item_type") == "reasoning":
            return True
        item = event.get("item")
        return event.get("type") == "response.output_item.done" and isinstance(item, Mapping) and item.get("type") == "reasoning"

    def _is_completion(self, event: Mapping[str, Any]) -> bool:
        return (
            event.get("type") in ("response.completed", "response.incomplete")
            or "finish_reason" in event
            or event.get("status") == "completed"
        )

    def _inline_finish_reason(self, event: Mapping[str, Any]) -> Optional[str]:
        raw = event.get("finish_reason")
        if raw is None and event.get("status") == "completed":
            raw = "completed"
        return normalize_finish_reason(raw) if raw else None

    def _completion_reason(self, event: Mapping[str, Any]) -> str:
        if event.get("type") == "response.incomplete":
            details = self._response(event).get("incomplete_details") or {}
            return normalize_finish_reason(details.get("reason") or "length")
        return normalize_finish_reason(event.get("finish_reason") or event.get("status"))

    def _event_model(self, event: Mapping[str, Any]) -> str:
        return event.get("model") or self._response(event).get("model") or self.model

    def _capture_response_id(self, event: Mapping[str, Any]) -> None:
        if self.state.response_id:
            return
        rid = self._response(event).get("id") or event.get("response_id")
        if isinstance(rid, str) and rid:
            self.state.response_id = rid

    @staticmethod
    def _error_body(event: Mapping[str, Any]) -> Dict[str, Any]:
        err = event.get("error") or (event.get("response") or {}).get("error")
        if isinstance(err, Mapping):
            return {"error": dict(err)}
        return {"error": {"message": event.get("message") or "Stream error", "code": event.get("code"), "type": "api_error"}}

    # ---- 搜索元数据 ----

    def _capture_search(self, event: Mapping[str, Any]) -> bool:
        """处理搜索 / 引用事件，返回该事件是否已被消费。"""

        etype = event.get("type")
        if etype in ("response.web_search_call.completed", "response.web_search_call.searching", "response.web_search_call.in_progress"):
            return True
        if etype == "response.output_text.annotation.added":
            self._ingest_annotations([event.get("annotation")])
            return True
        item = event.get("item")
        if etype == "response.output_item.done" and isinstance(item, Mapping):
            if item.get("type") == "web_search_call":
                action = item.get("action") or {}
                query = action.get("query")
                if isinstance(query, str) and query:
                    self.state.merge_queries([query])
                    self.state.merge_sources(
                        [{"title": f'Web search: "{query}"', "url": "https://www.google.com/search?q=" + quote_plus(query)}]
                    )
                sources = action.get("sources")
                if isinstance(sources, list):
                    self._ingest_annotations([dict(s, type="url_citation") for s in sources if isinstance(s, Mapping)])
                return True
            if item.get("type") == "message":
                for part in item.get("content") or []:
                    if isinstance(part, Mapping):
                        self._ingest_annotations(part.get("annotations") or [])
                return True
        return False

    def _ingest_annotations(self, annotations: List[Any]) -> None:
        sources = []
        for a in annotations:
            if not isinstance(a, Mapping) or str(a.get("type", "")).lower() != "url_citation":
                continue
            nested = a.get("url_citation") if isinstance(a.get("url_citation"), Mapping) else {}
            url = a.get("url") or nested.get("url")
            if not isinstance(url, str) or not url.strip():
                continue
            url = url.strip()
            title = self._annotation_title(a, nested, url)
            source = {"title": title, "url": url}
            snippet = a.get("content") or nested.get("content")
            if isinstance(snippet, str) and snippet.strip():
                source["snippet"] = snippet.strip()
            sources.append(source)
        self.state.merge_sources(sources)

    def _annotation_title(self, annotation: Mapping[str, Any], nested: Mapping[str, Any], url: str) -> str:
        title = annotation.get("title") or nested.get("title")
        return title.strip() if isinstance(title, str) and title.strip() else "Untitled"

    # ---- 正文 ----

    def _extract_content(self, event: Mapping[str, Any]) -> Optional[str]:
        etype = event.get("type")
        delta = event.get("delta")
        if isinstance(delta, str) and delta and (etype is None or "output_text" in etype):
            self.state.last_seen_content += delta
            return delta
        snapshot = event.get("output_text")
        if isinstance(snapshot, str) and snapshot:
            return self._diff_cumulative(snapshot)
        return None


class OpenAIStreamProcessor(ResponsesStreamProcessor):
    provider = "openai"
