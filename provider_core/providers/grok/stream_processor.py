"""Grok 流式事件处理。

与 OpenAI 共用 Responses 风格的分类流程，差异在于：

- 正文既可能是增量（delta 字符串 / delta.output_text / delta.content[]），
  也可能是累计快照（output_text / text / output[] / response.output[]），
  快照与上次内容按公共前缀做差。
- 引用来自 url_citation 注解，标题缺失时回退到域名。
"""

from typing import Any, List, Mapping, Optional

from provider_core.providers.grok.error_handler import GrokErrorHandler
from provider_core.providers.openai.stream_processor import ResponsesStreamProcessor
from provider_core.providers.stream_base import hostname_title


def _join_parts(content: Any) -> Optional[str]:
    if not isinstance(content, list):
        return None
    texts = [p.get("text") for p in content if isinstance(p, Mapping) and isinstance(p.get("text"), str)]
    joined = "".join(t for t in texts if t)
    return joined or None


def _join_output(output: Any) -> Optional[str]:
    if not isinstance(output, list):
        return None
    parts = [_join_parts(o.get("content")) for o in output if isinstance(o, Mapping)]
    joined = "".join(p for p in parts if p)
    return joined or None


class GrokStreamProcessor(ResponsesStreamProcessor):
    provider = "grok"
    error_handler_class = GrokErrorHandler

    def _capture_response_id(self, event: Mapping[str, Any]) -> None:
        if self.state.response_id:
            return
        rid = self._response(event).get("id") or event.get("response_id") or event.get("id")
        if isinstance(rid, str) and rid:
            self.state.response_id = rid

    def _capture_search(self, event: Mapping[str, Any]) -> bool:
        annotations: List[Any] = []
        if event.get("annotation"):
            annotations.append(event["annotation"])
        if isinstance(event.get("annotations"), list):
            annotations.extend(event["annotations"])
        for output in (event.get("output"), self._response(event).get("output")):
            if isinstance(output, list):
                for o in output:
                    if isinstance(o, Mapping) and isinstance(o.get("annotations"), list):
                        annotations.extend(o["annotations"])
        self._ingest_annotations(annotations)
        # 注解可能和正文同在一个事件里，继续后续分类
        return event.get("type") == "response.output_text.annotation.added"

    def _annotation_title(self, annotation: Mapping[str, Any], nested: Mapping[str, Any], url: str) -> str:
        for candidate in (annotation.get("title"), nested.get("title"), annotation.get("domain"), nested.get("domain")):
            if isinstance(candidate, str) and candidate.strip():
                return candidate.strip()
        return hostname_title(url)

    def _extract_content(self, event: Mapping[str, Any]) -> Optional[str]:
        immediate = self._immediate_delta(event)
        if immediate:
            self.state.last_seen_content += immediate
            return immediate
        snapshot = self._snapshot(event)
        if snapshot:
            return self._diff_cumulative(snapshot)
        return None

    @staticmethod
    def _immediate_delta(event: Mapping[str, Any]) -> Optional[str]:
        delta = event.get("delta")
        if isinstance(delta, str):
            etype = event.get("type")
            return delta if (etype is None or "output_text" in etype) else None
        if isinstance(delta, Mapping):
            if isinstance(delta.get("output_text"), str):
                return delta["output_text"]
            return _join_parts(delta.get("content"))
        return None

    def _snapshot(self, event: Mapping[str, Any]) -> Optional[str]:
        for key in ("output_text", "text"):
            value = event.get(key)
            if isinstance(value, str) and value:
                return value
        return _join_output(event.get("output")) or _join_output(self._response(event).get("output"))
