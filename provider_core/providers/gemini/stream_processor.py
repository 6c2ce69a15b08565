"""Gemini 流式响应处理。

Gemini 有两种返回格式：

- 默认：一个逐步写出的 JSON 数组 `[{...},{...}]`，对象可能在任意位置被切断；
- alt=sse：`data: {...}` 帧，部分网关会改成逐行 JSON（NDJSON）。

格式在收到第一个非空字符时确定。数组模式按大括号深度扫描（跳过字符串
内的括号，正确处理转义引号），每个完整对象立即产出。

每个事件取 candidates[0]：thought=True 的 part 为推理，其余为正文。
正文事件上的 STOP 会被挂起，到流结束时由 finish() 补发终止分块；
MAX_TOKENS / SAFETY 等提前终止原因立即透传。
"""

import json
from typing import Any, Dict, List, Mapping, Optional, Tuple

from provider_core.domain.models import ChunkUsage, NormalizedChunk
from provider_core.infrastructure.logging.logger import logger
from provider_core.providers.stream_base import StreamProcessor, hostname_title

FINISH_REASON_MAP = {
    "STOP": "stop",
    "FINISH": "stop",
    "MAX_TOKENS": "length",
    "LENGTH": "length",
    "SAFETY": "content_filter",
    "RECITATION": "content_filter",
    "BLOCKLIST": "content_filter",
    "PROHIBITED_CONTENT": "content_filter",
    "SPII": "content_filter",
    "CONTENT_FILTER": "content_filter",
}


def normalize_finish_reason(reason: Optional[str]) -> str:
    if not reason:
        return "stop"
    return FINISH_REASON_MAP.get(str(reason).upper(), "stop")


class GeminiFramer:
    """把 Gemini 原始文本切成完整的 JSON 对象。"""

    def __init__(self) -> None:
        self.mode = "unknown"
        self._buffer = ""
        self._sse_payload = ""
        self._array_ended = False

    def feed(self, text: str) -> List[Dict[str, Any]]:
        if self._array_ended:
            return []
        self._buffer += text
        if self.mode == "unknown":
            stripped = self._buffer.lstrip()
            if not stripped:
                return []
            if stripped.startswith("["):
                self.mode = "array"
                self._buffer = stripped[1:]
            else:
                self.mode = "sse"
        if self.mode == "array":
            return self._scan_array()
        return self._scan_lines(final=False)

    def flush(self) -> List[Dict[str, Any]]:
        if self.mode == "sse":
            return self._scan_lines(final=True)
        return []

    # ---- 数组模式 ----

    def _scan_array(self) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        while True:
            self._buffer = self._buffer.lstrip()
            if not self._buffer:
                break
            ch = self._buffer[0]
            if ch == "]":
                self._buffer = ""
                self._array_ended = True
                break
            if ch == ",":
                self._buffer = self._buffer[1:]
                continue
            if ch != "{":
                self._buffer = self._buffer[1:]
                continue
            end = self._object_end(self._buffer)
            if end < 0:
                break
            raw, self._buffer = self._buffer[: end + 1], self._buffer[end + 1:]
            try:
                obj = json.loads(raw)
            except ValueError:
                logger.debug("stream.skip_malformed", extra={"extra": {"provider": "gemini", "size": len(raw)}})
                continue
            if isinstance(obj, dict):
                out.append(obj)
        return out

    @staticmethod
    def _object_end(buf: str) -> int:
        depth = 0
        in_string = False
        escaped = False
        for i, ch in enumerate(buf):
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return i
        return -1

    # ---- SSE / NDJSON 模式 ----

    def _scan_lines(self, final: bool) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        lines = self._buffer.split("\n")
        self._buffer = "" if final else lines.pop()
        for raw in lines:
            line = raw.strip()
            if not line:
                self._flush_payload(out)
                continue
            if line.startswith(":") or line.startswith("event:"):
                continue
            if line.startswith("data:"):
                payload = line[5:].strip()
                if payload == "[DONE]":
                    self._flush_payload(out)
                    self._sse_payload = ""
                    continue
                if self._sse_payload and payload[:1] in ("{", "["):
                    # 新对象开始，之前的残片无法解析，丢弃
                    self._sse_payload = ""
                self._sse_payload += payload
                self._flush_payload(out)
                continue
            self._append(out, line)
        if final:
            self._flush_payload(out)
            self._sse_payload = ""
        return out

    def _flush_payload(self, out: List[Dict[str, Any]]) -> None:
        if not self._sse_payload:
            return
        try:
            obj = json.loads(self._sse_payload)
        except ValueError:
            return
        self._sse_payload = ""
        if isinstance(obj, dict):
            out.append(obj)
        elif isinstance(obj, list):
            out.extend(o for o in obj if isinstance(o, dict))

    @staticmethod
    def _append(out: List[Dict[str, Any]], line: str) -> None:
        try:
            obj = json.loads(line)
        except ValueError:
            logger.debug("stream.skip_malformed", extra={"extra": {"provider": "gemini", "size": len(line)}})
            return
        if isinstance(obj, dict):
            out.append(obj)


def split_parts(candidate: Mapping[str, Any]) -> Tuple[str, str]:
    """返回 (正文, 推理)。"""

    content = candidate.get("content") if isinstance(candidate.get("content"), Mapping) else {}
    text_parts: List[str] = []
    thought_parts: List[str] = []
    for part in content.get("parts") or []:
        if not isinstance(part, Mapping):
            continue
        text = part.get("text")
        if isinstance(text, str) and text:
            (thought_parts if part.get("thought") else text_parts).append(text)
        if isinstance(part.get("thinking"), str) and part["thinking"]:
            thought_parts.append(part["thinking"])
    return "".join(text_parts), "".join(thought_parts)


def convert_usage(meta: Any) -> Optional[ChunkUsage]:
    if not isinstance(meta, Mapping):
        return None
    return ChunkUsage(
        prompt_tokens=int(meta.get("promptTokenCount") or 0),
        completion_tokens=int(meta.get("candidatesTokenCount") or 0),
        total_tokens=int(meta.get("totalTokenCount") or 0),
        thinking_tokens=meta.get("thoughtsTokenCount") or meta.get("thinkingTokenCount"),
    )


class GeminiStreamProcessor(StreamProcessor):
    provider = "gemini"

    def __init__(self, model: str, show_thinking: bool = False):
        super().__init__(model, show_thinking=show_thinking)
        self._framer = GeminiFramer()

    def feed(self, text: str) -> List[Dict[str, Any]]:
        return self._framer.feed(text)

    def _flush_events(self) -> List[Dict[str, Any]]:
        return self._framer.flush()

    def reset(self) -> None:
        super().reset()
        self._framer = GeminiFramer()

    def process_event(self, event: Dict[str, Any]) -> Optional[NormalizedChunk]:
        candidates = event.get("candidates") if isinstance(event.get("candidates"), list) else []
        candidate = candidates[0] if candidates and isinstance(candidates[0], Mapping) else {}

        self._capture_grounding(event, candidate)
        usage = convert_usage(event.get("usageMetadata"))
        if usage is not None:
            self.state.last_usage = usage

        content, thinking = split_parts(candidate)
        if thinking and not self.show_thinking:
            thinking = ""
        if thinking:
            self.state.reasoning_emitted = True

        raw_reason = candidate.get("finishReason")
        if not candidate and isinstance(event.get("promptFeedback"), Mapping) and event["promptFeedback"].get("blockReason"):
            raw_reason = "SAFETY"
        reason = normalize_finish_reason(raw_reason) if raw_reason and raw_reason != "FINISH_REASON_UNSPECIFIED" else None

        if content or thinking:
            if reason == "stop":
                self.state.pending_finish_reason = "stop"
                reason = None
            elif reason is not None:
                self.state.terminal_emitted = True
            return self._make_chunk(
                content=content or None,
                thinking=thinking or None,
                finish_reason=reason,
                usage=self.state.last_usage if reason else None,
                chunk_id=event.get("responseId"),
                model=event.get("modelVersion"),
                metadata=self._metadata(),
            )

        if reason is None or self.state.terminal_emitted:
            return None
        if reason == "stop":
            self.state.pending_finish_reason = "stop"
            return None
        return self._terminal_chunk(reason, usage=self.state.last_usage, chunk_id=event.get("responseId"))

    def _capture_grounding(self, event: Mapping[str, Any], candidate: Mapping[str, Any]) -> None:
        grounding = (
            candidate.get("groundingMetadata")
            or event.get("groundingMetadata")
            or event.get("grounding_metadata")
        )
        if not isinstance(grounding, Mapping):
            return
        self.state.merge_queries(grounding.get("webSearchQueries") or [])
        sources = []
        for ch in grounding.get("groundingChunks") or []:
            web = ch.get("web") if isinstance(ch, Mapping) else None
            if not isinstance(web, Mapping) or not web.get("uri"):
                continue
            url = web["uri"]
            title = web.get("title")
            sources.append({"title": title if isinstance(title, str) and title.strip() else hostname_title(url), "url": url})
        self.state.merge_sources(sources)
