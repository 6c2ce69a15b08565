"""增量 SSE 解码。

按行切分输入文本，跨调用保留不完整的尾行；空行作为事件边界。
支持 `event:` / `data:` 字段与 `:` 注释行，其他字段忽略。
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from provider_core.infrastructure.logging.logger import logger

DONE_SENTINEL = "[DONE]"


@dataclass
class SSEEvent:
    data: str
    event: Optional[str] = None


class SSEDecoder:
    def __init__(self) -> None:
        self._buffer = ""
        self._event: Optional[str] = None
        self._data: List[str] = []

    def feed(self, text: str) -> List[SSEEvent]:
        self._buffer += text
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        events: List[SSEEvent] = []
        for raw in lines:
            self._consume_line(raw.rstrip("\r"), events)
        return events

    def flush(self) -> List[SSEEvent]:
        """流结束时调用：处理残留的尾行并派发未结束的事件。"""

        events: List[SSEEvent] = []
        if self._buffer:
            self._consume_line(self._buffer.rstrip("\r"), events)
            self._buffer = ""
        self._dispatch(events)
        return events

    def _consume_line(self, line: str, events: List[SSEEvent]) -> None:
        if not line:
            self._dispatch(events)
            return
        if line.startswith(":"):
            return
        name, sep, value = line.partition(":")
        if not sep:
            # 无字段名的裸 JSON 行（NDJSON）
            self._data.append(line)
            return
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name not in ("id", "retry"):
            # 不是 SSE 字段，按裸行处理
            self._data.append(line)

    def _dispatch(self, events: List[SSEEvent]) -> None:
        if self._data:
            events.append(SSEEvent(data="\n".join(self._data), event=self._event))
        self._event = None
        self._data = []


def decode_json_events(events: Iterable[SSEEvent], provider: str) -> List[Dict[str, Any]]:
    """把 SSE 事件解析成 JSON 对象列表。

    多行 data 整体解析失败时按行逐个解析（部分服务端不发送空行分隔）。
    无法解析的片段视为协议噪声，只记 debug 日志。
    """

    out: List[Dict[str, Any]] = []
    for ev in events:
        for payload in _payloads(ev.data, provider):
            if isinstance(payload, dict):
                if ev.event and "type" not in payload:
                    payload["type"] = ev.event
                out.append(payload)
    return out


def _payloads(data: str, provider: str) -> List[Any]:
    data = data.strip()
    if not data or data == DONE_SENTINEL:
        return []
    try:
        return [json.loads(data)]
    except ValueError:
        pass
    parsed = []
    for line in data.split("\n"):
        line = line.strip()
        if line.startswith("data:"):
            line = line[5:].strip()
        if not line or line == DONE_SENTINEL:
            continue
        try:
            parsed.append(json.loads(line))
        except ValueError:
            logger.debug("stream.skip_malformed", extra={"extra": {"provider": provider, "size": len(line)}})
    return parsed
