"""流式处理器基类与每个流的状态。

处理器生命周期与一次 stream_chat 调用相同：

    processor = XxxStreamProcessor(model)
    for text in fragments:
        for chunk in processor.process_text(text):
            ...
    for chunk in processor.finish():
        ...

子类只需实现 process_event(event)，对每个厂商事件返回至多一个
NormalizedChunk（或 None）。
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional
from urllib.parse import urlparse
from uuid import uuid4

from provider_core.domain.models import ChunkChoice, ChunkDelta, ChunkUsage, NormalizedChunk
from provider_core.providers.sse import SSEDecoder, decode_json_events


@dataclass
class StreamState:
    """单个流的可变状态，只属于一个处理器实例。"""

    last_seen_content: str = ""
    reasoning_emitted: bool = False
    search_sources: List[Dict[str, Any]] = field(default_factory=list)
    search_queries: List[str] = field(default_factory=list)
    response_id: Optional[str] = None
    terminal_emitted: bool = False
    pending_finish_reason: Optional[str] = None
    last_usage: Optional[ChunkUsage] = None
    cache_discount: Optional[int] = None

    def merge_sources(self, sources: Iterable[Mapping[str, Any]]) -> bool:
        """按 url 去重合并搜索来源，返回是否有新增。"""

        known = {s["url"] for s in self.search_sources}
        added = False
        for src in sources:
            url = src.get("url")
            if not url or url in known:
                continue
            known.add(url)
            self.search_sources.append(dict(src))
            added = True
        return added

    def merge_queries(self, queries: Iterable[str]) -> None:
        for q in queries:
            if isinstance(q, str) and q and q not in self.search_queries:
                self.search_queries.append(q)


def hostname_title(url: str) -> str:
    """url 的主机名（去掉 www.），解析失败时返回原 url。"""

    try:
        host = (urlparse(url).hostname or "").strip()
    except ValueError:
        return url
    if host.lower().startswith("www."):
        host = host[4:]
    return host or url


def convert_usage(usage: Optional[Mapping[str, Any]]) -> Optional[ChunkUsage]:
    """兼容 chat/completions 与 Responses 两种 usage 字段命名。"""

    if not isinstance(usage, Mapping):
        return None
    prompt = usage.get("prompt_tokens")
    if prompt is None:
        prompt = usage.get("input_tokens") or 0
    completion = usage.get("completion_tokens")
    if completion is None:
        completion = usage.get("output_tokens") or 0
    total = usage.get("total_tokens")
    if total is None:
        total = (usage.get("input_tokens") or 0) + (usage.get("output_tokens") or 0)
    thinking = usage.get("reasoning_tokens") or usage.get("thinking_tokens")
    if thinking is None:
        for key in ("output_tokens_details", "completion_tokens_details"):
            details = usage.get(key)
            if isinstance(details, Mapping) and details.get("reasoning_tokens"):
                thinking = details["reasoning_tokens"]
                break
    return ChunkUsage(
        prompt_tokens=int(prompt),
        completion_tokens=int(completion),
        total_tokens=int(total),
        thinking_tokens=int(thinking) if thinking else None,
    )


def stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return "".join(stringify(v) for v in value)
    if isinstance(value, Mapping):
        for key in ("text", "summary", "content"):
            if isinstance(value.get(key), str):
                return value[key]
    return str(value)


class StreamProcessor:
    """各厂商流式处理器的公共部分：分帧、状态、分块构造。"""

    provider = "unknown"

    def __init__(self, model: str, show_thinking: bool = True):
        self.model = model
        self.show_thinking = show_thinking
        self.state = StreamState()
        self._decoder = SSEDecoder()

    # ---- 分帧 ----

    def feed(self, text: str) -> List[Dict[str, Any]]:
        """喂入一段原始文本，返回其中完整的厂商事件。"""

        return decode_json_events(self._decoder.feed(text), self.provider)

    def _flush_events(self) -> List[Dict[str, Any]]:
        return decode_json_events(self._decoder.flush(), self.provider)

    def process_text(self, text: str) -> List[NormalizedChunk]:
        chunks = []
        for event in self.feed(text):
            chunk = self.process_event(event)
            if chunk is not None:
                chunks.append(chunk)
        return chunks

    def finish(self) -> List[NormalizedChunk]:
        """流结束：处理残留事件，必要时补发终止分块。"""

        chunks = []
        for event in self._flush_events():
            chunk = self.process_event(event)
            if chunk is not None:
                chunks.append(chunk)
        st = self.state
        if not st.terminal_emitted and st.pending_finish_reason is not None:
            chunks.append(self._terminal_chunk(st.pending_finish_reason, usage=st.last_usage))
        return chunks

    # ---- 事件处理 ----

    def process_event(self, event: Dict[str, Any]) -> Optional[NormalizedChunk]:
        raise NotImplementedError

    def reset(self) -> None:
        self.state = StreamState()
        self._decoder = SSEDecoder()

    # ---- 辅助方法 ----

    def _diff_cumulative(self, snapshot: str) -> Optional[str]:
        """累计快照转增量：只返回相对上次快照新增的部分。

        新快照不比已记录的长（重复或乱序）时返回 None，且不回写更短的值。
        """

        last = self.state.last_seen_content
        if len(snapshot) <= len(last):
            return None
        prefix = 0
        limit = len(last)
        while prefix < limit and last[prefix] == snapshot[prefix]:
            prefix += 1
        self.state.last_seen_content = snapshot
        delta = snapshot[prefix:]
        return delta or None

    def _metadata(self, response_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        meta: Dict[str, Any] = {}
        rid = response_id or self.state.response_id
        if rid:
            meta["responseId"] = rid
        if self.state.search_sources:
            results: Dict[str, Any] = {"sources": [dict(s) for s in self.state.search_sources]}
            if self.state.search_queries:
                results["queries"] = list(self.state.search_queries)
            meta["searchResults"] = results
        return meta or None

    def _chunk_id(self, suffix: str = "") -> str:
        return f"{self.provider}-chunk-{uuid4().hex[:12]}{suffix}"

    def _make_chunk(
        self,
        content: Optional[str] = None,
        thinking: Optional[str] = None,
        finish_reason: Optional[str] = None,
        usage: Optional[ChunkUsage] = None,
        chunk_id: Optional[str] = None,
        model: Optional[str] = None,
        created: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> NormalizedChunk:
        return NormalizedChunk(
            id=chunk_id or self._chunk_id(),
            model=model or self.model,
            created=created or int(time.time()),
            choices=[ChunkChoice(index=0, delta=ChunkDelta(content=content, thinking=thinking), finish_reason=finish_reason)],
            usage=usage,
            metadata=metadata,
        )

    def _terminal_chunk(
        self,
        finish_reason: str,
        usage: Optional[ChunkUsage] = None,
        chunk_id: Optional[str] = None,
        model: Optional[str] = None,
        created: Optional[int] = None,
    ) -> NormalizedChunk:
        self.state.terminal_emitted = True
        self.state.pending_finish_reason = None
        return self._make_chunk(
            finish_reason=finish_reason,
            usage=usage,
            chunk_id=chunk_id or self.state.response_id,
            model=model,
            created=created,
            metadata=self._terminal_metadata(usage),
        )

    def _terminal_metadata(self, usage: Optional[ChunkUsage]) -> Optional[Dict[str, Any]]:
        meta = self._metadata() or {}
        # 缓存命中的 token 数只随携带 usage 的终止分块上报
        if usage is not None and self.state.cache_discount:
            meta["cacheDiscount"] = self.state.cache_discount
        return meta or None
