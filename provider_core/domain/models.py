"""统一的消息、流式分块与错误数据模型。

本模块定义了所有 Provider 之间共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant）。
- ChatOptions: 单次 stream_chat 调用的选项（系统提示、续写 ID、取消令牌等）。
- NormalizedChunk: 厂商无关的流式增量单元，是本层对外的主要契约。
- ChatResponse: 非流式 chat() 的聚合结果。
- ProviderCapabilities / ProviderError / ValidationResult: Provider 元数据。

所有 Provider 适配器都只依赖这些模型，并负责在各自的 API JSON
和这些模型之间做转换。
"""

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional, Tuple
from uuid import uuid4

if TYPE_CHECKING:
    # 仅在类型检查时导入，避免运行时循环依赖
    from provider_core.infrastructure.transport import CancellationToken


Role = Literal["system", "user", "assistant"]

ProviderType = Literal["openai", "gemini", "openrouter", "grok", "openai_compat"]

FinishReason = Optional[Literal["stop", "length", "content_filter", "tool_calls"]]

ErrorType = Literal[
    "validation",
    "not_initialized",
    "not_supported",
    "network",
    "timeout",
    "aborted",
    "authentication",
    "rate_limit",
    "unknown",
]

VALID_ROLES = ("system", "user", "assistant")


@dataclass
class ChatMessage:
    """一条对话消息。

    - role: 消息角色。
    - content: 纯文本内容，发送前要求 strip 后非空。
    - meta: 附加元数据（附件、分段信息等），部分 Provider 会读取其中的 attachments。
    - id: 消息 ID，仅用于日志关联。
    """

    role: Role
    content: str
    meta: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"msg-{uuid4().hex}")


@dataclass
class ChatOptions:
    """单次流式调用的选项。

    previous_response_id 只对有服务端会话状态的厂商（Responses 风格 API）生效：
    提供时只发送最新一条用户消息。
    """

    system_prompt: Optional[str] = None
    previous_response_id: Optional[str] = None
    reasoning_effort: Optional[str] = None
    thinking_budget: Optional[Any] = None
    thinking_level: Optional[str] = None
    use_url_context: bool = False
    cancel_token: Optional["CancellationToken"] = None


@dataclass
class ChunkDelta:
    content: Optional[str] = None
    thinking: Optional[str] = None

    def is_empty(self) -> bool:
        return not self.content and not self.thinking


@dataclass
class ChunkChoice:
    index: int
    delta: ChunkDelta
    finish_reason: FinishReason = None


@dataclass
class ChunkUsage:
    """token 统计，直接取自厂商事件，本层从不累加。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    thinking_tokens: Optional[int] = None


@dataclass
class NormalizedChunk:
    """流式对话的增量结果。

    choices 最多只有一条（单回答流式）；choices[0].finish_reason 仅在
    终止分块上非空。metadata 中可能包含 searchResults / responseId。
    """

    id: str
    model: str
    choices: List[ChunkChoice]
    object: str = "response.chunk"
    created: int = field(default_factory=lambda: int(time.time()))
    usage: Optional[ChunkUsage] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def finish_reason(self) -> FinishReason:
        return self.choices[0].finish_reason if self.choices else None

    @property
    def content(self) -> Optional[str]:
        return self.choices[0].delta.content if self.choices else None

    @property
    def thinking(self) -> Optional[str]:
        return self.choices[0].delta.thinking if self.choices else None

    def to_dict(self) -> Dict[str, Any]:
        """转为对外的 camelCase JSON 结构。"""

        choices = []
        for ch in self.choices:
            delta: Dict[str, Any] = {}
            if ch.delta.content is not None:
                delta["content"] = ch.delta.content
            if ch.delta.thinking is not None:
                delta["thinking"] = ch.delta.thinking
            choices.append({"index": ch.index, "delta": delta, "finishReason": ch.finish_reason})
        data: Dict[str, Any] = {
            "id": self.id,
            "object": self.object,
            "created": self.created,
            "model": self.model,
            "choices": choices,
        }
        if self.usage is not None:
            usage = {
                "promptTokens": self.usage.prompt_tokens,
                "completionTokens": self.usage.completion_tokens,
                "totalTokens": self.usage.total_tokens,
            }
            if self.usage.thinking_tokens is not None:
                usage["thinkingTokens"] = self.usage.thinking_tokens
            data["usage"] = usage
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data


@dataclass
class ChatResponse:
    """非流式 chat() 的完整结果，由同一请求的全部分块聚合而来。

    finish_reason 为 None 表示上游没有发出终止信号（响应被截断）。
    """

    id: str
    model: str
    content: str
    finish_reason: FinishReason = None
    thinking: Optional[str] = None
    usage: Optional[ChunkUsage] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_chunks(cls, chunks: List["NormalizedChunk"], model: str) -> "ChatResponse":
        content: List[str] = []
        thinking: List[str] = []
        metadata: Dict[str, Any] = {}
        finish_reason: FinishReason = None
        usage: Optional[ChunkUsage] = None
        chunk_id = ""
        for chunk in chunks:
            chunk_id = chunk_id or chunk.id
            if chunk.content:
                content.append(chunk.content)
            if chunk.thinking:
                thinking.append(chunk.thinking)
            if chunk.usage is not None:
                usage = chunk.usage
            if chunk.metadata:
                metadata.update(chunk.metadata)
            if chunk.finish_reason is not None:
                finish_reason = chunk.finish_reason
                chunk_id = chunk.id
        return cls(
            id=chunk_id or f"resp-{uuid4().hex[:12]}",
            model=chunks[-1].model if chunks else model,
            content="".join(content),
            finish_reason=finish_reason,
            thinking="".join(thinking) or None,
            usage=usage,
            metadata=metadata or None,
        )

@dataclass(frozen=True)
class ProviderCapabilities:
    """Provider 的静态能力声明，构造后只读。"""

    streaming: bool
    reasoning: bool
    thinking: bool
    multimodal: bool
    max_context_length: int
    supported_models: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ProviderError:
    """统一错误记录，每条失败路径只创建一次。"""

    type: ErrorType
    message: str
    code: str
    provider: str
    retry_after: Optional[int] = None
    details: Optional[Dict[str, Any]] = None


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
