"""HTTP 传输层协议与默认 httpx 实现。

Provider 不直接依赖 httpx，而是依赖 Transport 协议：

- request(req): 一次性请求，返回完整响应。
- stream(req): 打开字节流，逐块产出原始 bytes。

每次调用都会携带 CancellationToken，流式读取时在处理每个分片前检查，
取消后抛出 AbortError。
"""

import json
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Mapping, Optional, Protocol

import httpx

from provider_core.domain.exceptions import AbortError, NetworkError, ProviderTimeoutError


class CancellationToken:
    """协作式取消令牌，可跨线程调用 cancel()。"""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AbortError(message=self.reason or "Request was cancelled")


@dataclass
class TransportRequest:
    url: str
    method: str = "POST"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Any] = None
    stream: bool = False
    cancel_token: Optional[CancellationToken] = None
    timeout: Optional[float] = None


@dataclass
class TransportResponse:
    status_code: int
    headers: Mapping[str, str]
    body: bytes

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)


class HttpStatusError(Exception):
    """服务端返回非 2xx 状态码。body 为原始响应文本，交给各厂商错误处理器解析。"""

    def __init__(self, status_code: int, body: str, headers: Optional[Mapping[str, str]] = None):
        self.status_code = status_code
        self.body = body
        self.headers = dict(headers or {})
        super().__init__(f"HTTP {status_code}: {body[:200]}")

    def json(self) -> Optional[Any]:
        try:
            return json.loads(self.body)
        except (TypeError, ValueError):
            return None


class Transport(Protocol):
    """传输层协议。"""

    def request(self, req: TransportRequest) -> TransportResponse:
        ...

    def stream(self, req: TransportRequest) -> Iterator[bytes]:
        """打开字节流；非 2xx 时抛出 HttpStatusError。"""

        ...


class HttpxTransport:
    """基于 httpx.Client 的同步传输实现。"""

    def __init__(self, timeout: float = 60.0):
        self._timeout = timeout

    def _client(self, req: TransportRequest) -> httpx.Client:
        return httpx.Client(timeout=req.timeout or self._timeout, trust_env=False)

    @staticmethod
    def _content(req: TransportRequest) -> Dict[str, Any]:
        if req.body is None:
            return {}
        if isinstance(req.body, (bytes, str)):
            return {"content": req.body}
        return {"json": req.body}

    def request(self, req: TransportRequest) -> TransportResponse:
        if req.cancel_token is not None:
            req.cancel_token.raise_if_cancelled()
        try:
            with self._client(req) as client:
                resp = client.request(req.method, req.url, headers=req.headers, **self._content(req))
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(code="TIMEOUT", message=str(e) or "Request timed out")
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code >= 400:
            raise HttpStatusError(resp.status_code, resp.text, resp.headers)
        return TransportResponse(status_code=resp.status_code, headers=dict(resp.headers), body=resp.content)

    def stream(self, req: TransportRequest) -> Iterator[bytes]:
        token = req.cancel_token
        if token is not None:
            token.raise_if_cancelled()
        try:
            with self._client(req) as client:
                with client.stream(req.method, req.url, headers=req.headers, **self._content(req)) as resp:
                    if resp.status_code >= 400:
                        resp.read()
                        raise HttpStatusError(resp.status_code, resp.text, resp.headers)
                    for chunk in resp.iter_bytes():
                        if token is not None:
                            token.raise_if_cancelled()
                        if chunk:
                            yield chunk
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(code="TIMEOUT", message=str(e) or "Request timed out")
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
