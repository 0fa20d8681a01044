"""
Fake transport（离线回归夹具）。

用途：
- 在不依赖真实网络的情况下，回归 chat model / node / CLI 的编排逻辑；
- 每次 `request_json` / `stream_bytes` 消费一个预设的 `FakeHttpCall`，并记录请求。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from shengsuanyun.llm.transport import HttpTransport


@dataclass(frozen=True)
class FakeHttpCall:
    """
    一次调用的预设结果。

    - json：`request_json` 返回值
    - chunks：`stream_bytes` 依次产出的字节块
    - error：若设置，调用时直接抛出（streaming 时在产出 chunks 之后抛出）
    """

    json: Any = None
    chunks: List[bytes] = field(default_factory=list)
    error: Optional[BaseException] = None


@dataclass
class RecordedRequest:
    """FakeTransport 记录的一次请求。"""

    method: str
    url: str
    headers: Dict[str, str]
    json_body: Optional[Dict[str, Any]]
    timeout_sec: Optional[float]
    stream: bool


class FakeTransport(HttpTransport):
    """用脚本化结果模拟 `HttpTransport`。"""

    def __init__(self, calls: Sequence[FakeHttpCall]) -> None:
        """`calls` 按顺序消费，每次请求取一个。"""

        super().__init__()
        self._calls = list(calls)
        self._idx = 0
        self.requests: List[RecordedRequest] = []
        self.chunks_read = 0

    def _next_call(self) -> FakeHttpCall:
        """取下一条脚本化结果；用尽时抛 ValueError。"""

        if self._idx >= len(self._calls):
            raise ValueError("FakeTransport calls exhausted")
        call = self._calls[self._idx]
        self._idx += 1
        return call

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        headers: Dict[str, str],
        json_body: Optional[Dict[str, Any]] = None,
        timeout_sec: Optional[float] = None,
    ) -> Any:
        """记录请求并返回脚本化 JSON（或抛出脚本化异常）。"""

        self.requests.append(RecordedRequest(method, url, dict(headers), json_body, timeout_sec, stream=False))
        call = self._next_call()
        if call.error is not None:
            raise call.error
        return call.json

    async def stream_bytes(
        self,
        method: str,
        url: str,
        *,
        headers: Dict[str, str],
        json_body: Optional[Dict[str, Any]] = None,
        timeout_sec: Optional[float] = None,
    ) -> AsyncIterator[bytes]:
        """记录请求并逐块产出脚本化字节（最后抛出脚本化异常）。"""

        self.requests.append(RecordedRequest(method, url, dict(headers), json_body, timeout_sec, stream=True))
        call = self._next_call()
        for chunk in call.chunks:
            self.chunks_read += 1
            yield chunk
        if call.error is not None:
            raise call.error
