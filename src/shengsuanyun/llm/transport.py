"""
HTTP transport（httpx）。

职责：
- 发起单次 HTTP 调用：非 streaming 返回解析后的 JSON；streaming 返回原始 body 字节迭代器；
- 非 2xx / 网络失败统一映射为 `TransportError`，不做任何重试；
- 超时与取消完全委托给 httpx（`httpx.Timeout`）。
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from shengsuanyun.core.errors import ResponseShapeError, TransportError

logger = logging.getLogger(__name__)


def build_headers(
    *,
    api_key: Optional[str],
    referer: str,
    title: str,
    content_type: bool = True,
) -> Dict[str, str]:
    """
    构造请求头：bearer 鉴权 + 两个固定标识头。

    参数：
    - api_key：为空时不带 Authorization（例如公开的 `/models` 列表）
    - referer/title：`HTTP-Referer` 与 `X-Title`
    """

    headers: Dict[str, str] = {}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    if content_type:
        headers["Content-Type"] = "application/json"
    headers["HTTP-Referer"] = referer
    headers["X-Title"] = title
    return headers


def _status_error(method: str, url: str, status_code: int, body: str) -> TransportError:
    """非 2xx 响应 → `TransportError`（消息中附带响应体里的错误信息）。"""

    err = TransportError(
        f"{method} {url} failed with HTTP {status_code}",
        status_code=status_code,
        body=body,
    )
    detail = err.error_message
    if detail:
        err.args = (f"{err.args[0]}: {detail}",)
    return err


class HttpTransport:
    """
    基于 `httpx.AsyncClient` 的 transport。

    说明：
    - 每次调用创建独立 client（调用之间不共享可变状态）；
    - `http_transport` 可注入 `httpx.MockTransport` 等，用于离线测试。
    """

    def __init__(
        self,
        *,
        timeout_sec: float = 60.0,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """`timeout_sec` 为默认超时；`http_transport` 透传给 `httpx.AsyncClient`。"""

        self._timeout_sec = float(timeout_sec)
        self._http_transport = http_transport

    @property
    def timeout_sec(self) -> float:
        """默认超时（秒）。"""

        return self._timeout_sec

    def _client(self, timeout_sec: Optional[float]) -> httpx.AsyncClient:
        """按本次超时创建新的 `httpx.AsyncClient`。"""

        timeout = httpx.Timeout(float(timeout_sec) if timeout_sec is not None else self._timeout_sec)
        if self._http_transport is not None:
            return httpx.AsyncClient(timeout=timeout, transport=self._http_transport)
        return httpx.AsyncClient(timeout=timeout)

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        headers: Dict[str, str],
        json_body: Optional[Dict[str, Any]] = None,
        timeout_sec: Optional[float] = None,
    ) -> Any:
        """
        发起一次非 streaming 请求并返回 JSON。

        异常：
        - TransportError：非 2xx 或网络失败
        - ResponseShapeError：响应体不是合法 JSON
        """

        logger.debug("%s %s", method, url)
        try:
            async with self._client(timeout_sec) as client:
                resp = await client.request(method, url, json=json_body, headers=headers)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if resp.status_code < 200 or resp.status_code >= 300:
            raise _status_error(method, url, resp.status_code, resp.text)
        try:
            return resp.json()
        except ValueError as exc:
            raise ResponseShapeError(f"{method} {url} returned a non-JSON body") from exc

    async def stream_bytes(
        self,
        method: str,
        url: str,
        *,
        headers: Dict[str, str],
        json_body: Optional[Dict[str, Any]] = None,
        timeout_sec: Optional[float] = None,
    ) -> AsyncIterator[bytes]:
        """
        发起 streaming 请求，逐块产出原始 body 字节。

        说明：
        - 非 2xx 时先读取错误 body（OpenAI 风格 `{"error":{"message":...}}`）再抛出，保证可观测性；
        - 消费方关闭迭代器（`aclose()`）会关闭 response 与 client，停止后续读取。
        """

        logger.debug("%s %s (stream)", method, url)
        try:
            async with self._client(timeout_sec) as client:
                async with client.stream(method, url, json=json_body, headers=headers) as resp:
                    if resp.status_code < 200 or resp.status_code >= 300:
                        await resp.aread()
                        raise _status_error(method, url, resp.status_code, resp.text)
                    async for chunk in resp.aiter_bytes():
                        if chunk:
                            yield chunk
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc
