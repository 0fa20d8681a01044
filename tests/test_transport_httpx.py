from __future__ import annotations

import asyncio
import json
from typing import AsyncIterator, List

import httpx
import pytest

from shengsuanyun.core.errors import ResponseShapeError, TransportError
from shengsuanyun.llm.transport import HttpTransport, build_headers


def _run_stream(transport: HttpTransport, url: str) -> List[bytes]:
    async def _collect() -> List[bytes]:
        return [c async for c in transport.stream_bytes("POST", url, headers={}, json_body={"stream": True})]

    return asyncio.run(_collect())


def test_build_headers_carries_auth_and_identification() -> None:
    headers = build_headers(api_key="sk-1", referer="https://example.invalid/r", title="t")
    assert headers == {
        "Authorization": "Bearer sk-1",
        "Content-Type": "application/json",
        "HTTP-Referer": "https://example.invalid/r",
        "X-Title": "t",
    }
    public = build_headers(api_key=None, referer="r", title="t", content_type=False)
    assert "Authorization" not in public
    assert "Content-Type" not in public


def test_request_json_posts_body_and_returns_json() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True})

    transport = HttpTransport(http_transport=httpx.MockTransport(handler))
    out = asyncio.run(
        transport.request_json(
            "POST",
            "https://api.example.invalid/v1/chat/completions",
            headers={"Authorization": "Bearer k"},
            json_body={"model": "m"},
        )
    )
    assert out == {"ok": True}
    assert seen == {
        "method": "POST",
        "url": "https://api.example.invalid/v1/chat/completions",
        "auth": "Bearer k",
        "body": {"model": "m"},
    }


def test_non_2xx_is_mapped_with_error_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "Invalid API key", "type": "auth"}})

    transport = HttpTransport(http_transport=httpx.MockTransport(handler))
    with pytest.raises(TransportError) as ei:
        asyncio.run(transport.request_json("POST", "https://api.example.invalid/x", headers={}))
    err = ei.value
    assert err.status_code == 401
    assert err.error_message == "Invalid API key"
    assert "HTTP 401" in str(err)
    assert "Invalid API key" in str(err)


def test_connection_failure_is_mapped_without_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = HttpTransport(http_transport=httpx.MockTransport(handler))
    with pytest.raises(TransportError) as ei:
        asyncio.run(transport.request_json("GET", "https://api.example.invalid/models", headers={}))
    assert ei.value.status_code is None
    assert isinstance(ei.value.__cause__, httpx.ConnectError)


def test_non_json_body_is_a_response_shape_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    transport = HttpTransport(http_transport=httpx.MockTransport(handler))
    with pytest.raises(ResponseShapeError):
        asyncio.run(transport.request_json("GET", "https://api.example.invalid/models", headers={}))


def test_stream_bytes_yields_raw_body() -> None:
    async def body() -> AsyncIterator[bytes]:
        yield b"data: {\"choices\":[]}\n\n"
        yield b"data: [DONE]\n\n"

    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content) == {"stream": True}
        return httpx.Response(200, content=body())

    transport = HttpTransport(http_transport=httpx.MockTransport(handler))
    chunks = _run_stream(transport, "https://api.example.invalid/v1/chat/completions")
    assert b"".join(chunks) == b"data: {\"choices\":[]}\n\ndata: [DONE]\n\n"


def test_stream_error_body_is_read_before_raising() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"message": "rate limited"}})

    transport = HttpTransport(http_transport=httpx.MockTransport(handler))
    with pytest.raises(TransportError) as ei:
        _run_stream(transport, "https://api.example.invalid/v1/chat/completions")
    assert ei.value.status_code == 429
    assert ei.value.error_message == "rate limited"
    assert ei.value.body is not None and "rate limited" in ei.value.body


def test_error_message_variants() -> None:
    assert TransportError("x", body='{"error":"plain"}').error_message == "plain"
    assert TransportError("x", body='{"message":"top"}').error_message == "top"
    assert TransportError("x", body="not json").error_message is None
    assert TransportError("x").error_message is None
