"""
tool calling 示例。

用途：
- 演示 `bind_tools` 绑定自定义工具；
- 演示 streaming 时 tool_call arguments 分片的累积结果，以及把工具结果回注到下一轮请求。
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel

from shengsuanyun.bootstrap import bootstrap
from shengsuanyun.credentials import Credentials, resolve_credentials
from shengsuanyun.llm.chat_model import ShengSuanYunChatModel
from shengsuanyun.llm.fake import FakeHttpCall, FakeTransport
from shengsuanyun.llm.protocol import AIMessage
from shengsuanyun.llm.transport import HttpTransport


class AddNumbersArgs(BaseModel):
    a: int
    b: int


def add_numbers(a: int, b: int) -> int:
    """计算两个整数之和。"""

    return a + b


def _sse(delta: Dict[str, Any]) -> bytes:
    event = {"choices": [{"index": 0, "delta": delta}]}
    return b"data: " + json.dumps(event).encode("utf-8") + b"\n\n"


def _offline_transport() -> FakeTransport:
    """第一轮：分两片返回 add_numbers 调用；第二轮：返回最终答案。"""

    first = [
        _sse({"tool_calls": [{"index": 0, "id": "call_add", "type": "function", "function": {"name": "add_numbers", "arguments": '{"a": 13,'}}]}),
        _sse({"tool_calls": [{"index": 0, "function": {"arguments": ' "b": 29}'}}]}),
        b"data: [DONE]\n\n",
    ]
    final = {"choices": [{"message": {"role": "assistant", "content": "13 + 29 = 42"}, "finish_reason": "stop"}]}
    return FakeTransport([FakeHttpCall(chunks=first), FakeHttpCall(json=final)])


async def _run(model: ShengSuanYunChatModel, message: str) -> str:
    last: Optional[AIMessage] = None
    async for msg in model.stream(message):
        last = msg
    if last is None or not last.tool_calls:
        return last.content if last is not None else ""

    history: List[Any] = [{"role": "user", "content": message}, last]
    for tc in last.tool_calls:
        args = AddNumbersArgs.model_validate_json(tc.function.arguments)
        print(f"[tool] {tc.function.name}({args.a}, {args.b})")
        history.append({"role": "tool", "tool_call_id": tc.id, "content": str(add_numbers(args.a, args.b))})

    answer = await model.invoke(history)
    return answer.content


def main(argv: Optional[Sequence[str]] = None) -> int:
    """脚本入口。"""

    parser = argparse.ArgumentParser(description="Run ShengSuanYun tool calling demo")
    parser.add_argument("--workspace-root", default=".", help="Workspace root path")
    parser.add_argument("--config", action="append", default=[], help="Overlay YAML path (repeatable)")
    parser.add_argument("--model", default="openai/gpt-4o-mini", help="Model id")
    parser.add_argument("--message", default="请调用 add_numbers 计算 13 + 29。", help="User message")
    parser.add_argument("--offline", action="store_true", help="Use an offline fake transport")
    args = parser.parse_args(list(argv) if argv is not None else None)

    boot = bootstrap(
        workspace_root=Path(args.workspace_root).resolve(),
        config_paths=[Path(p).expanduser().resolve() for p in args.config],
    )
    cfg = boot.config

    transport: HttpTransport
    if args.offline:
        credentials = Credentials(api_key="offline", base_url=cfg.llm.base_url)
        transport = _offline_transport()
    else:
        credentials = resolve_credentials(cfg.llm, env=boot.env)
        transport = HttpTransport(timeout_sec=cfg.llm.timeout_sec)

    model = ShengSuanYunChatModel.from_config(cfg, credentials, model=args.model, transport=transport).bind_tools(
        [{"name": "add_numbers", "description": "计算两个整数并返回和", "schema": AddNumbersArgs}]
    )
    print("final_output:")
    print(asyncio.run(_run(model, args.message)))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
