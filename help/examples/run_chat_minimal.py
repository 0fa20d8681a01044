"""
最小 chat 示例。

用途：
- 演示如何用 overlay 配置 + 环境变量凭据构造 `ShengSuanYunChatModel`；
- 演示如何消费 `stream()` 增量；
- `--offline` 时使用 `FakeTransport`，无需网络与 API key。
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import List, Optional, Sequence

from shengsuanyun.bootstrap import bootstrap
from shengsuanyun.credentials import Credentials, resolve_credentials
from shengsuanyun.llm.chat_model import ShengSuanYunChatModel
from shengsuanyun.llm.fake import FakeHttpCall, FakeTransport
from shengsuanyun.llm.transport import HttpTransport


def _offline_transport(reply: str) -> FakeTransport:
    """把 reply 拆成逐字的 SSE 事件。"""

    chunks: List[bytes] = []
    for ch in reply:
        event = {"choices": [{"index": 0, "delta": {"content": ch}}]}
        chunks.append(b"data: " + json.dumps(event, ensure_ascii=False).encode("utf-8") + b"\n\n")
    chunks.append(b"data: [DONE]\n\n")
    return FakeTransport([FakeHttpCall(chunks=chunks)])


async def _run(model: ShengSuanYunChatModel, message: str) -> str:
    parts: List[str] = []
    async for msg in model.stream(message):
        print(f"[delta] {msg.content!r}")
        parts.append(msg.content)
    return "".join(parts)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    示例脚本入口。

    命令行参数：
    - --workspace-root：工作区目录（`.env` 与 `config/shengsuanyun.yaml` 所在处）；
    - --config：overlay 路径（可重复）；
    - --model：模型 id（默认取配置）；
    - --message：用户消息；
    - --offline：使用离线 fake transport。
    """

    parser = argparse.ArgumentParser(description="Run minimal ShengSuanYun chat demo")
    parser.add_argument("--workspace-root", default=".", help="Workspace root path")
    parser.add_argument("--config", action="append", default=[], help="Overlay YAML path (repeatable)")
    parser.add_argument("--model", default="openai/gpt-4o-mini", help="Model id")
    parser.add_argument("--message", default="用一句话介绍你自己。", help="User message")
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
        transport = _offline_transport("你好，我是离线示例。")
    else:
        credentials = resolve_credentials(cfg.llm, env=boot.env)
        transport = HttpTransport(timeout_sec=cfg.llm.timeout_sec)

    model = ShengSuanYunChatModel.from_config(cfg, credentials, model=args.model, transport=transport)
    print(f"[demo] model={model.model} base_url={model.base_url}")
    final_text = asyncio.run(_run(model, args.message))

    print("\n[demo] final_text:\n")
    print(final_text)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
