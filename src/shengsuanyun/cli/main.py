"""
ShengSuanYun CLI（chat/models）。

约束：
- 使用 argparse（不引入第三方 CLI 依赖）
- stdout 输出机器可读 JSON（streaming 时每个增量一行 JSONL）；失败时也输出 JSON

退出码：
- 0：成功
- 1：远端/协议错误（TransportError、ResponseShapeError）
- 2：参数/配置错误
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from shengsuanyun.bootstrap import BootstrapResult, bootstrap
from shengsuanyun.config.loader import ConnectorConfig
from shengsuanyun.core.errors import FrameworkError, FrameworkIssue, LlmError, TransportError
from shengsuanyun.credentials import resolve_credentials
from shengsuanyun.llm.chat_model import ShengSuanYunChatModel
from shengsuanyun.llm.transport import HttpTransport
from shengsuanyun.models import list_models

logger = logging.getLogger(__name__)


def _ensure_utf8_stdio() -> None:
    """best-effort 将 stdout/stderr reconfigure 为 UTF-8（C locale 下输出中文不崩）。"""

    for stream in (sys.stdout, sys.stderr):
        reconfigure = getattr(stream, "reconfigure", None)
        if callable(reconfigure):
            try:
                reconfigure(encoding="utf-8", errors="replace")
            except (ValueError, OSError):
                continue


def _dump_json_to_stdout(obj: Dict[str, Any], *, pretty: bool) -> None:
    """将 dict 输出为 JSON 到 stdout（末尾包含换行）。"""

    if pretty:
        text = json.dumps(obj, ensure_ascii=False, indent=2)
    else:
        text = json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
    print(text, flush=True)


def _issues_payload(issues: List[FrameworkIssue]) -> Dict[str, Any]:
    """issues 列表 → JSON payload。"""

    return {"issues": [{"code": i.code, "message": i.message, "details": i.details} for i in issues]}


def _llm_issue(exc: LlmError) -> FrameworkIssue:
    """LLM 异常 → `FrameworkIssue`（transport 错误附带 status_code）。"""

    details: Dict[str, Any] = {"error_type": type(exc).__name__}
    if isinstance(exc, TransportError):
        details["status_code"] = exc.status_code
        if exc.error_message:
            details["error_message"] = exc.error_message
        return FrameworkIssue(code="TRANSPORT_ERROR", message=str(exc), details=details)
    return FrameworkIssue(code="LLM_ERROR", message=str(exc), details=details)


def _make_transport(cfg: ConnectorConfig) -> HttpTransport:
    """按配置超时创建 transport。"""

    return HttpTransport(timeout_sec=cfg.llm.timeout_sec)


def _build_parser() -> argparse.ArgumentParser:
    """构造 argparse 解析器（chat/models 子命令）。"""

    parser = argparse.ArgumentParser(prog="shengsuanyun", description="ShengSuanYun chat.completions connector CLI")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING).")
    root_sub = parser.add_subparsers(dest="cmd", required=True)

    def _add_common_flags(p: argparse.ArgumentParser) -> None:
        """为子命令添加通用参数。"""

        p.add_argument("--workspace-root", default=".", help="Workspace root directory (default: .)")
        p.add_argument("--config", action="append", default=[], help="Overlay config YAML path (repeatable).")
        p.add_argument("--pretty", action="store_true", help="Pretty-print JSON output.")
        p.add_argument("--no-dotenv", action="store_true", help="Disable loading .env from workspace root.")
        p.add_argument("--api-key", default=None, help="API key (default: from the configured env var).")
        p.add_argument("--base-url", default=None, help="Override llm.base_url.")

    chat = root_sub.add_parser("chat", help="Send a chat message")
    _add_common_flags(chat)
    chat.add_argument("--message", required=True, help="User message text.")
    chat.add_argument("--system-prompt", default="", help="Optional system message.")
    chat.add_argument("--model", default=None, help="Model id (default: config `model`).")
    chat.add_argument("--temperature", type=float, default=None)
    chat.add_argument("--top-p", type=float, default=None)
    chat.add_argument("--presence-penalty", type=float, default=None)
    chat.add_argument("--frequency-penalty", type=float, default=None)
    chat.add_argument("--max-tokens", type=int, default=None)
    chat.add_argument("--response-format", choices=["text", "json_object"], default=None)
    chat.add_argument("--stream", action="store_true", help="Stream increments as JSON lines.")

    models = root_sub.add_parser("models", help="List available models")
    _add_common_flags(models)
    return parser


def _bootstrap(args: argparse.Namespace) -> BootstrapResult:
    """按命令行参数执行 bootstrap。"""

    return bootstrap(
        workspace_root=Path(args.workspace_root),
        config_paths=[Path(p) for p in args.config],
        use_dotenv=not args.no_dotenv,
    )


async def _run_chat(args: argparse.Namespace, boot: BootstrapResult) -> int:
    """执行 chat 子命令（streaming 时逐行输出 JSON）。"""

    cfg = boot.config
    credentials = resolve_credentials(cfg.llm, api_key=args.api_key, base_url=args.base_url, env=boot.env)
    chat_model = ShengSuanYunChatModel.from_config(cfg, credentials, model=args.model, transport=_make_transport(cfg))

    messages: List[Dict[str, str]] = []
    if args.system_prompt:
        messages.append({"role": "system", "content": args.system_prompt})
    messages.append({"role": "user", "content": args.message})
    options = dict(
        temperature=args.temperature,
        top_p=args.top_p,
        presence_penalty=args.presence_penalty,
        frequency_penalty=args.frequency_penalty,
        max_tokens=args.max_tokens,
        response_format=args.response_format,
    )

    if args.stream:
        async for msg in chat_model.stream(messages, **options):
            line: Dict[str, Any] = {"content": msg.content}
            if msg.tool_calls:
                line["tool_calls"] = [tc.to_wire(include_index=True) for tc in msg.tool_calls]
            if msg.response_metadata.get("finish_reason"):
                line["finish_reason"] = msg.response_metadata["finish_reason"]
            _dump_json_to_stdout(line, pretty=False)
        return 0

    result = await chat_model.invoke(messages, **options)
    payload: Dict[str, Any] = {"response": result.content}
    if result.tool_calls:
        payload["tool_calls"] = [tc.to_wire() for tc in result.tool_calls]
    if result.usage_metadata is not None:
        payload["usage"] = result.usage_metadata
    _dump_json_to_stdout(payload, pretty=bool(args.pretty))
    return 0


async def _run_models(args: argparse.Namespace, boot: BootstrapResult) -> int:
    """执行 models 子命令。"""

    cfg = boot.config
    options = await list_models(
        cfg.llm,
        base_url=args.base_url,
        api_key=args.api_key,
        transport=_make_transport(cfg),
    )
    _dump_json_to_stdout({"models": [o.to_dict() for o in options]}, pretty=bool(args.pretty))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI 入口。"""

    _ensure_utf8_stdio()
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=str(args.log_level).upper(), format="%(levelname)s %(name)s: %(message)s")
    pretty = bool(getattr(args, "pretty", False))

    try:
        boot = _bootstrap(args)
        if args.cmd == "chat":
            return asyncio.run(_run_chat(args, boot))
        if args.cmd == "models":
            return asyncio.run(_run_models(args, boot))
    except FrameworkError as exc:
        _dump_json_to_stdout(_issues_payload([exc.to_issue()]), pretty=pretty)
        return 2
    except (ValidationError, ValueError, FileNotFoundError) as exc:
        issue = FrameworkIssue(code="CONFIG_INVALID", message=str(exc), details={"error_type": type(exc).__name__})
        _dump_json_to_stdout(_issues_payload([issue]), pretty=pretty)
        return 2
    except LlmError as exc:
        logger.debug("Remote call failed", exc_info=True)
        _dump_json_to_stdout(_issues_payload([_llm_issue(exc)]), pretty=pretty)
        return 1

    issue = FrameworkIssue(code="CLI_COMMAND_INVALID", message="Unknown command.", details={"cmd": args.cmd})
    _dump_json_to_stdout(_issues_payload([issue]), pretty=pretty)
    return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
