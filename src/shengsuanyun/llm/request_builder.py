"""
chat.completions 请求体构造（纯函数，无 I/O）。

采样参数解析顺序：per-call > 配置默认 > 硬编码默认。
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from shengsuanyun.config.loader import ChatOptions
from shengsuanyun.llm.tools import format_tools

DEFAULT_SAMPLING: Dict[str, float] = {
    "temperature": 0.7,
    "top_p": 1,
    "presence_penalty": 0,
    "frequency_penalty": 0,
}

OptionsLike = Union[ChatOptions, Mapping[str, Any], None]


def coerce_options(options: OptionsLike) -> ChatOptions:
    """mapping/None → `ChatOptions`（未知字段由 pydantic 拒绝）。"""

    if options is None:
        return ChatOptions()
    if isinstance(options, ChatOptions):
        return options
    return ChatOptions.model_validate(dict(options))


def resolve_options(*layers: OptionsLike) -> Dict[str, Any]:
    """
    合并多层 options（越靠后优先级越高），返回显式值 + 硬编码默认值。

    说明：
    - 只有 `DEFAULT_SAMPLING` 中的字段会补默认值；其它字段仅在显式设置时出现。
    """

    resolved: Dict[str, Any] = dict(DEFAULT_SAMPLING)
    for layer in layers:
        resolved.update(coerce_options(layer).explicit())
    return resolved


def _response_format(value: Any) -> Optional[Dict[str, Any]]:
    """`text` 为默认值（不发送）；`json_object` 等简写展开为 `{"type": ...}`。"""

    if value is None or value == "text":
        return None
    if isinstance(value, Mapping):
        if value.get("type") == "text":
            return None
        return dict(value)
    return {"type": str(value)}


def build_request_body(
    *,
    model: str,
    messages: List[Dict[str, Any]],
    options: OptionsLike = None,
    overrides: OptionsLike = None,
    tools: Optional[Sequence[Any]] = None,
    stream: bool = False,
) -> Dict[str, Any]:
    """
    组装 chat.completions 请求体。

    参数：
    - model/messages：模型 id 与已格式化的 wire messages
    - options：配置层默认值
    - overrides：本次调用的显式参数
    - tools：可选 tool 描述（非空时附带 `tool_choice: "auto"`）
    - stream：是否 streaming（仅为 True 时写入 `stream: true`）

    说明：
    - `max_tokens` 非正数时省略，避免发送 API 可能拒绝的哨兵值。
    """

    resolved = resolve_options(options, overrides)

    body: Dict[str, Any] = {"model": model, "messages": messages}
    if stream:
        body["stream"] = True
    for key in ("temperature", "top_p", "presence_penalty", "frequency_penalty"):
        body[key] = resolved[key]

    max_tokens = resolved.get("max_tokens")
    if max_tokens is not None and max_tokens > 0:
        body["max_tokens"] = int(max_tokens)

    response_format = _response_format(resolved.get("response_format"))
    if response_format is not None:
        body["response_format"] = response_format

    stop = resolved.get("stop")
    if stop:
        body["stop"] = list(stop)

    if tools:
        body["tools"] = format_tools(list(tools))
        body["tool_choice"] = "auto"
    return body
