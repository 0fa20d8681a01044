"""
输入归一化与消息格式化。

流程：
- `normalize_input`：字符串 / 消息列表 / `{messages}` 包装对象 → `List[AbstractMessage]`
- `format_messages`：`AbstractMessage` → OpenAI-compatible wire message（保序，不去重）

说明：
- 角色在 normalizer 边界一次性解析（显式 `role` 或消息自身的 kind 能力），下游不再做能力探测；
- 归一化阶段不抛校验错误：无法识别的形状一律 `str()` 后包装为 user 消息。
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from shengsuanyun.llm.protocol import AIMessage, ToolCall


class MessageKind(str, Enum):
    """消息种类（wire role）。"""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


# LangChain 风格的 kind 名称 → wire role；未知 kind 按 user 处理。
_KIND_TO_ROLE: Dict[str, MessageKind] = {
    "human": MessageKind.USER,
    "ai": MessageKind.ASSISTANT,
    "system": MessageKind.SYSTEM,
    "tool": MessageKind.TOOL,
}


@dataclass(frozen=True)
class AbstractMessage:
    """
    归一化后的消息。

    字段：
    - role：wire role；`MessageKind` 之外的显式 role（例如 `developer`）原样保留
    - content：文本或结构化内容（格式化时才拍平为字符串）
    - tool_call_id/name：工具链路字段（仅在存在时输出）
    - tool_calls：wire 形状的 tool call 列表（调用方给出的 mapping 原样保留）
    """

    role: str
    content: Any
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    tool_calls: Optional[List[Any]] = None


def _get(obj: Any, key: str) -> Any:
    """mapping 取 key，其它对象取属性。"""

    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def _has(obj: Any, key: str) -> bool:
    """mapping 判断 key，其它对象判断属性。"""

    if isinstance(obj, Mapping):
        return key in obj
    return hasattr(obj, key)


def _reported_kind(obj: Any) -> Optional[str]:
    """
    读取消息对象自报的 kind。

    支持：
    - `_get_type()` / `get_type()` 可调用（mapping 中的可调用值同样识别）
    - 非 mapping 对象上的字符串 `type` 属性（LangChain BaseMessage）
    """

    for attr in ("_get_type", "get_type"):
        fn = _get(obj, attr)
        if callable(fn):
            return str(fn())
    if not isinstance(obj, Mapping):
        kind = getattr(obj, "type", None)
        if isinstance(kind, str):
            return kind
    return None


def _resolve_role(obj: Any) -> str:
    """解析 wire role：自报 kind 优先，其次显式 `role`，最后默认 user。"""

    kind = _reported_kind(obj)
    if kind is not None:
        return _KIND_TO_ROLE.get(kind, MessageKind.USER).value
    role = _get(obj, "role")
    if isinstance(role, str) and role:
        return role
    return MessageKind.USER.value


def _wire_tool_call(item: Any) -> Any:
    """
    单个 tool call → wire 形状。

    规则：
    - `ToolCall`：`to_wire()`
    - LangChain 形状 `{name, args, id, type: "tool_call"}`：转为 `{type: "function", function: {name, arguments}}`
    - 其它 mapping：原样保留（仅把非字符串 `function.arguments` 编码为 JSON）
    - 其它值：原样透传
    """

    if isinstance(item, ToolCall):
        return item.to_wire()
    if not isinstance(item, Mapping):
        return item
    if "function" not in item and ("args" in item or item.get("type") == "tool_call"):
        args = item.get("args")
        return {
            "id": str(item.get("id") or ""),
            "type": "function",
            "function": {
                "name": str(item.get("name") or ""),
                "arguments": args if isinstance(args, str) else _json_compact(args if args is not None else {}),
            },
        }
    out = dict(item)
    fn = out.get("function")
    if isinstance(fn, Mapping) and "arguments" in fn and not isinstance(fn["arguments"], str):
        out["function"] = {**fn, "arguments": _json_compact(fn["arguments"])}
    return out


def _wire_tool_calls(raw: Any) -> List[Any]:
    """tool_calls 列表 → wire 形状（非 list/tuple 视为空）。"""

    if not isinstance(raw, (list, tuple)):
        return []
    return [_wire_tool_call(item) for item in raw]


def to_abstract_message(obj: Any) -> AbstractMessage:
    """把单个消息形状解析为 `AbstractMessage`。"""

    if isinstance(obj, AbstractMessage):
        return obj
    if isinstance(obj, AIMessage):
        return AbstractMessage(
            role=MessageKind.ASSISTANT.value,
            content=obj.content,
            tool_calls=[tc.to_wire() for tc in obj.tool_calls] or None,
        )
    if isinstance(obj, str):
        return AbstractMessage(role=MessageKind.USER.value, content=obj)

    role = _resolve_role(obj)
    if _has(obj, "content"):
        content = _get(obj, "content")
    elif isinstance(obj, Mapping):
        # 无 content 的 mapping：整体序列化为内容
        content = dict(obj)
    else:
        content = str(obj)

    tool_call_id = _get(obj, "tool_call_id")
    name = _get(obj, "name")
    tool_calls = _wire_tool_calls(_get(obj, "tool_calls"))
    return AbstractMessage(
        role=role,
        content=content,
        tool_call_id=tool_call_id if isinstance(tool_call_id, str) and tool_call_id else None,
        name=name if isinstance(name, str) and name else None,
        tool_calls=tool_calls or None,
    )


def normalize_input(value: Any) -> List[AbstractMessage]:
    """
    把调用方输入归一化为有序消息列表。

    规则：
    - 字符串 → 单条 user 消息
    - list/tuple → 逐条解析（保序）
    - 带 `messages` 的 mapping/对象 → 解析其 messages
    - 只带 `content` 的 mapping/对象 → 单元素列表
    - 其它 → `str(value)` 包装为 user 消息
    """

    if isinstance(value, str):
        return [AbstractMessage(role=MessageKind.USER.value, content=value)]
    if isinstance(value, (list, tuple)):
        return [to_abstract_message(m) for m in value]
    if value is not None and _has(value, "messages"):
        messages = _get(value, "messages")
        if isinstance(messages, (list, tuple)):
            return [to_abstract_message(m) for m in messages]
    if value is not None and _has(value, "content"):
        return [to_abstract_message(value)]
    return [AbstractMessage(role=MessageKind.USER.value, content=str(value))]


def _json_compact(value: Any) -> str:
    """紧凑 JSON 编码（保留非 ASCII 字符）。"""

    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def extract_content(content: Any) -> str:
    """
    把消息内容拍平为单个字符串。

    - str：原样
    - list/tuple：按 `\\n` 连接，非字符串元素做 JSON 编码
    - None：空串
    - 其它：JSON 编码
    """

    if isinstance(content, str):
        return content
    if content is None:
        return ""
    if isinstance(content, (list, tuple)):
        return "\n".join(c if isinstance(c, str) else _json_compact(c) for c in content)
    return _json_compact(content)


def format_message(msg: AbstractMessage) -> Dict[str, Any]:
    """单条 `AbstractMessage` → wire message。"""

    out: Dict[str, Any] = {"role": msg.role, "content": extract_content(msg.content)}
    if msg.tool_call_id:
        out["tool_call_id"] = msg.tool_call_id
    if msg.name:
        out["name"] = msg.name
    if msg.tool_calls:
        out["tool_calls"] = [_wire_tool_call(tc) for tc in msg.tool_calls]
    return out


def format_messages(messages: Sequence[Any]) -> List[Dict[str, Any]]:
    """格式化消息列表（接受 `AbstractMessage` 或任意可被 `to_abstract_message` 解析的形状）。"""

    return [format_message(to_abstract_message(m)) for m in messages]
