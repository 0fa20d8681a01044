"""
LLM 协议数据：ToolCall / AIMessage / ChatGeneration。

设计目标：
- streaming 与非 streaming 输出同一种 `AIMessage`，下游无需按调用模式分支；
- `AIMessage.to_json()` 输出 LangChain constructor 序列化形状，便于编排层直接消费。
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


@dataclass
class ToolCallFunction:
    """tool call 的 function 部分（`arguments` 为 JSON 字符串，可能由多个分片拼接而成）。"""

    name: str = ""
    arguments: str = ""


@dataclass
class ToolCall:
    """
    一次模型发起的工具调用（OpenAI wire 形状）。

    字段：
    - id/type：来自首个分片（type 默认 `function`）
    - function：name/arguments
    - index：streaming 模式下的累积槽位编号；非 streaming 时通常为 None
    """

    id: str = ""
    type: str = "function"
    function: ToolCallFunction = field(default_factory=ToolCallFunction)
    index: Optional[int] = None

    @classmethod
    def from_wire(cls, obj: Mapping[str, Any]) -> "ToolCall":
        """从 wire dict 构造（缺失字段取默认值）。"""

        fn = obj.get("function")
        fn_obj = fn if isinstance(fn, Mapping) else {}
        index = obj.get("index")
        return cls(
            id=str(obj.get("id") or ""),
            type=str(obj.get("type") or "function"),
            function=ToolCallFunction(
                name=str(fn_obj.get("name") or ""),
                arguments=str(fn_obj.get("arguments") or ""),
            ),
            index=index if isinstance(index, int) else None,
        )

    def to_wire(self, *, include_index: bool = False) -> Dict[str, Any]:
        """输出 wire dict（默认不带 index，回注到请求 messages 时使用）。"""

        out: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.function.name, "arguments": self.function.arguments},
        }
        if include_index and self.index is not None:
            out["index"] = self.index
        return out


def coerce_tool_calls(raw: Any) -> List[ToolCall]:
    """把 `ToolCall` / wire dict 混合列表统一为 `ToolCall` 列表（其它元素忽略）。"""

    out: List[ToolCall] = []
    if not isinstance(raw, (list, tuple)):
        return out
    for item in raw:
        if isinstance(item, ToolCall):
            out.append(item)
        elif isinstance(item, Mapping):
            out.append(ToolCall.from_wire(item))
    return out


@dataclass
class AIMessage:
    """
    适配器输出单元（ReconstructedMessage）。

    说明：
    - streaming 时每个事件一条，`content` 为该事件自身的增量文本；
    - `tool_calls` 为当前累积的工具调用快照（不会并入 content）；
    - `usage_metadata` 为 OpenAI `usage`（prompt/completion/total tokens），可能缺失。
    """

    content: str = ""
    additional_kwargs: Dict[str, Any] = field(default_factory=dict)
    tool_calls: List[ToolCall] = field(default_factory=list)
    usage_metadata: Optional[Dict[str, Any]] = None
    response_metadata: Dict[str, Any] = field(default_factory=dict)

    type = "ai"
    lc_id = ("langchain", "schema", "AIMessage")

    @property
    def role(self) -> str:
        """wire role（固定为 assistant）。"""

        return "assistant"

    def get_type(self) -> str:
        """消息种类能力（供 normalizer 识别为 assistant）。"""

        return self.type

    def to_json(self) -> Dict[str, Any]:
        """LangChain constructor 序列化形状。"""

        tool_calls = [tc.to_wire(include_index=True) for tc in self.tool_calls]
        kwargs: Dict[str, Any] = {
            "content": self.content,
            "additional_kwargs": copy.deepcopy(self.additional_kwargs),
            "tool_calls": tool_calls,
        }
        if self.usage_metadata is not None:
            kwargs["usage_metadata"] = dict(self.usage_metadata)
        if self.response_metadata:
            kwargs["response_metadata"] = dict(self.response_metadata)
        return {"lc": 1, "type": "constructor", "id": list(self.lc_id), "kwargs": kwargs}


@dataclass
class ChatGeneration:
    """非 streaming 调用的完整结果（message + 生成信息 + 计量信息）。"""

    text: str
    message: AIMessage
    generation_info: Dict[str, Any] = field(default_factory=dict)
    llm_output: Dict[str, Any] = field(default_factory=dict)
