"""
Tool 描述归一化（function calling schema）。

调用方传入的 tool 描述有两种形状：
- `WireTool`：已经是 `{"type": "function", "function": {...}}`，原样透传；
- `LooseTool`：内部形状（`name/description/parameters`、`function.*` 或 `schema`），需要合成 wire 形状。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from shengsuanyun.core.errors import UserError


@dataclass(frozen=True)
class ToolSpec:
    """
    tool 的最小描述（代码内构造 tool 与 `LooseTool` 合成 wire 形状共用）。

    parameters 可以是 JSON schema dict 或 pydantic model 类/实例。
    """

    name: str
    description: str = ""
    parameters: Any = field(default_factory=lambda: {"type": "object", "properties": {}})


def tool_spec_to_openai_tool(spec: ToolSpec) -> Dict[str, Any]:
    """`ToolSpec` → OpenAI function tool。"""

    function: Dict[str, Any] = {"name": spec.name}
    if spec.description:
        function["description"] = spec.description
    function["parameters"] = _schema_dict(spec.parameters)
    return {"type": "function", "function": function}


@dataclass(frozen=True)
class WireTool:
    """已是 wire 形状的 tool（原样透传）。"""

    raw: Mapping[str, Any]


@dataclass(frozen=True)
class LooseTool:
    """宽松形状的 tool（name/description/parameters 取自属性或 key）。"""

    name: Optional[str]
    description: Optional[str]
    parameters: Any


ToolDescriptor = Union[WireTool, LooseTool]


def _get(obj: Any, key: str) -> Any:
    """mapping 取 key，其它对象取属性。"""

    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def _schema_dict(value: Any) -> Dict[str, Any]:
    """parameters 统一为 JSON schema dict（pydantic model 类/实例会被展开）。"""

    if isinstance(value, type) and issubclass(value, BaseModel):
        return value.model_json_schema()
    if isinstance(value, BaseModel):
        return type(value).model_json_schema()
    if isinstance(value, Mapping):
        return dict(value)
    return {}


def classify_tool(tool: Any) -> ToolDescriptor:
    """把任意 tool 描述分类为 `WireTool` 或 `LooseTool`。"""

    if isinstance(tool, Mapping) and tool.get("type") == "function" and tool.get("function"):
        return WireTool(raw=tool)

    fn = _get(tool, "function")
    fn = fn if isinstance(fn, Mapping) else {}
    name = _get(tool, "name") or fn.get("name")
    description = _get(tool, "description") or fn.get("description")
    parameters = _get(tool, "parameters") or _get(tool, "schema") or fn.get("parameters") or {}
    return LooseTool(
        name=str(name) if name else None,
        description=str(description) if description else None,
        parameters=parameters,
    )


def format_tool(tool: Any) -> Dict[str, Any]:
    """单个 tool 描述 → wire 形状。"""

    desc = classify_tool(tool)
    if isinstance(desc, WireTool):
        return dict(desc.raw)

    if not desc.name:
        raise UserError(
            "Tool descriptor has no name.",
            code="TOOL_NAME_MISSING",
            details={"tool": repr(tool)[:200]},
        )
    return tool_spec_to_openai_tool(
        ToolSpec(name=desc.name, description=desc.description or "", parameters=desc.parameters)
    )


def format_tools(tools: Sequence[Any]) -> List[Dict[str, Any]]:
    """批量格式化（保序）。"""

    return [format_tool(t) for t in tools]
