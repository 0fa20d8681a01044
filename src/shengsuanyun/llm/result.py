"""
结果构造：chat.completions 响应 → `AIMessage` / `ChatGeneration`。
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from shengsuanyun.core.errors import ResponseShapeError
from shengsuanyun.llm.protocol import AIMessage, ChatGeneration, ToolCall, coerce_tool_calls


def create_ai_message(
    content: str,
    additional_kwargs: Optional[Dict[str, Any]] = None,
    *,
    tool_calls: Optional[List[ToolCall]] = None,
    usage_metadata: Optional[Dict[str, Any]] = None,
    response_metadata: Optional[Dict[str, Any]] = None,
) -> AIMessage:
    """
    构造 `AIMessage`。

    说明：
    - 未显式给出 `tool_calls` 时，取 `additional_kwargs["tool_calls"]`（wire dict 会被转换为 `ToolCall`）。
    """

    kwargs = dict(additional_kwargs or {})
    if tool_calls is None:
        tool_calls = coerce_tool_calls(kwargs.get("tool_calls"))
    return AIMessage(
        content=content,
        additional_kwargs=kwargs,
        tool_calls=list(tool_calls),
        usage_metadata=usage_metadata,
        response_metadata=dict(response_metadata or {}),
    )


def create_chat_generation(response: Any) -> ChatGeneration:
    """
    非 streaming 响应 → `ChatGeneration`。

    规则：
    - 取 `choices[0].message`，缺失时视为空的 assistant 消息；
    - 非空 `tool_calls` 与 `function_call` 放入 `additional_kwargs`；
    - `usage` 存在时挂到 `usage_metadata`。

    异常：
    - ResponseShapeError：响应不是 object，或 `choices` 存在但不是数组
    """

    if not isinstance(response, Mapping):
        raise ResponseShapeError(f"chat completion response must be a JSON object, got {type(response).__name__}")
    choices = response.get("choices")
    if choices is not None and not isinstance(choices, list):
        raise ResponseShapeError("chat completion response field 'choices' must be an array")

    choice = choices[0] if choices and isinstance(choices[0], Mapping) else {}
    message = choice.get("message")
    if not isinstance(message, Mapping):
        message = {"role": "assistant", "content": ""}

    content = message.get("content")
    text = content if isinstance(content, str) else ""

    additional_kwargs: Dict[str, Any] = {}
    if message.get("tool_calls"):
        additional_kwargs["tool_calls"] = message["tool_calls"]
    if message.get("function_call"):
        additional_kwargs["function_call"] = message["function_call"]

    usage = response.get("usage")
    usage_metadata = dict(usage) if isinstance(usage, Mapping) else None

    response_metadata: Dict[str, Any] = {}
    for key in ("id", "model", "created"):
        if key in response:
            response_metadata[key] = response[key]
    if choice.get("finish_reason") is not None:
        response_metadata["finish_reason"] = choice["finish_reason"]

    ai_message = create_ai_message(
        text,
        additional_kwargs,
        usage_metadata=usage_metadata,
        response_metadata=response_metadata,
    )
    return ChatGeneration(
        text=text,
        message=ai_message,
        generation_info={"finish_reason": choice.get("finish_reason"), "logprobs": choice.get("logprobs")},
        llm_output={"token_usage": usage_metadata, "model": response.get("model")},
    )
