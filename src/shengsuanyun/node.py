"""
Chat node（工作流宿主的逐条 item 封装）。

每个 item：
- 组装 `[system?, user]` 消息与请求体 `{model, messages, temperature, **additional_fields}`；
- 返回 `{"json": {"response": <content.strip()>}, "paired_item": {"item": i}}`；
- `continue_on_fail=True` 时失败 item 记录 `{"json": {"error": ...}}` 并继续，否则第一个错误即中止。
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shengsuanyun.config.loader import LlmConfig
from shengsuanyun.core.errors import ConnectorError, ResponseShapeError, UserError
from shengsuanyun.credentials import Credentials
from shengsuanyun.llm.transport import HttpTransport, build_headers

logger = logging.getLogger(__name__)


class ChatAdditionalFields(BaseModel):
    """可选附加字段（只允许这四个）。"""

    model_config = ConfigDict(extra="forbid")

    frequency_penalty: Optional[float] = None
    max_tokens: Optional[int] = None
    presence_penalty: Optional[float] = None
    top_p: Optional[float] = None


class ChatItemParams(BaseModel):
    """单个 item 的节点参数。"""

    model_config = ConfigDict(extra="forbid")

    operation: Literal["chat"] = "chat"
    model: str = Field(min_length=1)
    system_prompt: str = ""
    message: str
    temperature: float = 0.9
    additional_fields: ChatAdditionalFields = Field(default_factory=ChatAdditionalFields)


def build_chat_body(params: ChatItemParams) -> Dict[str, Any]:
    """item 参数 → 请求体（附加字段只在显式设置时出现）。"""

    messages: List[Dict[str, str]] = []
    if params.system_prompt:
        messages.append({"role": "system", "content": params.system_prompt})
    messages.append({"role": "user", "content": params.message})
    body: Dict[str, Any] = {"model": params.model, "messages": messages, "temperature": params.temperature}
    body.update(params.additional_fields.model_dump(exclude_none=True))
    return body


def extract_response_text(response: Any) -> str:
    """
    取 `choices[0].message.content`。

    异常：
    - ResponseShapeError：字段缺失或为空
    """

    content = None
    if isinstance(response, Mapping):
        choices = response.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], Mapping):
            message = choices[0].get("message")
            if isinstance(message, Mapping):
                content = message.get("content")
    if not isinstance(content, str) or not content:
        raise ResponseShapeError("Invalid response format from ShengSuanYun API")
    return content.strip()


def _coerce_params(raw: Union[ChatItemParams, Mapping[str, Any]]) -> ChatItemParams:
    """mapping → `ChatItemParams`；校验失败转为 `UserError`。"""

    if isinstance(raw, ChatItemParams):
        return raw
    try:
        return ChatItemParams.model_validate(dict(raw))
    except ValidationError as exc:
        raise UserError(
            "Invalid chat node parameters.",
            code="INVALID_NODE_PARAMETERS",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


async def execute_chat_items(
    items: Sequence[Union[ChatItemParams, Mapping[str, Any]]],
    *,
    credentials: Optional[Credentials],
    cfg: Optional[LlmConfig] = None,
    continue_on_fail: bool = False,
    transport: Optional[HttpTransport] = None,
) -> List[Dict[str, Any]]:
    """
    顺序执行每个 item 的 chat 请求。

    异常：
    - UserError：缺少 API key（在处理任何 item 之前）
    - 其它 `ConnectorError`：`continue_on_fail=False` 时原样抛出
    """

    if credentials is None or not credentials.api_key:
        raise UserError("No valid API key provided", code="MISSING_API_KEY")

    cfg = cfg or LlmConfig()
    transport = transport or HttpTransport(timeout_sec=cfg.timeout_sec)
    url = f"{credentials.base_url}/chat/completions"
    headers = build_headers(api_key=credentials.api_key, referer=cfg.referer, title=cfg.node_title)

    out: List[Dict[str, Any]] = []
    for i, raw in enumerate(items):
        try:
            params = _coerce_params(raw)
            response = await transport.request_json("POST", url, headers=headers, json_body=build_chat_body(params))
            out.append({"json": {"response": extract_response_text(response)}, "paired_item": {"item": i}})
        except ConnectorError as exc:
            if not continue_on_fail:
                raise
            logger.warning("Chat item %d failed: %s", i, exc)
            out.append({"json": {"error": str(exc)}, "paired_item": {"item": i}})
    return out
