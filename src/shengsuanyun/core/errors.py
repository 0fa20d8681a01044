"""
连接器错误分类（异常类型）。

说明：
- `FrameworkError/UserError`：调用方输入或配置导致的错误（稳定 `code` + 英文 message）。
- `LlmError` 及其子类：与远端 chat.completions 通信/协议相关的错误。
- 核心组件只负责抛出；是否“整批中止 / 逐条记录错误”由外层胶水（node/CLI）决定。
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional


class ConnectorError(Exception):
    """连接器错误基类（不建议直接抛出）。"""


@dataclass(frozen=True)
class FrameworkIssue:
    """结构化问题对象（CLI 以 JSON 输出）。"""

    code: str
    message: str
    details: Dict[str, Any]


class FrameworkError(ConnectorError):
    """框架层结构化错误（英文 `code/message/details`）。"""

    def __init__(self, *, code: str, message: str, details: Dict[str, Any] | None = None) -> None:
        """创建框架错误。

        参数：
        - `code`：稳定错误码（英文大写下划线）
        - `message`：英文错误消息
        - `details`：结构化上下文信息
        """

        super().__init__(message)
        self.code = code
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def __str__(self) -> str:
        """返回用于日志的字符串表示。"""

        return f"{self.code}: {self.message}"

    def to_issue(self) -> FrameworkIssue:
        """把异常转换为可序列化问题对象。"""

        return FrameworkIssue(code=self.code, message=self.message, details=dict(self.details))


class UserError(FrameworkError):
    """用户输入/配置导致的错误（缺少 API key、非法参数等）。"""

    def __init__(self, message: str, *, code: str = "USER_ERROR", details: Dict[str, Any] | None = None) -> None:
        """创建 `UserError`。

        参数：
        - `message`：可读错误信息
        - `code`：错误码（默认 `USER_ERROR`）
        - `details`：结构化补充信息
        """

        super().__init__(code=code, message=message, details=details or {})


class LlmError(ConnectorError):
    """LLM 通信/协议错误（网络、HTTP 状态、wire 形状等）。"""


class TransportError(LlmError):
    """
    HTTP 调用失败：非 2xx 状态码或连接/超时/读取失败。

    说明：
    - `status_code` 为 None 表示连接层失败（没有拿到响应）；
    - `body` 为已读取的错误响应体（streaming 模式下同样会先读取再抛出）；
    - 不做任何重试。
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Optional[str] = None) -> None:
        """`status_code` 为 None 表示连接层失败。"""

        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def error_message(self) -> Optional[str]:
        """从 OpenAI 风格的 `{"error": {"message": ...}}` 响应体中提取错误信息。"""

        if not self.body:
            return None
        try:
            obj = json.loads(self.body)
        except ValueError:
            return None
        if not isinstance(obj, dict):
            return None
        err = obj.get("error")
        if isinstance(err, dict) and isinstance(err.get("message"), str):
            return err["message"]
        if isinstance(err, str):
            return err
        msg = obj.get("message")
        return msg if isinstance(msg, str) else None


class ResponseShapeError(LlmError):
    """响应缺少预期字段（例如 `choices[0].message.content` 或 `data` 数组）。"""


class ParseError(LlmError):
    """单条 streaming 事件 JSON 解析失败（由 reassembler 吞掉并计数，不终止流）。"""
