"""
ShengSuanYun 连接器（Python）。

说明：
- 让工作流宿主与 LLM 编排层通过 HTTPS 调用 ShengSuanYun chat.completions（OpenAI-compatible）；
- 核心为 streaming 响应适配：输入归一化 → 请求构造 → HTTP → SSE 重组（含 tool_calls 分片拼接）；
- 胶水：凭据、模型列表、chat node、CLI。
"""

from __future__ import annotations

from shengsuanyun.config.loader import ChatOptions, ConnectorConfig, load_config
from shengsuanyun.core.errors import ParseError, ResponseShapeError, TransportError, UserError
from shengsuanyun.credentials import Credentials, resolve_credentials
from shengsuanyun.llm.chat_model import ShengSuanYunChatModel
from shengsuanyun.llm.protocol import AIMessage, ToolCall

__all__ = [
    "AIMessage",
    "ChatOptions",
    "ConnectorConfig",
    "Credentials",
    "ParseError",
    "ResponseShapeError",
    "ShengSuanYunChatModel",
    "ToolCall",
    "TransportError",
    "UserError",
    "__version__",
    "load_config",
    "resolve_credentials",
]

__version__ = "0.1.0"
