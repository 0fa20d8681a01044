"""
LLM 适配层（ShengSuanYun / OpenAI-compatible chat.completions）。

- 输入归一化与消息格式化：`messages`
- tool schema：`tools`
- 请求体：`request_builder`
- 网络：`transport`
- SSE 重组：`chat_sse`
- 结果构造：`result`
"""

from __future__ import annotations

from shengsuanyun.llm.chat_model import RunnablePipe, ShengSuanYunChatModel
from shengsuanyun.llm.chat_sse import ChatCompletionsStreamReassembler, iter_stream_messages
from shengsuanyun.llm.fake import FakeHttpCall, FakeTransport
from shengsuanyun.llm.protocol import AIMessage, ChatGeneration, ToolCall, ToolCallFunction
from shengsuanyun.llm.transport import HttpTransport

__all__ = [
    "AIMessage",
    "ChatCompletionsStreamReassembler",
    "ChatGeneration",
    "FakeHttpCall",
    "FakeTransport",
    "HttpTransport",
    "RunnablePipe",
    "ShengSuanYunChatModel",
    "ToolCall",
    "ToolCallFunction",
    "iter_stream_messages",
]
