"""
Chat Completions streaming 重组器（SSE 字节流 → AIMessage 增量）。

实现边界：
- 输入是原始字节块（可能在任意位置被切断，包括多字节 UTF-8 字符中间）；
- 只处理 `data:` 行；终止哨兵为 `[DONE]`，其后的字节全部忽略；
- `choices[0].delta.tool_calls[]` 的 name/arguments 分片按 index 拼接（只追加，不覆盖）；
- 每个事件行产出一条 `AIMessage`：content 为该事件自身增量，tool_calls 为当前累积快照。

状态：
- 解码缓冲与 tool_call 累积槽位只属于一次 stream；不可并发消费。
"""

from __future__ import annotations

import codecs
import copy
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Dict, Iterable, Iterator, List, Optional

from shengsuanyun.core.errors import ParseError
from shengsuanyun.llm.protocol import AIMessage, ToolCall, ToolCallFunction
from shengsuanyun.llm.result import create_ai_message

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


@dataclass
class ReassemblerStats:
    """
    被跳过的行计数（诊断用）。

    - malformed_events：`data:` 行 JSON 解析失败
    - skipped_events：合法 JSON 但缺少 `choices[0].delta`（心跳、usage-only 事件等）
    """

    events: int = 0
    malformed_events: int = 0
    skipped_events: int = 0


@dataclass
class _ToolCallBuilder:
    """单个 index 的累积状态。"""

    index: int
    id: str = ""
    type: str = "function"
    name: str = ""
    arguments: str = ""

    def snapshot(self) -> ToolCall:
        """当前累积状态 → 独立的 `ToolCall` 快照。"""

        return ToolCall(
            id=self.id,
            type=self.type,
            function=ToolCallFunction(name=self.name, arguments=self.arguments),
            index=self.index,
        )


def decode_event(payload: str) -> Dict[str, Any]:
    """
    解析单条 `data:` payload 为事件对象。

    异常：
    - ParseError：不是合法 JSON 或根节点不是 object
    """

    try:
        obj = json.loads(payload)
    except ValueError as exc:
        raise ParseError(f"malformed stream event: {payload[:80]!r}") from exc
    if not isinstance(obj, dict):
        raise ParseError(f"stream event is not a JSON object: {payload[:80]!r}")
    return obj


class ChatCompletionsStreamReassembler:
    """
    SSE 字节流重组器。

    用法：
    - 每收到一块字节调用 `feed(chunk)`，得到 0..N 条 `AIMessage`；
    - 底层流 EOF 时调用 `finish()` 处理末尾未以换行结束的行；
    - `done` 为 True 后（收到 `[DONE]`）不再产出任何消息。
    """

    def __init__(self) -> None:
        """初始化解码器、行缓冲与 tool_call 槽位。"""

        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._tool_calls: Dict[int, _ToolCallBuilder] = {}
        self._tool_call_order: List[int] = []
        self._done = False
        self.stats = ReassemblerStats()

    @property
    def done(self) -> bool:
        """是否已结束（收到 `[DONE]`、EOF 或被关闭）。"""

        return self._done

    def feed(self, chunk: bytes) -> List[AIMessage]:
        """追加一块字节，处理其中所有完整行。"""

        if self._done or not chunk:
            return []
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._handle_lines(lines)

    def finish(self) -> List[AIMessage]:
        """底层流结束：flush 解码器并处理残留的最后一行，然后释放缓冲。"""

        if self._done:
            return []
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        out = self._handle_lines([tail]) if tail.strip() else []
        self.close()
        return out

    def tool_calls(self) -> List[ToolCall]:
        """当前累积的 tool_calls 快照（按 index 首次出现顺序）。"""

        return [self._tool_calls[idx].snapshot() for idx in self._tool_call_order]

    def close(self) -> None:
        """结束本次 stream：丢弃解码缓冲与 tool_call 累积槽位（幂等）。"""

        self._done = True
        self._buffer = ""
        self._decoder.reset()
        self._tool_calls.clear()
        self._tool_call_order.clear()

    def _handle_lines(self, lines: Iterable[str]) -> List[AIMessage]:
        """逐行处理；遇到 `[DONE]` 立即结束并丢弃剩余行。"""

        out: List[AIMessage] = []
        for line in lines:
            if not line.startswith(DATA_PREFIX):
                continue
            payload = line[len(DATA_PREFIX) :].strip()
            if payload == DONE_SENTINEL:
                self.close()
                break
            msg = self._handle_payload(payload)
            if msg is not None:
                out.append(msg)
        return out

    def _handle_payload(self, payload: str) -> Optional[AIMessage]:
        """处理单条 `data:` payload；跳过的事件返回 None 并计数。"""

        try:
            event = decode_event(payload)
        except ParseError:
            self.stats.malformed_events += 1
            logger.debug("Dropping malformed stream event", exc_info=True)
            return None

        choices = event.get("choices")
        choice = choices[0] if isinstance(choices, list) and choices else None
        delta = choice.get("delta") if isinstance(choice, dict) else None
        if not isinstance(delta, dict):
            self.stats.skipped_events += 1
            return None

        self.stats.events += 1
        additional_kwargs: Dict[str, Any] = {}
        fragments = delta.get("tool_calls")
        if isinstance(fragments, list) and fragments:
            additional_kwargs["tool_calls"] = copy.deepcopy(fragments)
            for fragment in fragments:
                if isinstance(fragment, dict):
                    self._accumulate(fragment)

        response_metadata: Dict[str, Any] = {}
        for key in ("id", "model", "created"):
            if key in event:
                response_metadata[key] = event[key]
        if choice.get("finish_reason") is not None:
            response_metadata["finish_reason"] = choice["finish_reason"]

        usage = event.get("usage")
        content = delta.get("content")
        return create_ai_message(
            content if isinstance(content, str) else "",
            additional_kwargs,
            tool_calls=self.tool_calls(),
            usage_metadata=dict(usage) if isinstance(usage, dict) else None,
            response_metadata=response_metadata,
        )

    def _accumulate(self, fragment: Dict[str, Any]) -> None:
        """把一个 tool_call 分片拼接进对应 index 的槽位。"""

        index = fragment.get("index")
        if not isinstance(index, int):
            index = 0

        slot = self._tool_calls.get(index)
        if slot is None:
            slot = _ToolCallBuilder(
                index=index,
                id=str(fragment.get("id") or ""),
                type=str(fragment.get("type") or "function"),
            )
            self._tool_calls[index] = slot
            self._tool_call_order.append(index)
        elif not slot.id and fragment.get("id"):
            slot.id = str(fragment["id"])

        fn = fragment.get("function")
        if isinstance(fn, dict):
            name = fn.get("name")
            if isinstance(name, str) and name:
                slot.name += name
            arguments = fn.get("arguments")
            if isinstance(arguments, str) and arguments:
                slot.arguments += arguments


async def iter_stream_messages(
    byte_stream: AsyncIterable[bytes],
    *,
    reassembler: Optional[ChatCompletionsStreamReassembler] = None,
) -> AsyncIterator[AIMessage]:
    """
    把字节流转换为 `AIMessage` 增量序列（单次消费、不可重启）。

    说明：
    - 收到 `[DONE]` 后立即结束，并关闭底层字节流（不再读取）；
    - 消费方提前关闭本迭代器时，同样会向上游传播关闭；
    - transport 层异常原样抛出，序列异常结束。
    """

    parser = reassembler or ChatCompletionsStreamReassembler()
    source = byte_stream.__aiter__()
    try:
        async for chunk in source:
            for msg in parser.feed(chunk):
                yield msg
            if parser.done:
                return
        for msg in parser.finish():
            yield msg
    finally:
        parser.close()
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()
        if parser.stats.malformed_events or parser.stats.skipped_events:
            logger.debug(
                "Stream finished: events=%d malformed=%d skipped=%d",
                parser.stats.events,
                parser.stats.malformed_events,
                parser.stats.skipped_events,
            )


def iter_stream_messages_from_chunks(chunks: Iterable[bytes]) -> Iterator[AIMessage]:
    """便捷函数（同步）：把一组字节块解析为消息序列。"""

    parser = ChatCompletionsStreamReassembler()
    for chunk in chunks:
        for msg in parser.feed(chunk):
            yield msg
        if parser.done:
            return
    for msg in parser.finish():
        yield msg
