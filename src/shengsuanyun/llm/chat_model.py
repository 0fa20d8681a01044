"""
ShengSuanYun chat model（编排层可直接调用的 runnable 外观）。

调用链：
- 输入归一化 → 消息格式化 → 请求体构造 → transport
- 非 streaming：响应 → `create_chat_generation` → `AIMessage`
- streaming：字节流 → `ChatCompletionsStreamReassembler` → 每个事件一条 `AIMessage`

约束：
- 不做重试/退避；错误原样抛给调用方（`TransportError` / `ResponseShapeError` / `UserError`）。
- 每次调用构造新的 buffers/累积状态；实例本身只读，可跨调用复用。
"""

from __future__ import annotations

import inspect
import logging
from contextlib import aclosing
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from shengsuanyun.config.loader import DEFAULT_BASE_URL, DEFAULT_REFERER, DEFAULT_TITLE, ChatOptions, ConnectorConfig
from shengsuanyun.core.errors import UserError
from shengsuanyun.llm.chat_sse import iter_stream_messages
from shengsuanyun.llm.messages import format_messages, normalize_input
from shengsuanyun.llm.protocol import AIMessage
from shengsuanyun.llm.request_builder import OptionsLike, build_request_body, coerce_options
from shengsuanyun.llm.result import create_chat_generation
from shengsuanyun.llm.transport import HttpTransport, build_headers

if TYPE_CHECKING:
    from shengsuanyun.credentials import Credentials

logger = logging.getLogger(__name__)

RunConfig = Mapping[str, Any]


class RunnablePipe:
    """`model.pipe(next)` 的结果：先调用 model，再把结果交给 next。"""

    def __init__(self, first: "ShengSuanYunChatModel", next_step: Any) -> None:
        """`first` 为 chat model，`next_step` 为后续步骤（可 invoke 或可调用）。"""

        self._first = first
        self._next = next_step

    async def invoke(self, input: Any, config: Optional[RunConfig] = None) -> Any:
        """先调用 model，再把结果交给后续步骤（支持 awaitable 返回）。"""

        result = await self._first.invoke(input, config)
        step_invoke = getattr(self._next, "invoke", None)
        if callable(step_invoke):
            out = step_invoke(result, config)
        elif callable(self._next):
            out = self._next(result)
        else:
            raise UserError("pipe target must be callable or expose invoke()", code="PIPE_TARGET_INVALID")
        if inspect.isawaitable(out):
            out = await out
        return out


class ShengSuanYunChatModel:
    """
    ShengSuanYun chat.completions 模型。

    参数：
    - api_key/base_url：凭据
    - model：模型 id
    - options：配置层采样参数（`ChatOptions` 或 mapping）
    - transport：可注入的 `HttpTransport`（默认按 timeout 新建）
    - referer/title：标识头
    """

    lc_namespace = ("langchain", "chat_models", "shengsuanyun")
    lc_serializable = True
    name = "ShengSuanYunChatModel"

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str = DEFAULT_BASE_URL,
        options: OptionsLike = None,
        transport: Optional[HttpTransport] = None,
        referer: str = DEFAULT_REFERER,
        title: str = DEFAULT_TITLE,
        timeout_sec: float = 60.0,
        bound_tools: Optional[Sequence[Any]] = None,
        default_config: Optional[RunConfig] = None,
    ) -> None:
        """构造只读的模型实例（不发起网络请求）。"""

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.options = coerce_options(options)
        self.referer = referer
        self.title = title
        self._transport = transport or HttpTransport(timeout_sec=timeout_sec)
        self._bound_tools: List[Any] = list(bound_tools or [])
        self._default_config: Dict[str, Any] = dict(default_config or {})

    @classmethod
    def from_config(
        cls,
        cfg: ConnectorConfig,
        credentials: Credentials,
        *,
        model: Optional[str] = None,
        transport: Optional[HttpTransport] = None,
    ) -> "ShengSuanYunChatModel":
        """由配置与凭据构造（`model` 为空时取 `cfg.model`）。"""

        model_id = model or cfg.model
        if not model_id:
            raise UserError("No model configured.", code="MODEL_MISSING")
        return cls(
            api_key=credentials.api_key,
            base_url=credentials.base_url,
            model=model_id,
            options=cfg.options,
            transport=transport,
            referer=cfg.llm.referer,
            title=cfg.llm.title,
            timeout_sec=cfg.llm.timeout_sec,
        )

    @property
    def llm_type(self) -> str:
        """模型类型标识。"""

        return "shengsuanyun-chat"

    @property
    def model_type(self) -> str:
        """LangChain 风格的模型类别。"""

        return "base_chat_model"

    @property
    def call_keys(self) -> List[str]:
        """可通过 run config 传入的调用参数名。"""

        return ["stop", "timeout", "tags", "metadata", "callbacks", "tools", "options"]

    @property
    def bound_tools(self) -> List[Any]:
        """bind_tools 绑定的 tools（副本）。"""

        return list(self._bound_tools)

    def _endpoint(self) -> str:
        """chat.completions 端点 URL。"""

        return f"{self.base_url}/chat/completions"

    def _headers(self) -> Dict[str, str]:
        """本实例的请求头（鉴权 + 标识头）。"""

        return build_headers(api_key=self.api_key, referer=self.referer, title=self.title)

    def _merge_config(self, config: Optional[RunConfig]) -> Dict[str, Any]:
        """默认 run config 与本次 config 合并（本次优先）。"""

        merged = dict(self._default_config)
        merged.update(config or {})
        return merged

    def _resolve_tools(self, config: Mapping[str, Any]) -> List[Any]:
        """tools 来源：`config.tools` → `config.bound.tools` → bind_tools 绑定的 tools。"""

        tools = config.get("tools")
        if not tools:
            bound = config.get("bound")
            if isinstance(bound, Mapping):
                tools = bound.get("tools")
        if not tools:
            tools = self._bound_tools
        return list(tools) if isinstance(tools, (list, tuple)) else []

    def _per_call_options(self, config: Mapping[str, Any], options: Dict[str, Any]) -> ChatOptions:
        """合并本次调用的采样参数（`config.options` → `config.stop` → 关键字参数）。"""

        raw: Dict[str, Any] = {}
        cfg_options = config.get("options")
        if isinstance(cfg_options, Mapping):
            raw.update(cfg_options)
        if config.get("stop") is not None:
            raw["stop"] = config["stop"]
        raw.update({k: v for k, v in options.items() if v is not None})
        try:
            return ChatOptions.model_validate(raw)
        except ValidationError as exc:
            raise UserError(
                "Invalid chat options.",
                code="INVALID_OPTIONS",
                details={"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc

    def _prepare(
        self,
        input: Any,
        config: Optional[RunConfig],
        options: Dict[str, Any],
        *,
        stream: bool,
    ) -> Tuple[Dict[str, Any], Optional[float]]:
        """构造请求体并解析本次超时。"""

        merged = self._merge_config(config)
        messages = format_messages(normalize_input(input))
        body = build_request_body(
            model=self.model,
            messages=messages,
            options=self.options,
            overrides=self._per_call_options(merged, options),
            tools=self._resolve_tools(merged),
            stream=stream,
        )
        timeout = merged.get("timeout")
        return body, float(timeout) if timeout is not None else None

    async def invoke(self, input: Any, config: Optional[RunConfig] = None, **options: Any) -> AIMessage:
        """非 streaming 调用，返回完整 `AIMessage`。"""

        body, timeout = self._prepare(input, config, options, stream=False)
        logger.debug("invoke model=%s messages=%d", self.model, len(body["messages"]))
        res = await self._transport.request_json(
            "POST",
            self._endpoint(),
            headers=self._headers(),
            json_body=body,
            timeout_sec=timeout,
        )
        return create_chat_generation(res).message

    async def stream(self, input: Any, config: Optional[RunConfig] = None, **options: Any) -> AsyncIterator[AIMessage]:
        """
        streaming 调用，逐事件产出 `AIMessage` 增量。

        说明：
        - 消费方关闭本迭代器会关闭底层 HTTP 响应；
        - tool_calls 的 arguments 分片在本次 stream 内按 index 累积。
        """

        body, timeout = self._prepare(input, config, options, stream=True)
        logger.debug("stream model=%s messages=%d", self.model, len(body["messages"]))
        byte_stream = self._transport.stream_bytes(
            "POST",
            self._endpoint(),
            headers=self._headers(),
            json_body=body,
            timeout_sec=timeout,
        )
        async with aclosing(iter_stream_messages(byte_stream)) as messages:
            async for msg in messages:
                yield msg

    async def batch(self, inputs: Sequence[Any], config: Optional[RunConfig] = None, **options: Any) -> List[AIMessage]:
        """顺序执行多个独立调用；任一失败立即抛出（不做部分成功聚合）。"""

        results: List[AIMessage] = []
        for item in inputs:
            results.append(await self.invoke(item, config, **options))
        return results

    def _copy(self, **changes: Any) -> "ShengSuanYunChatModel":
        """以当前字段为基础构造新实例（`changes` 覆盖对应字段）。"""

        params: Dict[str, Any] = dict(
            api_key=self.api_key,
            model=self.model,
            base_url=self.base_url,
            options=self.options,
            transport=self._transport,
            referer=self.referer,
            title=self.title,
            bound_tools=self._bound_tools,
            default_config=self._default_config,
        )
        params.update(changes)
        return ShengSuanYunChatModel(**params)

    def bind_tools(self, tools: Sequence[Any]) -> "ShengSuanYunChatModel":
        """返回绑定了 tools 的新实例（原实例不变）。"""

        return self._copy(bound_tools=list(tools))

    def with_config(self, config: RunConfig) -> "ShengSuanYunChatModel":
        """返回合并了默认 run config 的新实例。"""

        return self._copy(default_config=self._merge_config(config))

    def pipe(self, next_step: Any) -> RunnablePipe:
        """组合为 `RunnablePipe`。"""

        return RunnablePipe(self, next_step)

    def to_json(self) -> Dict[str, Any]:
        """序列化标识（不含 api_key）。"""

        return {"_type": self.llm_type, "model": self.model, "baseURL": self.base_url}

    def __repr__(self) -> str:
        """调试表示（不含 api_key）。"""

        return f"{self.name}(model={self.model!r}, base_url={self.base_url!r})"
