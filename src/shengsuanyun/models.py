"""
模型列表（下拉框选项）。

`GET {base_url}/models` → `{"data": [{id, name, description?, context_length, pricing: {prompt, completion}}]}`
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from shengsuanyun.config.loader import LlmConfig
from shengsuanyun.core.errors import ResponseShapeError
from shengsuanyun.llm.transport import HttpTransport, build_headers

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelOption:
    """下拉框选项。"""

    name: str
    value: str
    description: str

    def to_dict(self) -> Dict[str, str]:
        """转为 `{name, value, description}` dict。"""

        return {"name": self.name, "value": self.value, "description": self.description}


def _per_million(raw: Any) -> str:
    """单 token 价格 → 每百万 token 价格文本（整数不带小数点；无法解析时为 `NaN`）。"""

    try:
        value = float(raw) * 1_000_000
    except (TypeError, ValueError):
        return "NaN"
    if math.isnan(value):
        return "NaN"
    if value.is_integer():
        return str(int(value))
    return repr(value)


def describe_model(model: Mapping[str, Any]) -> str:
    """
    生成带价格的描述。

    规则：
    - 取原描述的前一半，拼接价格说明；
    - 若结果比原描述长，则截断到原描述长度（末尾 `...`）。
    """

    original = str(model.get("description") or "")
    truncated = original[: len(original) // 2]
    pricing = model.get("pricing")
    pricing = pricing if isinstance(pricing, Mapping) else {}
    price = (
        f"Price: ${_per_million(pricing.get('prompt'))}/1M tokens (prompt), "
        f"${_per_million(pricing.get('completion'))}/1M tokens (completion)"
    )
    combined = f"{truncated} {price}".strip()
    if len(combined) > len(original):
        return combined[: len(original) - 3] + "..."
    return combined


def model_options(payload: Any) -> List[ModelOption]:
    """
    解析 `/models` 响应为排序后的选项列表。

    异常：
    - ResponseShapeError：缺少 `data` 数组，或过滤后为空
    """

    data = payload.get("data") if isinstance(payload, Mapping) else None
    if not isinstance(data, list):
        raise ResponseShapeError("Invalid response format from ShengSuanYun API")

    options = [
        ModelOption(name=str(m["name"]), value=str(m["id"]), description=describe_model(m))
        for m in data
        if isinstance(m, Mapping) and m.get("id") and m.get("name")
    ]
    options.sort(key=lambda o: (o.name.casefold(), o.name))
    if not options:
        raise ResponseShapeError("No models found in ShengSuanYun API response")
    return options


async def list_models(
    cfg: LlmConfig,
    *,
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
    transport: Optional[HttpTransport] = None,
) -> List[ModelOption]:
    """拉取并解析模型列表（仅带标识头；给出 api_key 时附带 bearer）。"""

    transport = transport or HttpTransport(timeout_sec=cfg.timeout_sec)
    url = f"{(base_url or cfg.base_url).rstrip('/')}/models"
    headers = build_headers(api_key=api_key, referer=cfg.referer, title=cfg.node_title)
    payload = await transport.request_json("GET", url, headers=headers)
    options = model_options(payload)
    logger.debug("Loaded %d models from %s", len(options), url)
    return options
