"""
配置加载器（YAML）。

参考：
- 默认配置：`src/shengsuanyun/assets/default.yaml`

设计目标：
- 支持加载多个 YAML，并按顺序做深度合并（后者覆盖前者）。
- 使用 pydantic 做 schema 校验；默认拒绝未知字段（避免拼写错误与误配置被静默吞掉）。
"""

from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Mapping, MutableMapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_BASE_URL = "https://router.shengsuanyun.com/api/v1"
DEFAULT_API_KEY_ENV = "SHENGSUANYUN_API_KEY"
DEFAULT_REFERER = "https://github.com/shengsuan/n8n-nodes-shengsuanyun"
DEFAULT_TITLE = "n8n-nodes-shengsuanyun"
DEFAULT_NODE_TITLE = "n8n ShengSuanYun Node"


def _deep_merge(base: MutableMapping[str, Any], overlay: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """
    深度合并两个 dict（overlay 覆盖 base）。

    合并规则：
    - dict + dict：递归合并
    - 其它类型：overlay 直接覆盖
    - list：整体覆盖（不做去重/拼接）
    """

    for key, overlay_value in overlay.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(overlay_value, Mapping)
        ):
            _deep_merge(base[key], overlay_value)  # type: ignore[arg-type]
            continue
        base[key] = deepcopy(overlay_value)
    return base


class ChatOptions(BaseModel):
    """
    采样参数（全部可选）。

    说明：
    - 字段为 None 表示“未设置”，由 request builder 按 per-call > 配置 > 硬编码默认值 的顺序解析；
    - `response_format` 支持 `text`/`json_object` 简写，也允许直接传入 wire 形状的 mapping。
    """

    model_config = ConfigDict(extra="forbid")

    temperature: Optional[float] = None
    top_p: Optional[float] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    max_tokens: Optional[int] = None
    response_format: Optional[Union[Literal["text", "json_object"], Dict[str, Any]]] = None
    stop: Optional[List[str]] = None

    @field_validator("stop", mode="before")
    @classmethod
    def _coerce_stop(cls, value: Any) -> Any:
        """允许 `stop` 以单个字符串给出。"""

        if isinstance(value, str):
            return [value]
        return value

    def explicit(self) -> Dict[str, Any]:
        """返回显式设置过（非 None）的字段。"""

        return self.model_dump(exclude_none=True)


class LlmConfig(BaseModel):
    """远端连接配置（base_url、鉴权 env、超时与标识头）。"""

    model_config = ConfigDict(extra="forbid")

    base_url: str = DEFAULT_BASE_URL
    api_key_env: str = DEFAULT_API_KEY_ENV
    timeout_sec: float = Field(default=60, gt=0)
    referer: str = DEFAULT_REFERER
    title: str = DEFAULT_TITLE
    node_title: str = DEFAULT_NODE_TITLE

    @field_validator("base_url")
    @classmethod
    def _strip_base_url(cls, value: str) -> str:
        """去掉末尾 `/`，便于拼接 `/chat/completions`。"""

        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("llm.base_url must be a non-empty URL")
        return value


class ConnectorConfig(BaseModel):
    """配置根对象。"""

    model_config = ConfigDict(extra="forbid")

    config_version: int = Field(default=1, ge=1)
    llm: LlmConfig = Field(default_factory=LlmConfig)
    model: str = ""
    options: ChatOptions = Field(default_factory=ChatOptions)


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """读取 YAML 文件为 dict；空文件返回空 dict。"""

    if not path.exists():
        raise FileNotFoundError(f"配置文件不存在：{path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"配置文件根节点必须为 mapping(dict)：{path}")
    return data


def load_config_dicts(config_dicts: Iterable[Optional[Mapping[str, Any]]]) -> ConnectorConfig:
    """
    加载并合并多个 dict 配置，返回校验后的 `ConnectorConfig`。

    参数：
    - config_dicts：按顺序做深度合并（后者覆盖前者）
    """

    merged: Dict[str, Any] = {}
    for overlay in config_dicts:
        if not overlay:
            continue
        _deep_merge(merged, overlay)
    return ConnectorConfig.model_validate(merged)


def load_config(paths: Iterable[Path], *, include_defaults: bool = True) -> ConnectorConfig:
    """
    从 YAML 文件列表加载配置。

    参数：
    - paths：overlay 文件路径（按顺序合并）
    - include_defaults：是否以内置 `default.yaml` 作为最底层
    """

    dicts: List[Dict[str, Any]] = []
    if include_defaults:
        from shengsuanyun.config.defaults import load_default_config_dict

        dicts.append(load_default_config_dict())
    for p in paths:
        dicts.append(_load_yaml_file(Path(p)))
    return load_config_dicts(dicts)
