"""
凭据：API key + base URL。

解析顺序：
- api_key：显式参数 > `llm.api_key_env` 指向的环境变量
- base_url：显式参数 > `SHENGSUANYUN_BASE_URL` > 配置 `llm.base_url`
"""

from __future__ import annotations

import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from shengsuanyun.config.loader import DEFAULT_BASE_URL, LlmConfig
from shengsuanyun.core.errors import UserError
from shengsuanyun.llm.transport import HttpTransport, build_headers

BASE_URL_ENV = "SHENGSUANYUN_BASE_URL"


class Credentials(BaseModel):
    """远端凭据。"""

    model_config = ConfigDict(extra="forbid", frozen=True)

    api_key: str
    base_url: str = DEFAULT_BASE_URL

    @field_validator("base_url")
    @classmethod
    def _strip_base_url(cls, value: str) -> str:
        """去掉首尾空白与末尾 `/`；为空时回退默认值。"""

        return value.strip().rstrip("/") or DEFAULT_BASE_URL

    def __repr__(self) -> str:
        """调试表示（api_key 打码）。"""

        return f"Credentials(api_key='***', base_url={self.base_url!r})"


def _get_env_nonempty(key: str, env: Mapping[str, str]) -> Optional[str]:
    """读取非空环境变量（strip 后为空视为未设置）。"""

    v = env.get(key)
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def resolve_credentials(
    cfg: LlmConfig,
    *,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Credentials:
    """
    解析凭据。

    异常：
    - UserError(code="MISSING_API_KEY")：显式参数与环境变量均为空
    """

    env = os.environ if env is None else env
    key = (api_key or "").strip() or _get_env_nonempty(cfg.api_key_env, env)
    if not key:
        raise UserError(
            f"No valid API key provided (set {cfg.api_key_env}).",
            code="MISSING_API_KEY",
            details={"api_key_env": cfg.api_key_env},
        )
    url = (base_url or "").strip() or _get_env_nonempty(BASE_URL_ENV, env) or cfg.base_url
    return Credentials(api_key=key, base_url=url)


async def verify_credentials(
    credentials: Credentials,
    cfg: LlmConfig,
    *,
    transport: Optional[HttpTransport] = None,
) -> bool:
    """
    凭据连通性测试：带 bearer 访问 `GET {base_url}/models`。

    异常：
    - TransportError：鉴权失败或网络错误
    """

    transport = transport or HttpTransport(timeout_sec=cfg.timeout_sec)
    headers = build_headers(api_key=credentials.api_key, referer=cfg.referer, title=cfg.title)
    await transport.request_json("GET", f"{credentials.base_url}/models", headers=headers)
    return True
