"""
Bootstrap（应用层启动/配置发现）。

设计目标：
- 保持核心无隐式 I/O：chat model 不会自动读取 `.env` / 自动发现 overlays；
- 提供可选 bootstrap 入口，CLI 与宿主胶水可复用；
- 不修改 `os.environ`：解析结果以 env 映射返回，由调用方决定如何使用。
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import yaml

from shengsuanyun.config.defaults import load_default_config_dict
from shengsuanyun.config.loader import ConnectorConfig, load_config_dicts

ENV_FILE_ENV = "SHENGSUANYUN_ENV_FILE"
CONFIG_PATHS_ENV = "SHENGSUANYUN_CONFIG_PATHS"
MODEL_ENV = "SHENGSUANYUN_MODEL"


def _get_env_nonempty(key: str, *, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """读取 env 并返回非空白字符串（否则视为未设置）。"""

    v = (os.environ if env is None else env).get(key)
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _split_paths(raw: str) -> List[str]:
    """将逗号/分号分隔的路径串切分为片段列表（保序，去空项）。"""

    parts: List[str] = []
    for chunk in raw.replace(";", ",").split(","):
        s = chunk.strip()
        if s:
            parts.append(s)
    return parts


def _parse_env_text(text: str) -> Dict[str, str]:
    """解析 `.env` 风格文本为键值字典（best-effort）。

    支持的最小语法：
    - 忽略空行与 `#` 注释行
    - 可选前缀 `export `
    - `KEY=VALUE`，并去掉 VALUE 两侧的单/双引号
    """
    out: Dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue
        k, v = line.split("=", 1)
        k = k.strip()
        v = v.strip()
        if not k:
            continue
        if len(v) >= 2 and ((v.startswith('"') and v.endswith('"')) or (v.startswith("'") and v.endswith("'"))):
            v = v[1:-1]
        out[k] = v
    return out


def load_dotenv_if_present(
    *,
    workspace_root: Path,
    override: bool = False,
    env: Optional[Mapping[str, str]] = None,
) -> Tuple[Optional[Path], Dict[str, str]]:
    """
    约定发现并解析 `.env`：
    1) 若设置 `SHENGSUANYUN_ENV_FILE`，加载其指向的文件（相对路径相对 workspace_root）
    2) 否则若 `<workspace_root>/.env` 存在，加载之

    返回：
    - (env_file_path_or_none, env_vars_to_inject)；`override=False` 时不覆盖已存在的键
    """

    base_env = os.environ if env is None else env
    ws = Path(workspace_root).resolve()
    p = _get_env_nonempty(ENV_FILE_ENV, env=base_env)
    if p:
        env_path = Path(p).expanduser()
        if not env_path.is_absolute():
            env_path = (ws / env_path).resolve()
        if not env_path.exists():
            raise ValueError(f"env file not found: {env_path}")
    else:
        env_path = (ws / ".env").resolve()
        if not env_path.exists():
            return None, {}

    data = _parse_env_text(env_path.read_text(encoding="utf-8"))
    if not override:
        data = {k: v for k, v in data.items() if k not in base_env}
    return env_path, data


def discover_overlay_paths(*, workspace_root: Path, env: Optional[Mapping[str, str]] = None) -> List[Path]:
    """
    overlay 路径发现规则（固定，顺序稳定）：
    1) 默认 overlay：`<workspace_root>/config/shengsuanyun.yaml`
    2) `SHENGSUANYUN_CONFIG_PATHS`（逗号/分号分隔；作为显式 overlay）
    """

    ws = Path(workspace_root).resolve()
    overlays: List[Path] = []

    default_overlay = (ws / "config" / "shengsuanyun.yaml").resolve()
    if default_overlay.exists():
        overlays.append(default_overlay)

    raw = _get_env_nonempty(CONFIG_PATHS_ENV, env=env) or ""
    for p in _split_paths(raw):
        pp = Path(p).expanduser()
        overlays.append(pp.resolve() if pp.is_absolute() else (ws / pp).resolve())

    seen: set[Path] = set()
    uniq: List[Path] = []
    for p in overlays:
        if p in seen:
            continue
        seen.add(p)
        uniq.append(p)
    return uniq


def _load_yaml_mapping(path: Path) -> Dict[str, Any]:
    """读取 YAML 文件并确保根节点是 mapping(dict)。"""

    if not path.exists():
        raise ValueError(f"overlay config not found: {path}")
    obj = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(obj, dict):
        raise ValueError(f"overlay config root must be a mapping(dict): {path}")
    return obj


@dataclass(frozen=True)
class BootstrapResult:
    """
    bootstrap 解析结果。

    字段：
    - config：合并并校验后的配置
    - env：有效 env（`os.environ` + `.env` 注入项）
    - env_file：实际加载的 `.env`（若无则为 None）
    - overlay_paths：参与合并的 overlay 文件（按合并顺序）
    """

    config: ConnectorConfig
    env: Dict[str, str]
    env_file: Optional[Path]
    overlay_paths: List[Path]


def bootstrap(
    *,
    workspace_root: Path,
    config_paths: Sequence[Path] = (),
    use_dotenv: bool = True,
    env: Optional[Mapping[str, str]] = None,
) -> BootstrapResult:
    """
    解析有效配置：内置默认 < 发现的 overlays < 显式 `config_paths`；`SHENGSUANYUN_MODEL` 覆盖 `model`。
    """

    ws = Path(workspace_root).resolve()
    effective_env: Dict[str, str] = dict(os.environ if env is None else env)
    env_file: Optional[Path] = None
    if use_dotenv:
        env_file, injected = load_dotenv_if_present(workspace_root=ws, env=effective_env)
        effective_env.update(injected)

    overlay_paths = discover_overlay_paths(workspace_root=ws, env=effective_env)
    for p in config_paths:
        pp = Path(p).expanduser()
        pp = pp.resolve() if pp.is_absolute() else (ws / pp).resolve()
        if pp not in overlay_paths:
            overlay_paths.append(pp)

    dicts: List[Dict[str, Any]] = [load_default_config_dict()]
    dicts.extend(_load_yaml_mapping(p) for p in overlay_paths)
    model = _get_env_nonempty(MODEL_ENV, env=effective_env)
    if model:
        dicts.append({"model": model})

    return BootstrapResult(
        config=load_config_dicts(dicts),
        env=effective_env,
        env_file=env_file,
        overlay_paths=overlay_paths,
    )
