"""配置（YAML overlay + pydantic 校验）。"""

from __future__ import annotations

from shengsuanyun.config.loader import ChatOptions, ConnectorConfig, LlmConfig, load_config, load_config_dicts

__all__ = ["ChatOptions", "ConnectorConfig", "LlmConfig", "load_config", "load_config_dicts"]
