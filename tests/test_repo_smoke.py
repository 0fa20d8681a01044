from __future__ import annotations

import tomllib
from importlib import resources
from pathlib import Path

import shengsuanyun


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def test_package_is_importable_and_versioned() -> None:
    pyproject = tomllib.loads((_repo_root() / "pyproject.toml").read_text(encoding="utf-8"))
    assert shengsuanyun.__version__ == pyproject["project"]["version"]
    for name in shengsuanyun.__all__:
        assert hasattr(shengsuanyun, name), name


def test_default_config_asset_ships_with_package() -> None:
    text = resources.files("shengsuanyun.assets").joinpath("default.yaml").read_text(encoding="utf-8")
    assert "base_url" in text
    assert "SHENGSUANYUN_API_KEY" in text


def test_console_script_points_at_cli_main() -> None:
    pyproject = tomllib.loads((_repo_root() / "pyproject.toml").read_text(encoding="utf-8"))
    assert pyproject["project"]["scripts"]["shengsuanyun"] == "shengsuanyun.cli.main:main"
