from __future__ import annotations

import importlib.util
from pathlib import Path
from types import ModuleType

import pytest


def _load_example(name: str) -> ModuleType:
    path = Path(__file__).resolve().parents[1] / "help" / "examples" / f"{name}.py"
    spec = importlib.util.spec_from_file_location(f"help_example_{name}", path)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("SHENGSUANYUN_CONFIG_PATHS", "SHENGSUANYUN_ENV_FILE", "SHENGSUANYUN_MODEL"):
        monkeypatch.delenv(key, raising=False)


def test_minimal_chat_example_runs_offline(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    mod = _load_example("run_chat_minimal")
    assert mod.main(["--workspace-root", str(tmp_path), "--offline"]) == 0
    out = capsys.readouterr().out
    assert "你好，我是离线示例。" in out


def test_tool_example_accumulates_arguments_and_answers(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    mod = _load_example("run_chat_with_tool")
    assert mod.main(["--workspace-root", str(tmp_path), "--offline"]) == 0
    out = capsys.readouterr().out
    assert "[tool] add_numbers(13, 29)" in out
    assert "13 + 29 = 42" in out
